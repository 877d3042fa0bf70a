"""Fine lifecycle: creation, the overdue sweep, payment and waivers."""
import logging
from datetime import date
from decimal import Decimal
from typing import Optional

import models
from exceptions import FineRejected
from policy import FinePolicy, to_money
from repository import LibraryRepository

logger = logging.getLogger(__name__)


def build_fine(member, amount, reason, loan=None, description=None, today: Optional[date] = None) -> models.Fine:
    """Unsaved Outstanding fine; callers persist it with whatever else they are writing."""
    amount = to_money(amount)
    if amount < 0:
        raise ValueError("Fine amount cannot be negative")
    return models.Fine(
        member=member,
        loan=loan,
        amount=amount,
        reason=reason,
        description=description,
        issue_date=today or date.today(),
    )


def create_fine(
    repo: LibraryRepository,
    member: models.Member,
    amount,
    reason: str,
    loan: Optional[models.Loan] = None,
    description: Optional[str] = None,
    today: Optional[date] = None,
) -> models.Fine:
    fine = build_fine(member, amount, reason, loan=loan, description=description, today=today)
    repo.create(fine)
    logger.info("Fine %s of %s issued to member %s: %s", fine.id, fine.formatted_amount, member.id, reason)
    return fine


def generate_overdue_fines(
    repo: LibraryRepository,
    today: Optional[date] = None,
    fine_policy: Optional[FinePolicy] = None,
) -> list:
    """Fine every overdue loan that has no Outstanding fine yet.

    Only Outstanding fines block a new one, so an overdue loan whose earlier
    fine was paid or waived is charged again.
    """
    today = today or date.today()
    created = []
    for loan in repo.overdue_loans(today):
        if repo.outstanding_fines_for_loan(loan):
            continue
        days = loan.days_overdue(today)
        fine = build_fine(
            loan.member,
            loan.calculate_fine(today, fine_policy),
            f"Overdue return - {days} days late",
            loan=loan,
            today=today,
        )
        created.append(fine)

    if created:
        repo.update(*created)
    logger.info("Overdue sweep on %s created %s fines", today, len(created))
    return created


def pay_fine(repo: LibraryRepository, fine: models.Fine, today: Optional[date] = None) -> models.Fine:
    if fine.is_waived():
        raise FineRejected("This fine has been waived and cannot be paid.")
    fine.mark_as_paid(today)
    repo.update(fine)
    logger.info("Fine %s paid on %s", fine.id, fine.paid_date)
    return fine


def waive_fine(repo: LibraryRepository, fine: models.Fine, today: Optional[date] = None) -> models.Fine:
    if fine.is_paid():
        raise FineRejected("This fine is already paid.")
    fine.waive(today)
    repo.update(fine)
    logger.info("Fine %s waived on %s", fine.id, fine.paid_date)
    return fine


def outstanding_balance(repo: LibraryRepository, member: Optional[models.Member] = None) -> Decimal:
    return repo.outstanding_total(member)
