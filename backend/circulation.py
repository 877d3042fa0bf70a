"""Loan lifecycle: issue, renew, return.

Validation happens before anything is touched, so a rejected request
(``LoanRejected``) leaves members, media and loans exactly as they were.
Each successful operation writes the loan together with the member and media
counters it moved in one repository transaction.
"""
import logging
from datetime import date
from typing import Optional

import fines
import models
from exceptions import LoanRejected
from membership import borrow_rejection
from policy import FinePolicy
from repository import LibraryRepository

logger = logging.getLogger(__name__)


def issue_loan(
    repo: LibraryRepository,
    member: models.Member,
    media: models.Media,
    loan_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> models.Loan:
    today = date.today()
    loan_date = loan_date or today

    # 1. Eligibility, re-evaluated on every request
    reason = borrow_rejection(member, media)
    if reason is None and loan_date > today:
        reason = "Loan date cannot be in the future"
    if reason:
        logger.info("Loan refused for member %s, media %s: %s", member.id, media.id, reason)
        raise LoanRejected(reason)

    # 2. Create loan; due date follows from the media's loan period
    loan = models.Loan(member=member, media=media, loan_date=loan_date, notes=notes)

    # 3. Move the counters
    media.borrow_copy()
    member.current_loans += 1

    repo.create(loan)
    logger.info("Loan %s issued: '%s' to member %s, due %s", loan.id, media.title, member.id, loan.due_date)
    return loan


def renew_loan(repo: LibraryRepository, loan: models.Loan, today: Optional[date] = None) -> models.Loan:
    today = today or date.today()

    if not loan.is_active():
        raise LoanRejected("Cannot renew inactive loan")
    if loan.is_overdue(today):
        raise LoanRejected("Cannot renew overdue items. Please return the item.")
    if loan.renewal_count >= loan.max_renewals:
        raise LoanRejected("Maximum renewal limit reached.")

    loan.renew(today)
    repo.update(loan)
    logger.info("Loan %s renewed (%s/%s), new due date %s",
                loan.id, loan.renewal_count, loan.max_renewals, loan.due_date)
    return loan


def return_loan(
    repo: LibraryRepository,
    loan: models.Loan,
    return_date: Optional[date] = None,
    charge_overdue: bool = True,
    fine_policy: Optional[FinePolicy] = None,
) -> Optional[models.Fine]:
    """Close an Active loan and restock its media.

    If the loan is overdue on ``return_date`` and ``charge_overdue`` is set,
    the overdue amount is charged in the same transaction and the fine is
    returned; otherwise returns None. A loan that already has an Outstanding
    fine keeps that one fine, raised to the amount due on ``return_date``.
    """
    today = date.today()
    return_date = return_date or today

    if not loan.is_active():
        raise LoanRejected("Only active loans can be returned.")
    if return_date > today:
        raise LoanRejected("Return date cannot be in the future")
    if return_date < loan.loan_date:
        raise LoanRejected("Return date cannot be before the loan date")

    touched = [loan, loan.member, loan.media]

    # 1. Charge for the late days before the loan stops being overdue
    fine = None
    if charge_overdue and loan.is_overdue(return_date):
        amount = loan.calculate_fine(return_date, fine_policy)
        open_fines = repo.outstanding_fines_for_loan(loan)
        if open_fines:
            fine = open_fines[0]
            fine.amount = max(fine.amount, amount)
        else:
            fine = fines.build_fine(
                loan.member,
                amount,
                "Overdue return",
                loan=loan,
                description=f"{loan.days_overdue(return_date)} days late",
                today=return_date,
            )
        touched.append(fine)

    # 2. Close the loan
    loan.return_media(return_date)

    # 3. Restock and release the member's slot
    loan.media.return_copy()
    loan.member.current_loans = max(loan.member.current_loans - 1, 0)

    repo.update(*touched)
    logger.info("Loan %s returned on %s%s", loan.id, return_date,
                f" with fine {fine.formatted_amount}" if fine else "")
    return fine


def loan_summary(loan: models.Loan, today: Optional[date] = None, fine_policy: Optional[FinePolicy] = None) -> dict:
    """Point-in-time view of a loan's overdue state."""
    today = today or date.today()
    return {
        "loan_id": loan.id,
        "member_id": loan.member_id,
        "member_name": loan.member_name,
        "media_title": loan.media_title,
        "loan_date": loan.loan_date,
        "due_date": loan.due_date,
        "status": loan.status,
        "days_overdue": loan.days_overdue(today),
        "fine_due": loan.calculate_fine(today, fine_policy),
        "can_renew": loan.can_renew(today),
    }
