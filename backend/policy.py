"""Circulation policy constants.

Loan lengths, renewal and borrowing limits, and the overdue fine rate all
live here so the models and engines share one definition.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from config import settings

CENT = Decimal("0.01")

# Loan length when a media item has no category
DEFAULT_LOAN_DAYS = 14
TYPE_LOAN_DAYS = {
    "DVD": 7,
    "CD": 7,
    "Magazine": 3,
}

MAX_RENEWALS = 2
MAX_LOANS_PER_MEMBER = 5

MEDIA_TYPES = ("Book", "DVD", "CD", "Magazine", "Journal")
MEMBER_STATUSES = ("Active", "Suspended", "Inactive")
STAFF_ROLES = ("Librarian", "Administrator", "Manager")
ADMIN_ROLES = ("Administrator", "Manager")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FinePolicy:
    """Flat per-day overdue charge, capped per loan."""

    rate: Decimal
    cap: Decimal

    def fine_for(self, days_overdue: int) -> Decimal:
        if days_overdue <= 0:
            return to_money(0)
        return to_money(min(self.rate * days_overdue, self.cap))


DEFAULT_FINE_POLICY = FinePolicy(rate=to_money(settings.FINE_PER_DAY), cap=to_money(settings.MAX_FINE))


def type_loan_days(media_type: str) -> int:
    return TYPE_LOAN_DAYS.get(media_type, DEFAULT_LOAN_DAYS)
