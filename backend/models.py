from datetime import date, timedelta
from typing import Optional

from sqlalchemy import Column, Integer, String, Date, ForeignKey, Numeric, Text
from sqlalchemy.orm import relationship, validates

from database import Base
import policy

# Loan statuses
LOAN_ACTIVE = "Active"
LOAN_RETURNED = "Returned"

# Fine statuses
FINE_OUTSTANDING = "Outstanding"
FINE_PAID = "Paid"
FINE_WAIVED = "Waived"

MEMBER_ACTIVE = "Active"


def _full_name(first: Optional[str], last: Optional[str]) -> str:
    return f"{first or ''} {last or ''}".strip()


# --- Catalog ---

class Author(Base):
    __tablename__ = "authors"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    biography = Column(Text, nullable=True)
    nationality = Column(String(50), nullable=True)

    media = relationship("Media", back_populates="author")

    @property
    def full_name(self) -> str:
        return _full_name(self.first_name, self.last_name)

    def __repr__(self):
        return f"<Author #{self.id} {self.full_name}>"


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    loan_duration_days = Column(Integer, nullable=False, default=policy.DEFAULT_LOAN_DAYS)

    media = relationship("Media", back_populates="category")

    def __init__(self, **kwargs):
        super().__init__(**{"loan_duration_days": policy.DEFAULT_LOAN_DAYS, **kwargs})

    def __repr__(self):
        return f"<Category #{self.id} {self.name}>"


class Media(Base):
    """A catalog title and its stock of physical copies."""
    __tablename__ = "media"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), index=True, nullable=False)
    isbn = Column(String(20), nullable=True)
    publish_year = Column(Integer, nullable=True)
    publisher = Column(String(255), nullable=True)

    # Type: 'Book', 'DVD', 'CD', 'Magazine', 'Journal'
    type = Column(String(20), nullable=False, default="Book")
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)
    location = Column(String(100), nullable=True)
    author_id = Column(Integer, ForeignKey("authors.id"), nullable=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    description = Column(Text, nullable=True)
    language = Column(String(50), default="English")

    author = relationship("Author", back_populates="media")
    category = relationship("Category", back_populates="media")
    loans = relationship("Loan", back_populates="media")

    def __init__(self, **kwargs):
        super().__init__(**{"type": "Book", "total_copies": 1, "language": "English", **kwargs})

    @validates("total_copies")
    def _clamp_available(self, key, value):
        if value < 0:
            raise ValueError("total_copies cannot be negative")
        # A fresh item starts fully stocked; shrinking stock drags availability down with it
        if self.available_copies is None or self.available_copies > value:
            self.available_copies = value
        return value

    @validates("available_copies")
    def _check_available(self, key, value):
        if value < 0:
            raise ValueError("available_copies cannot be negative")
        if self.total_copies is not None and value > self.total_copies:
            raise ValueError(f"available_copies ({value}) exceeds total_copies ({self.total_copies})")
        return value

    @property
    def loan_duration_days(self) -> int:
        if self.category is not None:
            return self.category.loan_duration_days
        return policy.type_loan_days(self.type)

    @property
    def copies_on_loan(self) -> int:
        return self.total_copies - self.available_copies

    @property
    def author_name(self) -> str:
        return self.author.full_name if self.author is not None else "Unknown"

    @property
    def category_name(self) -> str:
        return self.category.name if self.category is not None else "Uncategorized"

    def is_available(self) -> bool:
        return self.available_copies > 0

    def borrow_copy(self):
        if self.is_available():
            self.available_copies -= 1

    def return_copy(self):
        if self.available_copies < self.total_copies:
            self.available_copies += 1

    def resize_stock(self, total: int):
        """Change the number of owned copies, shifting availability by the same amount."""
        on_loan = self.copies_on_loan
        if total < on_loan:
            raise ValueError(f"{on_loan} copies are on loan; total cannot drop to {total}")
        self.total_copies = total
        self.available_copies = total - on_loan

    def __repr__(self):
        return f"<Media #{self.id} {self.title!r} by {self.author_name}>"


# --- People ---

class Member(Base):
    __tablename__ = "members"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)
    phone = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    birth_date = Column(Date, nullable=True)

    # Status: 'Active', 'Suspended', 'Inactive'
    status = Column(String(20), nullable=False, default=MEMBER_ACTIVE)
    max_loans = Column(Integer, nullable=False, default=policy.MAX_LOANS_PER_MEMBER)
    # Materialized count of this member's Active loans
    current_loans = Column(Integer, nullable=False, default=0)
    member_since = Column(Date, nullable=False, default=date.today)

    loans = relationship("Loan", back_populates="member")
    fines = relationship("Fine", back_populates="member")

    def __init__(self, **kwargs):
        defaults = {
            "status": MEMBER_ACTIVE,
            "max_loans": policy.MAX_LOANS_PER_MEMBER,
            "current_loans": 0,
            "member_since": date.today(),
        }
        super().__init__(**{**defaults, **kwargs})

    @property
    def full_name(self) -> str:
        return _full_name(self.first_name, self.last_name)

    def is_active(self) -> bool:
        return self.status == MEMBER_ACTIVE

    def can_borrow(self) -> bool:
        return self.is_active() and self.current_loans < self.max_loans

    def __repr__(self):
        return f"<Member #{self.id} {self.full_name}>"


class Staff(Base):
    __tablename__ = "staff"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)
    phone = Column(String(20), nullable=True)
    position = Column(String(100), nullable=True)
    department = Column(String(100), nullable=True)
    hire_date = Column(Date, nullable=False, default=date.today)
    salary = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default="Active")
    username = Column(String(50), unique=True, nullable=True)

    # Role: 'Librarian', 'Administrator', 'Manager'. Display only, nothing is enforced on it.
    role = Column(String(20), nullable=False, default="Librarian")

    def __init__(self, **kwargs):
        defaults = {"hire_date": date.today(), "salary": 0, "status": "Active", "role": "Librarian"}
        super().__init__(**{**defaults, **kwargs})

    @property
    def full_name(self) -> str:
        return _full_name(self.first_name, self.last_name)

    def is_active(self) -> bool:
        return self.status == "Active"

    def is_admin(self) -> bool:
        return self.role in policy.ADMIN_ROLES


# --- Circulation ---

class Loan(Base):
    __tablename__ = "loans"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False)
    media_id = Column(Integer, ForeignKey("media.id"), nullable=False)

    loan_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    return_date = Column(Date, nullable=True)

    # Status: 'Active', 'Returned'. Overdue is computed, never stored.
    status = Column(String(20), nullable=False, default=LOAN_ACTIVE)
    renewal_count = Column(Integer, nullable=False, default=0)
    max_renewals = Column(Integer, nullable=False, default=policy.MAX_RENEWALS)
    notes = Column(Text, nullable=True)

    member = relationship("Member", back_populates="loans")
    media = relationship("Media", back_populates="loans")
    fines = relationship("Fine", back_populates="loan")

    def __init__(self, **kwargs):
        defaults = {"status": LOAN_ACTIVE, "renewal_count": 0, "max_renewals": policy.MAX_RENEWALS}
        super().__init__(**{**defaults, **kwargs})

    @validates("loan_date", "media")
    def _recalculate_due_date(self, key, value):
        # Returned loans keep the due date they were closed with
        if self.return_date is None:
            loan_date = value if key == "loan_date" else self.loan_date
            media = value if key == "media" else self.media
            if loan_date is not None and media is not None:
                self.due_date = loan_date + timedelta(days=media.loan_duration_days)
        return value

    @validates("return_date")
    def _close_on_return(self, key, value):
        if value is not None:
            self.status = LOAN_RETURNED
        return value

    def is_active(self) -> bool:
        return self.status == LOAN_ACTIVE

    def is_overdue(self, today: Optional[date] = None) -> bool:
        today = today or date.today()
        return self.is_active() and self.due_date is not None and self.due_date < today

    def days_overdue(self, today: Optional[date] = None) -> int:
        today = today or date.today()
        if not self.is_overdue(today):
            return 0
        return (today - self.due_date).days

    def calculate_fine(self, today=None, fine_policy: Optional[policy.FinePolicy] = None):
        fine_policy = fine_policy or policy.DEFAULT_FINE_POLICY
        return fine_policy.fine_for(self.days_overdue(today))

    def can_renew(self, today: Optional[date] = None) -> bool:
        return (
            self.is_active()
            and self.renewal_count < self.max_renewals
            and not self.is_overdue(today)
        )

    def renew(self, today: Optional[date] = None) -> bool:
        """Extend the due date by one loan period. Returns False and changes nothing if not renewable."""
        if not self.can_renew(today):
            return False
        self.renewal_count += 1
        self.due_date = self.due_date + timedelta(days=self.media.loan_duration_days)
        return True

    def return_media(self, return_date: Optional[date] = None):
        self.return_date = return_date or date.today()
        self.status = LOAN_RETURNED

    @property
    def member_name(self) -> str:
        return self.member.full_name if self.member is not None else "Unknown"

    @property
    def media_title(self) -> str:
        return self.media.title if self.media is not None else "Unknown"

    def __repr__(self):
        return f"<Loan #{self.id} {self.media_title!r} by {self.member_name}>"


class Fine(Base):
    __tablename__ = "fines"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False)
    loan_id = Column(Integer, ForeignKey("loans.id"), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False, default=0)
    reason = Column(String(255), nullable=True)
    issue_date = Column(Date, nullable=False, default=date.today)
    paid_date = Column(Date, nullable=True)

    # Status: 'Outstanding', 'Paid', 'Waived'
    status = Column(String(20), nullable=False, default=FINE_OUTSTANDING)
    description = Column(Text, nullable=True)

    member = relationship("Member", back_populates="fines")
    loan = relationship("Loan", back_populates="fines")

    def __init__(self, **kwargs):
        defaults = {"status": FINE_OUTSTANDING, "issue_date": date.today()}
        super().__init__(**{**defaults, **kwargs})

    @validates("paid_date")
    def _settle_on_payment(self, key, value):
        if value is not None:
            self.status = FINE_PAID
        return value

    def is_outstanding(self) -> bool:
        return self.status == FINE_OUTSTANDING

    def is_paid(self) -> bool:
        return self.status == FINE_PAID

    def is_waived(self) -> bool:
        return self.status == FINE_WAIVED

    def mark_as_paid(self, today: Optional[date] = None):
        self.paid_date = today or date.today()

    def waive(self, today: Optional[date] = None):
        # paid_date doubles as the settlement date, so a waived fine carries one too.
        # It has to be stamped first: assigning paid_date flips the status to Paid.
        self.paid_date = today or date.today()
        self.status = FINE_WAIVED

    @property
    def formatted_amount(self) -> str:
        return f"€{self.amount:.2f}"

    @property
    def loan_info(self) -> str:
        if self.loan is not None:
            return f"{self.loan.media_title} (Loan #{self.loan.id})"
        return "No associated loan"

    def __repr__(self):
        return f"<Fine #{self.id} {self.formatted_amount} ({self.status})>"
