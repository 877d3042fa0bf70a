from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import date
from decimal import Decimal

MediaType = Literal["Book", "DVD", "CD", "Magazine", "Journal"]
MemberStatus = Literal["Active", "Suspended", "Inactive"]
StaffRole = Literal["Librarian", "Administrator", "Manager"]

# --- Author Schemas ---

class AuthorBase(BaseModel):
    first_name: str
    last_name: str
    biography: Optional[str] = None
    nationality: Optional[str] = None

class AuthorCreate(AuthorBase):
    pass

class AuthorUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    biography: Optional[str] = None
    nationality: Optional[str] = None

class AuthorResponse(AuthorBase):
    id: int
    full_name: str

    class Config:
        from_attributes = True

# --- Category Schemas ---

class CategoryBase(BaseModel):
    name: str
    description: Optional[str] = None
    loan_duration_days: int = Field(14, ge=1)

class CategoryCreate(CategoryBase):
    pass

class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    loan_duration_days: Optional[int] = Field(None, ge=1)

class CategoryResponse(CategoryBase):
    id: int

    class Config:
        from_attributes = True

# --- Media Schemas ---

class MediaBase(BaseModel):
    title: str
    isbn: Optional[str] = None
    publish_year: Optional[int] = None
    publisher: Optional[str] = None
    type: MediaType = "Book"
    location: Optional[str] = None
    author_id: Optional[int] = None
    category_id: int
    description: Optional[str] = None
    language: str = "English"

class MediaCreate(MediaBase):
    total_copies: int = Field(1, ge=0)

class MediaUpdate(BaseModel):
    title: Optional[str] = None
    isbn: Optional[str] = None
    publish_year: Optional[int] = None
    publisher: Optional[str] = None
    type: Optional[MediaType] = None
    total_copies: Optional[int] = Field(None, ge=0)
    location: Optional[str] = None
    author_id: Optional[int] = None
    category_id: Optional[int] = None
    description: Optional[str] = None
    language: Optional[str] = None

class MediaResponse(MediaBase):
    id: int
    total_copies: int
    available_copies: int
    loan_duration_days: int
    author_name: str
    category_name: str

    class Config:
        from_attributes = True

# --- Member Schemas ---

class MemberBase(BaseModel):
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    birth_date: Optional[date] = None

class MemberCreate(MemberBase):
    max_loans: int = Field(5, ge=0)

class MemberUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    birth_date: Optional[date] = None
    max_loans: Optional[int] = Field(None, ge=0)

class MemberStatusUpdate(BaseModel):
    status: MemberStatus

class MemberResponse(MemberBase):
    id: int
    full_name: str
    status: str
    max_loans: int
    current_loans: int
    member_since: date
    borrowing_allowed: bool = False  # computed per request
    outstanding_balance: Decimal = Decimal("0.00")

    class Config:
        from_attributes = True

class RecountResponse(BaseModel):
    member_id: int
    stored: int
    actual: int

# --- Staff Schemas ---

class StaffBase(BaseModel):
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    hire_date: Optional[date] = None
    salary: Decimal = Decimal("0.00")
    status: str = "Active"
    username: Optional[str] = None
    role: StaffRole = "Librarian"

class StaffCreate(StaffBase):
    pass

class StaffUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    salary: Optional[Decimal] = None
    status: Optional[str] = None
    username: Optional[str] = None
    role: Optional[StaffRole] = None

class StaffResponse(StaffBase):
    id: int
    hire_date: date
    admin: bool = False

    class Config:
        from_attributes = True

# --- Circulation Schemas ---

class LoanIssueRequest(BaseModel):
    member_id: int
    media_id: int
    loan_date: Optional[date] = None  # Defaults to today
    notes: Optional[str] = None

class LoanReturnRequest(BaseModel):
    return_date: Optional[date] = None
    charge_overdue: bool = True

class LoanResponse(BaseModel):
    id: int
    member_id: int
    media_id: int
    loan_date: date
    due_date: date
    return_date: Optional[date] = None
    status: str
    renewal_count: int = 0
    max_renewals: int = 2
    notes: Optional[str] = None

    class Config:
        from_attributes = True

class LoanHistoryResponse(BaseModel):
    active_loans: List[LoanResponse]
    past_loans: List[LoanResponse]

class OverdueReportItem(BaseModel):
    loan_id: int
    member_id: int
    member_name: str
    media_title: str
    loan_date: date
    due_date: date
    status: str
    days_overdue: int
    fine_due: Decimal
    can_renew: bool

# --- Fine Schemas ---

class FineCreate(BaseModel):
    member_id: int
    loan_id: Optional[int] = None
    amount: Decimal = Field(..., ge=0)
    reason: str
    description: Optional[str] = None

class FineResponse(BaseModel):
    id: int
    member_id: int
    loan_id: Optional[int] = None
    amount: Decimal
    reason: Optional[str] = None
    issue_date: date
    paid_date: Optional[date] = None
    status: str
    description: Optional[str] = None

    class Config:
        from_attributes = True

class LoanReturnResponse(BaseModel):
    loan: LoanResponse
    fine: Optional[FineResponse] = None

class BalanceResponse(BaseModel):
    member_id: Optional[int] = None
    outstanding_total: Decimal

# --- Reports ---

class DashboardStats(BaseModel):
    total_members: int
    active_members: int
    total_media: int
    available_media: int
    active_loans: int
    overdue_loans: int
    outstanding_fines: int
    outstanding_total: Decimal

class ReconcileResponse(BaseModel):
    corrected_member_ids: List[int]
