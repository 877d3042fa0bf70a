import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

# Import our local modules
from config import settings
from database import engine, Base, get_db
from exceptions import FineRejected, LoanRejected, NotFound, PersistenceError, ReferenceConflict
from repository import LibraryRepository
from scheduler import build_scheduler
import circulation
import fines
import membership
import models
import schemas

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create Tables
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    scheduler = build_scheduler()
    if scheduler:
        logger.info("Starting overdue fine sweep every %s minutes", settings.FINE_SWEEP_MINUTES)
        scheduler.start()
    yield
    # --- Shutdown ---
    if scheduler:
        scheduler.shutdown()

app = FastAPI(title="Library Circulation", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error mapping ---

@app.exception_handler(LoanRejected)
@app.exception_handler(FineRejected)
async def validation_failed(request: Request, exc):
    return JSONResponse(status_code=400, content={"detail": exc.reason})

@app.exception_handler(ReferenceConflict)
async def reference_conflict(request: Request, exc: ReferenceConflict):
    return JSONResponse(status_code=409, content={"detail": exc.reason})

@app.exception_handler(NotFound)
async def not_found(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})

@app.exception_handler(PersistenceError)
async def persistence_failed(request: Request, exc: PersistenceError):
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# --- Helpers ---

def get_repo(db: Session = Depends(get_db)) -> LibraryRepository:
    return LibraryRepository(db)

def fetch(repo: LibraryRepository, model, entity_id: int):
    entity = repo.find_by_id(model, entity_id)
    if entity is None:
        raise NotFound(f"{model.__name__} not found")
    return entity

def apply_changes(entity, changes: dict):
    """Copy request fields onto the row. A null sent for a NOT NULL column leaves it unchanged."""
    columns = entity.__table__.columns
    for key, value in changes.items():
        if value is None and key in columns and not columns[key].nullable:
            continue
        setattr(entity, key, value)

def member_view(repo: LibraryRepository, member: models.Member):
    """Attach the per-request computed fields MemberResponse reports."""
    member.borrowing_allowed = member.can_borrow()
    member.outstanding_balance = fines.outstanding_balance(repo, member)
    return member

def staff_view(staff: models.Staff):
    staff.admin = staff.is_admin()
    return staff


@app.get("/api/health")
def health_check():
    return {"status": "ok", "message": "Library System is running"}


# --- Authors ---

@app.get("/api/authors", response_model=list[schemas.AuthorResponse])
def list_authors(q: str = "", repo: LibraryRepository = Depends(get_repo)):
    return repo.search(models.Author, q)

@app.post("/api/authors", response_model=schemas.AuthorResponse, status_code=201)
def create_author(author: schemas.AuthorCreate, repo: LibraryRepository = Depends(get_repo)):
    db_author = models.Author(**author.dict())
    repo.create(db_author)
    return db_author

@app.get("/api/authors/{author_id}", response_model=schemas.AuthorResponse)
def get_author(author_id: int, repo: LibraryRepository = Depends(get_repo)):
    return fetch(repo, models.Author, author_id)

@app.put("/api/authors/{author_id}", response_model=schemas.AuthorResponse)
def update_author(author_id: int, data: schemas.AuthorUpdate, repo: LibraryRepository = Depends(get_repo)):
    author = fetch(repo, models.Author, author_id)
    apply_changes(author, data.dict(exclude_unset=True))
    repo.update(author)
    return author

@app.delete("/api/authors/{author_id}")
def delete_author(author_id: int, repo: LibraryRepository = Depends(get_repo)):
    membership.delete_author(repo, fetch(repo, models.Author, author_id))
    return {"message": "Author removed"}


# --- Categories ---

@app.get("/api/categories", response_model=list[schemas.CategoryResponse])
def list_categories(q: str = "", repo: LibraryRepository = Depends(get_repo)):
    return repo.search(models.Category, q)

@app.post("/api/categories", response_model=schemas.CategoryResponse, status_code=201)
def create_category(category: schemas.CategoryCreate, repo: LibraryRepository = Depends(get_repo)):
    if repo.session.query(models.Category).filter(models.Category.name == category.name).first():
        raise HTTPException(status_code=400, detail="Category name already exists")
    db_category = models.Category(**category.dict())
    repo.create(db_category)
    return db_category

@app.get("/api/categories/{category_id}", response_model=schemas.CategoryResponse)
def get_category(category_id: int, repo: LibraryRepository = Depends(get_repo)):
    return fetch(repo, models.Category, category_id)

@app.put("/api/categories/{category_id}", response_model=schemas.CategoryResponse)
def update_category(category_id: int, data: schemas.CategoryUpdate, repo: LibraryRepository = Depends(get_repo)):
    category = fetch(repo, models.Category, category_id)
    apply_changes(category, data.dict(exclude_unset=True))
    repo.update(category)
    return category

@app.delete("/api/categories/{category_id}")
def delete_category(category_id: int, repo: LibraryRepository = Depends(get_repo)):
    membership.delete_category(repo, fetch(repo, models.Category, category_id))
    return {"message": "Category removed"}


# --- Media ---

@app.get("/api/media", response_model=list[schemas.MediaResponse])
def list_media(q: str = "", available: bool = False, repo: LibraryRepository = Depends(get_repo)):
    """Search by title, ISBN, author or id"""
    results = repo.search(models.Media, q)
    if available:
        results = [m for m in results if m.is_available()]
    return results

@app.post("/api/media", response_model=schemas.MediaResponse, status_code=201)
def create_media(media: schemas.MediaCreate, repo: LibraryRepository = Depends(get_repo)):
    # Referenced rows must exist
    fetch(repo, models.Category, media.category_id)
    if media.author_id is not None:
        fetch(repo, models.Author, media.author_id)

    db_media = models.Media(**media.dict())
    repo.create(db_media)
    return db_media

@app.get("/api/media/{media_id}", response_model=schemas.MediaResponse)
def get_media(media_id: int, repo: LibraryRepository = Depends(get_repo)):
    return fetch(repo, models.Media, media_id)

@app.put("/api/media/{media_id}", response_model=schemas.MediaResponse)
def update_media(media_id: int, data: schemas.MediaUpdate, repo: LibraryRepository = Depends(get_repo)):
    media = fetch(repo, models.Media, media_id)
    changes = data.dict(exclude_unset=True)

    category_id = changes.pop("category_id", None)
    if category_id is not None:
        media.category = fetch(repo, models.Category, category_id)
    if "author_id" in changes:
        author_id = changes.pop("author_id")
        media.author = fetch(repo, models.Author, author_id) if author_id is not None else None
    total = changes.pop("total_copies", None)
    if total is not None:
        try:
            media.resize_stock(total)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    apply_changes(media, changes)
    repo.update(media)
    return media

@app.delete("/api/media/{media_id}")
def delete_media(media_id: int, repo: LibraryRepository = Depends(get_repo)):
    membership.delete_media(repo, fetch(repo, models.Media, media_id))
    return {"message": "Media removed from catalog"}


# --- Members ---

@app.get("/api/members", response_model=list[schemas.MemberResponse])
def list_members(q: str = "", repo: LibraryRepository = Depends(get_repo)):
    """Search members by name, email or id"""
    return [member_view(repo, m) for m in repo.search(models.Member, q)]

@app.post("/api/members", response_model=schemas.MemberResponse, status_code=201)
def register_member(member: schemas.MemberCreate, repo: LibraryRepository = Depends(get_repo)):
    if repo.session.query(models.Member).filter(models.Member.email == member.email).first():
        raise HTTPException(status_code=400, detail="Email already registered")
    db_member = models.Member(**member.dict())
    repo.create(db_member)
    return member_view(repo, db_member)

@app.get("/api/members/{member_id}", response_model=schemas.MemberResponse)
def get_member(member_id: int, repo: LibraryRepository = Depends(get_repo)):
    return member_view(repo, fetch(repo, models.Member, member_id))

@app.put("/api/members/{member_id}", response_model=schemas.MemberResponse)
def update_member(member_id: int, data: schemas.MemberUpdate, repo: LibraryRepository = Depends(get_repo)):
    member = fetch(repo, models.Member, member_id)
    changes = data.dict(exclude_unset=True)
    if changes.get("email") is not None and changes["email"] != member.email:
        if repo.session.query(models.Member).filter(models.Member.email == changes["email"]).first():
            raise HTTPException(status_code=400, detail="Email already registered")
    apply_changes(member, changes)
    repo.update(member)
    return member_view(repo, member)

@app.patch("/api/members/{member_id}/status", response_model=schemas.MemberResponse)
def update_member_status(member_id: int, status_data: schemas.MemberStatusUpdate, repo: LibraryRepository = Depends(get_repo)):
    """Suspend / deactivate / reactivate a member"""
    member = fetch(repo, models.Member, member_id)
    membership.set_member_status(repo, member, status_data.status)
    return member_view(repo, member)

@app.delete("/api/members/{member_id}")
def delete_member(member_id: int, repo: LibraryRepository = Depends(get_repo)):
    membership.delete_member(repo, fetch(repo, models.Member, member_id))
    return {"message": "Member record removed"}

@app.get("/api/members/{member_id}/loans", response_model=schemas.LoanHistoryResponse)
def get_member_loans(member_id: int, repo: LibraryRepository = Depends(get_repo)):
    member = fetch(repo, models.Member, member_id)
    loans = repo.loans_for_member(member)
    return {
        "active_loans": [l for l in loans if l.is_active()],
        "past_loans": [l for l in loans if not l.is_active()],
    }

@app.get("/api/members/{member_id}/fines", response_model=list[schemas.FineResponse])
def get_member_fines(member_id: int, repo: LibraryRepository = Depends(get_repo)):
    return repo.fines_for_member(fetch(repo, models.Member, member_id))

@app.get("/api/members/{member_id}/balance", response_model=schemas.BalanceResponse)
def get_member_balance(member_id: int, repo: LibraryRepository = Depends(get_repo)):
    member = fetch(repo, models.Member, member_id)
    return {"member_id": member.id, "outstanding_total": fines.outstanding_balance(repo, member)}

@app.post("/api/members/{member_id}/recount", response_model=schemas.RecountResponse)
def recount_member_loans(member_id: int, repo: LibraryRepository = Depends(get_repo)):
    member = fetch(repo, models.Member, member_id)
    stored, actual = membership.recount_current_loans(repo, member)
    return {"member_id": member.id, "stored": stored, "actual": actual}


# --- Staff ---

@app.get("/api/staff", response_model=list[schemas.StaffResponse])
def list_staff(q: str = "", repo: LibraryRepository = Depends(get_repo)):
    return [staff_view(s) for s in repo.search(models.Staff, q)]

@app.post("/api/staff", response_model=schemas.StaffResponse, status_code=201)
def create_staff(staff: schemas.StaffCreate, repo: LibraryRepository = Depends(get_repo)):
    if repo.session.query(models.Staff).filter(models.Staff.email == staff.email).first():
        raise HTTPException(status_code=400, detail="Email already exists")
    if staff.username and repo.session.query(models.Staff).filter(models.Staff.username == staff.username).first():
        raise HTTPException(status_code=400, detail="Username already exists")
    data = staff.dict()
    if data["hire_date"] is None:
        data.pop("hire_date")
    db_staff = models.Staff(**data)
    repo.create(db_staff)
    return staff_view(db_staff)

@app.get("/api/staff/{staff_id}", response_model=schemas.StaffResponse)
def get_staff(staff_id: int, repo: LibraryRepository = Depends(get_repo)):
    return staff_view(fetch(repo, models.Staff, staff_id))

@app.put("/api/staff/{staff_id}", response_model=schemas.StaffResponse)
def update_staff(staff_id: int, data: schemas.StaffUpdate, repo: LibraryRepository = Depends(get_repo)):
    staff = fetch(repo, models.Staff, staff_id)
    apply_changes(staff, data.dict(exclude_unset=True))
    repo.update(staff)
    return staff_view(staff)

@app.delete("/api/staff/{staff_id}")
def delete_staff(staff_id: int, repo: LibraryRepository = Depends(get_repo)):
    repo.delete(fetch(repo, models.Staff, staff_id))
    return {"message": "Staff account removed"}


# --- Circulation Endpoints (The Core Logic) ---

@app.get("/api/loans", response_model=list[schemas.LoanResponse])
def list_loans(status: str = "", member_id: Optional[int] = None, q: str = "", repo: LibraryRepository = Depends(get_repo)):
    """status: 'active', 'returned', 'overdue' or empty for all; combines with q and member_id"""
    status = status.lower()
    if status == "overdue":
        loans = repo.overdue_loans()
        if q:
            matches = {l.id for l in repo.search(models.Loan, q)}
            loans = [l for l in loans if l.id in matches]
    else:
        loans = repo.search(models.Loan, q)

    if status == "active":
        loans = [l for l in loans if l.status == models.LOAN_ACTIVE]
    elif status == "returned":
        loans = [l for l in loans if l.status == models.LOAN_RETURNED]
    if member_id is not None:
        loans = [l for l in loans if l.member_id == member_id]
    return loans

@app.post("/api/loans", response_model=schemas.LoanResponse, status_code=201)
def issue_loan(request: schemas.LoanIssueRequest, repo: LibraryRepository = Depends(get_repo)):
    member = fetch(repo, models.Member, request.member_id)
    media = fetch(repo, models.Media, request.media_id)
    return circulation.issue_loan(repo, member, media, loan_date=request.loan_date, notes=request.notes)

@app.get("/api/loans/{loan_id}", response_model=schemas.OverdueReportItem)
def get_loan(loan_id: int, repo: LibraryRepository = Depends(get_repo)):
    """Loan with its current overdue state and fine due"""
    return circulation.loan_summary(fetch(repo, models.Loan, loan_id))

@app.post("/api/loans/{loan_id}/renew", response_model=schemas.LoanResponse)
def renew_loan(loan_id: int, repo: LibraryRepository = Depends(get_repo)):
    return circulation.renew_loan(repo, fetch(repo, models.Loan, loan_id))

@app.post("/api/loans/{loan_id}/return", response_model=schemas.LoanReturnResponse)
def return_loan(loan_id: int, request: schemas.LoanReturnRequest = schemas.LoanReturnRequest(), repo: LibraryRepository = Depends(get_repo)):
    loan = fetch(repo, models.Loan, loan_id)
    fine = circulation.return_loan(repo, loan, return_date=request.return_date, charge_overdue=request.charge_overdue)
    return {"loan": loan, "fine": fine}


# --- Fine Management Endpoints ---

@app.get("/api/fines", response_model=list[schemas.FineResponse])
def list_fines(status: str = "", member_id: Optional[int] = None, q: str = "", repo: LibraryRepository = Depends(get_repo)):
    result = repo.search(models.Fine, q)
    if status:
        result = [f for f in result if f.status.lower() == status.lower()]
    if member_id is not None:
        result = [f for f in result if f.member_id == member_id]
    return result

@app.post("/api/fines", response_model=schemas.FineResponse, status_code=201)
def create_fine(request: schemas.FineCreate, repo: LibraryRepository = Depends(get_repo)):
    """Manual fine, optionally tied to one of the member's loans"""
    member = fetch(repo, models.Member, request.member_id)
    loan = None
    if request.loan_id is not None:
        loan = fetch(repo, models.Loan, request.loan_id)
        if loan.member_id != member.id:
            raise HTTPException(status_code=400, detail="Loan belongs to a different member")
    return fines.create_fine(repo, member, request.amount, request.reason, loan=loan, description=request.description)

@app.post("/api/fines/generate", response_model=list[schemas.FineResponse])
def generate_overdue_fines(repo: LibraryRepository = Depends(get_repo)):
    """Fine every overdue loan that has no open fine yet"""
    return fines.generate_overdue_fines(repo)

@app.post("/api/fines/{fine_id}/pay", response_model=schemas.FineResponse)
def pay_fine(fine_id: int, repo: LibraryRepository = Depends(get_repo)):
    return fines.pay_fine(repo, fetch(repo, models.Fine, fine_id))

@app.post("/api/fines/{fine_id}/waive", response_model=schemas.FineResponse)
def waive_fine(fine_id: int, repo: LibraryRepository = Depends(get_repo)):
    return fines.waive_fine(repo, fetch(repo, models.Fine, fine_id))

@app.delete("/api/fines/{fine_id}")
def delete_fine(fine_id: int, repo: LibraryRepository = Depends(get_repo)):
    repo.delete(fetch(repo, models.Fine, fine_id))
    return {"message": "Fine removed"}


# --- Reports ---

@app.get("/api/reports/stats", response_model=schemas.DashboardStats)
def get_dashboard_stats(repo: LibraryRepository = Depends(get_repo)):
    return repo.statistics()

@app.get("/api/reports/overdue", response_model=list[schemas.OverdueReportItem])
def get_overdue_report(repo: LibraryRepository = Depends(get_repo)):
    today = date.today()
    return [circulation.loan_summary(loan, today) for loan in repo.overdue_loans(today)]

@app.get("/api/reports/outstanding", response_model=schemas.BalanceResponse)
def get_outstanding_total(repo: LibraryRepository = Depends(get_repo)):
    return {"member_id": None, "outstanding_total": fines.outstanding_balance(repo)}

@app.post("/api/maintenance/reconcile", response_model=schemas.ReconcileResponse)
def reconcile_loan_counts(repo: LibraryRepository = Depends(get_repo)):
    """Rebuild every member's loan counter from the loans table"""
    corrected = membership.reconcile_loan_counts(repo)
    return {"corrected_member_ids": [m.id for m in corrected]}
