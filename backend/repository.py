"""Storage boundary for the circulation core.

The engines only ever talk to a ``LibraryRepository``. It wraps one
SQLAlchemy session, commits on every write and converts store failures into
``PersistenceError`` after rolling the session back, so an entity mutated in
memory for a failed write is reloaded from the database on next access.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, cast, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
from exceptions import PersistenceError

logger = logging.getLogger(__name__)


class LibraryRepository:

    def __init__(self, session: Session):
        self.session = session

    # --- writes ---

    def _commit(self, action: str):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Failed to %s: %s", action, e)
            raise PersistenceError(f"Failed to {action}") from e

    def create(self, entity) -> int:
        """Persist a new entity and return its assigned id."""
        self.session.add(entity)
        self._commit(f"add {type(entity).__name__.lower()}")
        self.session.refresh(entity)
        return entity.id

    def update(self, *entities):
        """Write every given entity in a single transaction."""
        for entity in entities:
            self.session.add(entity)
        names = ", ".join(type(e).__name__.lower() for e in entities)
        self._commit(f"update {names}")

    def delete(self, entity):
        self.session.delete(entity)
        self._commit(f"delete {type(entity).__name__.lower()}")

    # --- lookups ---

    def find_by_id(self, model, entity_id: int):
        return self.session.get(model, entity_id)

    def list_all(self, model):
        return self.session.query(model).order_by(model.id).all()

    def search(self, model, term: str):
        """Case-insensitive substring match over each model's human-readable fields."""
        if not term:
            return self.list_all(model)
        pattern = f"%{term}%"
        query = self.session.query(model)

        if model is models.Author:
            fields = [models.Author.first_name, models.Author.last_name, models.Author.nationality]
        elif model is models.Category:
            fields = [models.Category.name, models.Category.description]
        elif model is models.Media:
            query = query.outerjoin(models.Author, models.Media.author)
            fields = [
                models.Media.title,
                models.Media.isbn,
                models.Author.first_name,
                models.Author.last_name,
                cast(models.Media.id, String),
            ]
        elif model is models.Member:
            fields = [
                models.Member.first_name,
                models.Member.last_name,
                models.Member.email,
                cast(models.Member.id, String),
            ]
        elif model is models.Staff:
            fields = [
                models.Staff.first_name,
                models.Staff.last_name,
                models.Staff.email,
                models.Staff.username,
            ]
        elif model is models.Loan:
            query = query.join(models.Member, models.Loan.member).join(models.Media, models.Loan.media)
            fields = [models.Member.first_name, models.Member.last_name, models.Media.title]
        elif model is models.Fine:
            query = query.join(models.Member, models.Fine.member)
            fields = [models.Fine.reason, models.Member.first_name, models.Member.last_name]
        else:
            raise TypeError(f"{model.__name__} is not searchable")

        return query.filter(or_(*(f.ilike(pattern) for f in fields))).order_by(model.id).all()

    # --- loans ---

    def active_loans(self):
        return self.session.query(models.Loan).filter(
            models.Loan.status == models.LOAN_ACTIVE
        ).order_by(models.Loan.due_date).all()

    def overdue_loans(self, today: Optional[date] = None):
        today = today or date.today()
        return self.session.query(models.Loan).filter(
            models.Loan.status == models.LOAN_ACTIVE,
            models.Loan.due_date < today
        ).order_by(models.Loan.due_date).all()

    def loans_for_member(self, member, active_only: bool = False):
        query = self.session.query(models.Loan).filter(models.Loan.member_id == member.id)
        if active_only:
            query = query.filter(models.Loan.status == models.LOAN_ACTIVE)
        return query.order_by(models.Loan.loan_date.desc(), models.Loan.id.desc()).all()

    def count_active_loans(self, member) -> int:
        return self.session.query(models.Loan).filter(
            models.Loan.member_id == member.id,
            models.Loan.status == models.LOAN_ACTIVE
        ).count()

    def loans_for_media(self, media):
        return self.session.query(models.Loan).filter(models.Loan.media_id == media.id).all()

    # --- fines ---

    def outstanding_fines(self, member=None):
        query = self.session.query(models.Fine).filter(models.Fine.status == models.FINE_OUTSTANDING)
        if member is not None:
            query = query.filter(models.Fine.member_id == member.id)
        return query.order_by(models.Fine.issue_date, models.Fine.id).all()

    def fines_for_member(self, member):
        return self.session.query(models.Fine).filter(
            models.Fine.member_id == member.id
        ).order_by(models.Fine.issue_date.desc(), models.Fine.id.desc()).all()

    def outstanding_fines_for_loan(self, loan):
        return self.session.query(models.Fine).filter(
            models.Fine.loan_id == loan.id,
            models.Fine.status == models.FINE_OUTSTANDING
        ).all()

    def outstanding_total(self, member=None) -> Decimal:
        query = self.session.query(func.sum(models.Fine.amount)).filter(
            models.Fine.status == models.FINE_OUTSTANDING
        )
        if member is not None:
            query = query.filter(models.Fine.member_id == member.id)
        total = query.scalar()
        return Decimal(total or 0).quantize(Decimal("0.01"))

    # --- catalog / counts ---

    def available_media(self):
        return self.session.query(models.Media).filter(
            models.Media.available_copies > 0
        ).order_by(models.Media.title).all()

    def count(self, model) -> int:
        return self.session.query(model).count()

    def statistics(self, today: Optional[date] = None) -> dict:
        today = today or date.today()
        return {
            "total_members": self.count(models.Member),
            "active_members": self.session.query(models.Member).filter(
                models.Member.status == models.MEMBER_ACTIVE
            ).count(),
            "total_media": self.count(models.Media),
            "available_media": self.session.query(models.Media).filter(
                models.Media.available_copies > 0
            ).count(),
            "active_loans": len(self.active_loans()),
            "overdue_loans": len(self.overdue_loans(today)),
            "outstanding_fines": len(self.outstanding_fines()),
            "outstanding_total": self.outstanding_total(),
        }
