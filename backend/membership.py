"""Borrowing eligibility and the member loan counter.

``Member.current_loans`` is a materialized count of the member's Active
loans. Issue and return keep it in step; ``recount_current_loans`` and
``reconcile_loan_counts`` rebuild it from the loans table when the two have
drifted apart.
"""
import logging
from typing import Optional

import models
import policy
from exceptions import ReferenceConflict
from repository import LibraryRepository

logger = logging.getLogger(__name__)


def borrow_rejection(member: models.Member, media: Optional[models.Media] = None) -> Optional[str]:
    """Return why ``member`` may not take ``media`` right now, or None if they may."""
    if not member.is_active():
        return f"Member {member.full_name} is {member.status}"
    if not member.can_borrow():
        return f"Member has reached maximum loan limit ({member.max_loans})"
    if media is not None and not media.is_available():
        return f"'{media.title}' has no copies available"
    return None


def set_member_status(repo: LibraryRepository, member: models.Member, status: str):
    if status not in policy.MEMBER_STATUSES:
        raise ValueError(f"Unknown member status {status!r}")
    member.status = status
    repo.update(member)
    logger.info("Member %s status set to %s", member.id, status)


def recount_current_loans(repo: LibraryRepository, member: models.Member):
    """Rebuild the member's loan counter from their Active loans. Returns (old, new)."""
    old = member.current_loans
    new = repo.count_active_loans(member)
    if old != new:
        member.current_loans = new
        repo.update(member)
        logger.warning("Member %s loan counter drifted: stored %s, actual %s", member.id, old, new)
    return old, new


def reconcile_loan_counts(repo: LibraryRepository):
    """Recount every member; returns the members whose counter was corrected."""
    corrected = []
    for member in repo.list_all(models.Member):
        old, new = recount_current_loans(repo, member)
        if old != new:
            corrected.append(member)
    return corrected


# --- Deletion guards ---

def delete_member(repo: LibraryRepository, member: models.Member):
    loans = repo.loans_for_member(member)
    active = [l for l in loans if l.is_active()]
    if active:
        raise ReferenceConflict(f"Cannot delete. Member still has {len(active)} items on loan.")
    if loans or repo.fines_for_member(member):
        raise ReferenceConflict(
            "Cannot delete. Member has loan or fine history; set the status to Inactive instead."
        )
    repo.delete(member)
    logger.info("Deleted member %s", member.id)


def delete_media(repo: LibraryRepository, media: models.Media):
    if media.copies_on_loan > 0:
        raise ReferenceConflict(
            f"Cannot delete media with {media.copies_on_loan} copies currently on loan."
        )
    if repo.loans_for_media(media):
        raise ReferenceConflict("Cannot delete media with loan history.")
    repo.delete(media)
    logger.info("Deleted media %s", media.id)


def delete_category(repo: LibraryRepository, category: models.Category):
    if category.media:
        raise ReferenceConflict(f"Cannot delete. {len(category.media)} media items use this category.")
    repo.delete(category)


def delete_author(repo: LibraryRepository, author: models.Author):
    if author.media:
        raise ReferenceConflict(f"Cannot delete. {len(author.media)} media items reference this author.")
    repo.delete(author)
