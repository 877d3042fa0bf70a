import logging
from datetime import date, timedelta

from database import SessionLocal, engine, Base
from repository import LibraryRepository
import circulation
import fines
import models
import policy

logger = logging.getLogger(__name__)


def reset_db():
    logger.warning("Resetting database...")
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    logger.info("Database reset complete.")


def seed_db():
    db = SessionLocal()
    repo = LibraryRepository(db)
    today = date.today()
    try:
        logger.info("Seeding demo data...")

        # =====================================================
        # 1. CATALOG
        # =====================================================
        fiction = models.Category(name="Fiction", description="Novels and short stories", loan_duration_days=21)
        reference = models.Category(name="Reference", description="Dictionaries and handbooks", loan_duration_days=7)
        tech = models.Category(name="Technology", description="Programming and engineering")

        orwell = models.Author(first_name="George", last_name="Orwell", nationality="British")
        herbert = models.Author(first_name="Frank", last_name="Herbert", nationality="American")
        martin = models.Author(first_name="Robert C.", last_name="Martin", nationality="American")

        media_data = [
            {"title": "1984", "author": orwell, "category": fiction, "total_copies": 2, "isbn": "9780451524935"},
            {"title": "Animal Farm", "author": orwell, "category": fiction, "total_copies": 1, "isbn": "9780451526342"},
            {"title": "Dune", "author": herbert, "category": fiction, "total_copies": 3, "isbn": "9780441172719"},
            {"title": "Clean Code", "author": martin, "category": tech, "total_copies": 2, "isbn": "9780132350884"},
            {"title": "Oxford Dictionary", "author": None, "category": reference, "total_copies": 1},
            {"title": "Blade Runner", "author": None, "category": None, "type": "DVD", "total_copies": 1},
            {"title": "National Geographic", "author": None, "category": None, "type": "Magazine", "total_copies": 4},
        ]
        # Media without a category fall back to the type default but the column is required,
        # so those land in a catch-all category with the type's duration
        catalog = {}
        for data in media_data:
            category = data.pop("category")
            if category is None:
                category = models.Category(
                    name=f"{data['type']} Collection",
                    loan_duration_days=policy.type_loan_days(data["type"]),
                )
            item = models.Media(category=category, location=f"Shelf {len(catalog) + 1}", **data)
            db.add(item)
            catalog[item.title] = item
        db.commit()

        # =====================================================
        # 2. PEOPLE
        # =====================================================
        alice = models.Member(first_name="Alice", last_name="Active", email="alice@test.com")
        bob = models.Member(first_name="Bob", last_name="Late", email="bob@test.com")
        carol = models.Member(first_name="Carol", last_name="Capped", email="carol@test.com", max_loans=1)
        dave = models.Member(first_name="Dave", last_name="Suspended", email="dave@test.com", status="Suspended")

        admin = models.Staff(first_name="Super", last_name="Admin", email="admin@library.com",
                             username="admin", role="Administrator", position="Head Librarian")
        linda = models.Staff(first_name="Linda", last_name="Librarian", email="lib@library.com",
                             username="linda", position="Librarian")

        db.add_all([alice, bob, carol, dave, admin, linda])
        db.commit()

        # =====================================================
        # 3. LOANS (past dates so some are already overdue)
        # =====================================================
        circulation.issue_loan(repo, alice, catalog["Dune"], loan_date=today - timedelta(days=3))
        circulation.issue_loan(repo, alice, catalog["Clean Code"], loan_date=today - timedelta(days=10))
        circulation.issue_loan(repo, bob, catalog["1984"], loan_date=today - timedelta(days=40))
        circulation.issue_loan(repo, bob, catalog["Blade Runner"], loan_date=today - timedelta(days=12))
        circulation.issue_loan(repo, carol, catalog["Animal Farm"], loan_date=today - timedelta(days=5))

        returned = circulation.issue_loan(repo, alice, catalog["Oxford Dictionary"], loan_date=today - timedelta(days=30))
        circulation.return_loan(repo, returned, return_date=today - timedelta(days=18))

        # =====================================================
        # 4. FINES
        # =====================================================
        fines.create_fine(repo, dave, "5.00", "Damaged item", description="Water damage on returned magazine")
        created = fines.generate_overdue_fines(repo)

        logger.info("Seeding complete: %s media, 4 members, %s overdue fines.", len(catalog), len(created))
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    reset_db()
    seed_db()
