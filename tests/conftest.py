import itertools
import os
from datetime import date, timedelta

# Keep the app's module-level engine off disk
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from database import Base, get_db, make_engine
from repository import LibraryRepository
import models

_seq = itertools.count(1)


def days_ago(n: int) -> date:
    return date.today() - timedelta(days=n)


@pytest.fixture
def db():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = TestingSession()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def repo(db):
    return LibraryRepository(db)


@pytest.fixture
def client(db):
    from main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_category(repo):
    def _make(name=None, loan_duration_days=14, **kwargs):
        category = models.Category(
            name=name or f"Category {next(_seq)}", loan_duration_days=loan_duration_days, **kwargs
        )
        repo.create(category)
        return category
    return _make


@pytest.fixture
def make_media(repo, make_category):
    def _make(title="Dune", total_copies=2, category=None, **kwargs):
        media = models.Media(
            title=title,
            total_copies=total_copies,
            category=category or make_category(),
            **kwargs,
        )
        repo.create(media)
        return media
    return _make


@pytest.fixture
def make_member(repo):
    def _make(first_name="Ada", last_name="Reader", **kwargs):
        kwargs.setdefault("email", f"reader{next(_seq)}@test.com")
        member = models.Member(first_name=first_name, last_name=last_name, **kwargs)
        repo.create(member)
        return member
    return _make
