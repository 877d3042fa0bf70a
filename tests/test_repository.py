from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

import circulation
import fines
import models
from exceptions import PersistenceError
from conftest import days_ago


@pytest.fixture
def catalog(repo, make_category, make_media):
    fiction = make_category(name="Fiction")
    austen = models.Author(first_name="Jane", last_name="Austen", nationality="British")
    emma = make_media(title="Emma", isbn="9780141439587", author=austen, category=fiction)
    dune = make_media(title="Dune", isbn="9780441172719", category=fiction, total_copies=1)
    return emma, dune


def test_create_assigns_id(repo):
    author = models.Author(first_name="Jane", last_name="Austen")
    assert author.id is None
    new_id = repo.create(author)
    assert new_id == author.id > 0
    assert repo.find_by_id(models.Author, new_id) is author


def test_update_and_delete(repo, make_member):
    member = make_member()
    member.phone = "555-0100"
    repo.update(member)
    repo.session.expire_all()
    assert repo.find_by_id(models.Member, member.id).phone == "555-0100"

    repo.delete(member)
    assert repo.find_by_id(models.Member, member.id) is None


def test_constraint_violation_raises_persistence_error(repo, make_member):
    make_member(email="dup@test.com")
    with pytest.raises(PersistenceError) as exc_info:
        make_member(email="dup@test.com")
    assert isinstance(exc_info.value.__cause__, IntegrityError)
    assert repo.count(models.Member) == 1


def test_list_all_ordered_by_id(repo, make_member):
    members = [make_member() for _ in range(3)]
    assert repo.list_all(models.Member) == members


@pytest.mark.parametrize("term, titles", [
    ("emma", ["Emma"]),
    ("AUSTEN", ["Emma"]),
    ("978044", ["Dune"]),
    ("", ["Emma", "Dune"]),
    ("nothing", []),
])
def test_search_media(repo, catalog, term, titles):
    assert [m.title for m in repo.search(models.Media, term)] == titles


def test_search_media_by_id(repo, catalog):
    emma, _ = catalog
    assert emma in repo.search(models.Media, str(emma.id))


def test_search_members(repo, make_member):
    ada = make_member(first_name="Ada", last_name="Lovelace", email="ada@math.org")
    make_member(first_name="Alan", last_name="Turing", email="alan@bletchley.uk")
    assert repo.search(models.Member, "LOVE") == [ada]
    assert repo.search(models.Member, "math.org") == [ada]


def test_search_loans_and_fines(repo, make_member, catalog):
    emma, dune = catalog
    ada = make_member(first_name="Ada", last_name="Lovelace")
    loan = circulation.issue_loan(repo, ada, emma)
    fine = fines.create_fine(repo, ada, 1, "Torn page")

    assert repo.search(models.Loan, "lovelace") == [loan]
    assert repo.search(models.Loan, "emma") == [loan]
    assert repo.search(models.Fine, "torn") == [fine]
    assert repo.search(models.Fine, "ada") == [fine]


def test_loan_queries(repo, make_member, catalog):
    emma, dune = catalog
    ada = make_member()
    on_time = circulation.issue_loan(repo, ada, emma, loan_date=days_ago(1))
    late = circulation.issue_loan(repo, make_member(), dune, loan_date=days_ago(20))
    returned = circulation.issue_loan(repo, ada, emma, loan_date=days_ago(3))
    circulation.return_loan(repo, returned)

    assert set(repo.active_loans()) == {on_time, late}
    assert repo.overdue_loans() == [late]
    assert set(repo.loans_for_member(ada)) == {on_time, returned}
    assert repo.loans_for_member(ada, active_only=True) == [on_time]
    assert repo.count_active_loans(ada) == 1
    assert repo.available_media() == [emma]


def test_fine_queries(repo, make_member, catalog):
    emma, _ = catalog
    ada = make_member()
    loan = circulation.issue_loan(repo, ada, emma, loan_date=days_ago(20))
    open_fine = fines.create_fine(repo, ada, "2.50", "Late", loan=loan)
    paid = fines.create_fine(repo, ada, "1.00", "Late")
    fines.pay_fine(repo, paid)

    assert repo.outstanding_fines() == [open_fine]
    assert repo.outstanding_fines(ada) == [open_fine]
    assert repo.outstanding_fines_for_loan(loan) == [open_fine]
    assert set(repo.fines_for_member(ada)) == {open_fine, paid}
    assert repo.outstanding_total() == Decimal("2.50")


def test_statistics(repo, make_member, catalog):
    emma, dune = catalog
    circulation.issue_loan(repo, make_member(), dune, loan_date=days_ago(20))
    make_member(status="Inactive")
    fines.generate_overdue_fines(repo)

    stats = repo.statistics()
    assert stats == {
        "total_members": 2,
        "active_members": 1,
        "total_media": 2,
        "available_media": 1,
        "active_loans": 1,
        "overdue_loans": 1,
        "outstanding_fines": 1,
        "outstanding_total": Decimal("3.00"),
    }
