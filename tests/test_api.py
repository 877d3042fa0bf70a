from datetime import date, timedelta
from decimal import Decimal

import pytest

from conftest import days_ago


@pytest.fixture
def category(client):
    resp = client.post("/api/categories", json={"name": "Fiction", "loan_duration_days": 14})
    assert resp.status_code == 201
    return resp.json()


@pytest.fixture
def media(client, category):
    author = client.post("/api/authors", json={"first_name": "Jane", "last_name": "Austen"}).json()
    resp = client.post("/api/media", json={
        "title": "Emma",
        "isbn": "9780141439587",
        "category_id": category["id"],
        "author_id": author["id"],
        "total_copies": 2,
    })
    assert resp.status_code == 201
    return resp.json()


@pytest.fixture
def member(client):
    resp = client.post("/api/members", json={
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@test.com",
    })
    assert resp.status_code == 201
    return resp.json()


def issue(client, member, media, loan_date=None):
    body = {"member_id": member["id"], "media_id": media["id"]}
    if loan_date:
        body["loan_date"] = loan_date.isoformat()
    return client.post("/api/loans", json=body)


def test_health(client):
    assert client.get("/api/health").json()["status"] == "ok"


def test_catalog_endpoints(client, media):
    assert media["available_copies"] == 2
    assert media["loan_duration_days"] == 14
    assert media["author_name"] == "Jane Austen"
    assert media["category_name"] == "Fiction"
    assert [m["title"] for m in client.get("/api/media", params={"q": "austen"}).json()] == ["Emma"]


def test_media_requires_existing_category(client):
    resp = client.post("/api/media", json={"title": "Orphan", "category_id": 999})
    assert resp.status_code == 404


def test_media_stock_resize(client, member, media):
    issue(client, member, media)
    resp = client.put(f"/api/media/{media['id']}", json={"total_copies": 4})
    assert resp.json()["available_copies"] == 3
    resp = client.put(f"/api/media/{media['id']}", json={"total_copies": 0})
    assert resp.status_code == 400


def test_null_for_required_field_leaves_value(client, category, media, member):
    resp = client.put(f"/api/media/{media['id']}", json={
        "title": None, "category_id": None, "total_copies": None, "location": "Shelf 9",
    })
    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "Emma"
    assert body["category_name"] == "Fiction"
    assert body["total_copies"] == 2
    assert body["location"] == "Shelf 9"

    resp = client.put(f"/api/categories/{category['id']}", json={"loan_duration_days": None})
    assert resp.status_code == 200
    assert resp.json()["loan_duration_days"] == 14

    resp = client.put(f"/api/members/{member['id']}", json={"email": None, "phone": "555-0100"})
    assert resp.status_code == 200
    assert resp.json()["email"] == "ada@test.com"
    assert resp.json()["phone"] == "555-0100"


def test_new_member_defaults(member):
    assert member["status"] == "Active"
    assert member["max_loans"] == 5
    assert member["current_loans"] == 0
    assert member["borrowing_allowed"] is True
    assert member["member_since"] == date.today().isoformat()


def test_duplicate_email_rejected(client, member):
    resp = client.post("/api/members", json={"first_name": "A", "last_name": "B", "email": "ada@test.com"})
    assert resp.status_code == 400


def test_missing_member_is_404(client):
    assert client.get("/api/members/999").status_code == 404


def test_issue_and_return_flow(client, member, media):
    resp = issue(client, member, media, loan_date=days_ago(34))
    assert resp.status_code == 201
    loan = resp.json()
    assert loan["due_date"] == (days_ago(34) + timedelta(days=14)).isoformat()
    assert loan["status"] == "Active"

    assert client.get(f"/api/media/{media['id']}").json()["available_copies"] == 1
    assert client.get(f"/api/members/{member['id']}").json()["current_loans"] == 1

    detail = client.get(f"/api/loans/{loan['id']}").json()
    assert detail["days_overdue"] == 20
    assert Decimal(detail["fine_due"]) == Decimal("10.00")

    resp = client.post(f"/api/loans/{loan['id']}/return", json={})
    assert resp.status_code == 200
    body = resp.json()
    assert body["loan"]["status"] == "Returned"
    assert Decimal(body["fine"]["amount"]) == Decimal("10.00")

    assert client.get(f"/api/media/{media['id']}").json()["available_copies"] == 2
    refreshed = client.get(f"/api/members/{member['id']}").json()
    assert refreshed["current_loans"] == 0
    assert Decimal(refreshed["outstanding_balance"]) == Decimal("10.00")


def test_return_in_future_rejected(client, member, media):
    loan = issue(client, member, media).json()
    future = (date.today() + timedelta(days=30)).isoformat()
    resp = client.post(f"/api/loans/{loan['id']}/return", json={"return_date": future})
    assert resp.status_code == 400
    assert "future" in resp.json()["detail"]


def test_suspended_member_cannot_borrow(client, member, media):
    client.patch(f"/api/members/{member['id']}/status", json={"status": "Suspended"})
    resp = issue(client, member, media)
    assert resp.status_code == 400
    assert "Suspended" in resp.json()["detail"]


def test_invalid_status_rejected(client, member):
    resp = client.patch(f"/api/members/{member['id']}/status", json={"status": "Banned"})
    assert resp.status_code == 422


def test_renew(client, member, media):
    loan = issue(client, member, media).json()
    resp = client.post(f"/api/loans/{loan['id']}/renew")
    assert resp.status_code == 200
    assert resp.json()["renewal_count"] == 1
    client.post(f"/api/loans/{loan['id']}/renew")
    resp = client.post(f"/api/loans/{loan['id']}/renew")
    assert resp.status_code == 400
    assert "limit" in resp.json()["detail"]


def test_list_loans_filters(client, member, media):
    late = issue(client, member, media, loan_date=days_ago(20)).json()
    issue(client, member, media)
    assert [l["id"] for l in client.get("/api/loans", params={"status": "overdue"}).json()] == [late["id"]]
    assert len(client.get("/api/loans", params={"status": "active"}).json()) == 2
    assert client.get("/api/loans", params={"status": "returned"}).json() == []

    assert [l["id"] for l in client.get("/api/loans", params={"status": "overdue", "q": "emma"}).json()] == [late["id"]]
    assert client.get("/api/loans", params={"status": "overdue", "q": "dune"}).json() == []

    history = client.get(f"/api/members/{member['id']}/loans").json()
    assert len(history["active_loans"]) == 2
    assert history["past_loans"] == []


def test_fine_endpoints(client, member, media):
    issue(client, member, media, loan_date=days_ago(19))
    generated = client.post("/api/fines/generate").json()
    assert len(generated) == 1
    assert Decimal(generated[0]["amount"]) == Decimal("2.50")
    assert client.post("/api/fines/generate").json() == []

    manual = client.post("/api/fines", json={
        "member_id": member["id"], "amount": "4.00", "reason": "Damaged cover",
    }).json()
    assert manual["status"] == "Outstanding"

    balance = client.get(f"/api/members/{member['id']}/balance").json()
    assert Decimal(balance["outstanding_total"]) == Decimal("6.50")

    waived = client.post(f"/api/fines/{manual['id']}/waive").json()
    assert waived["status"] == "Waived"
    assert waived["paid_date"] == date.today().isoformat()
    assert client.post(f"/api/fines/{manual['id']}/pay").status_code == 400

    paid = client.post(f"/api/fines/{generated[0]['id']}/pay").json()
    assert paid["status"] == "Paid"

    total = client.get("/api/reports/outstanding").json()
    assert Decimal(total["outstanding_total"]) == Decimal("0.00")
    assert len(client.get("/api/fines", params={"status": "waived"}).json()) == 1


def test_delete_member_with_loans_conflicts(client, member, media):
    issue(client, member, media)
    resp = client.delete(f"/api/members/{member['id']}")
    assert resp.status_code == 409


def test_reports(client, member, media):
    issue(client, member, media, loan_date=days_ago(16))
    stats = client.get("/api/reports/stats").json()
    assert stats["active_loans"] == 1
    assert stats["overdue_loans"] == 1
    overdue = client.get("/api/reports/overdue").json()
    assert overdue[0]["days_overdue"] == 2
    assert overdue[0]["member_name"] == "Ada Lovelace"


def test_reconcile_endpoint(client, member, media):
    issue(client, member, media)
    client.put(f"/api/members/{member['id']}", json={})
    assert client.post("/api/maintenance/reconcile").json() == {"corrected_member_ids": []}
    resp = client.post(f"/api/members/{member['id']}/recount").json()
    assert resp == {"member_id": member["id"], "stored": 1, "actual": 1}


def test_staff_role_flag(client):
    resp = client.post("/api/staff", json={
        "first_name": "Super", "last_name": "Admin", "email": "admin@library.com",
        "username": "admin", "role": "Administrator",
    })
    assert resp.status_code == 201
    assert resp.json()["admin"] is True
    assert resp.json()["hire_date"] == date.today().isoformat()
