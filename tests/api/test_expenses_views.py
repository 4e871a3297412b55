"""
API tests for the expense views: list, detail, status transitions, approval, history.

Covers:
  - the session guard on every expense route
  - detail view: transition controls and the accountant approval panel
  - approve / return / transition endpoints and their failure shapes
  - read-through caching and refresh after a status change
"""

from __future__ import annotations

import pytest

from expense_console.services import query_keys
from tests.conftest import ACCOUNTANT, SUBMITTER, login_as

API = "/api/v1"
STATUS_PATH = "/expenses/exp-1/status"


# ── guard ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("method", "path"),
    [
        ("GET", "/expenses"),
        ("GET", "/expenses/exp-1"),
        ("POST", "/expenses/exp-1/approve"),
        ("GET", "/expenses/exp-1/history"),
        ("GET", "/dashboard/stats"),
    ],
)
async def test_routes_require_a_session(client, backend, method, path):
    res = await client.request(method, f"{API}{path}", json={} if method == "POST" else None)

    assert res.status_code == 401
    assert res.json()["detail"] == {
        "code": "UNAUTHORIZED",
        "message": "Please log in to continue.",
        "redirect": "/login",
    }
    assert backend.calls == []


# ── detail view ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_accountant_approves_submitted_expense(client, state, backend):
    backend.add_expense("exp-1", "SUBMITTED")
    login_as(state, ACCOUNTANT)

    detail = (await client.get(f"{API}/expenses/exp-1")).json()
    panel = detail["approvalPanel"]
    assert panel["approve"]["targetStatus"] == "APPROVED"
    assert panel["returnToDraft"]["notesRequired"] is True

    res = await client.post(f"{API}/expenses/exp-1/approve", json={"notes": "ok"})

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["status"] == "APPROVED"
    assert "httpStatus" not in body
    assert backend.calls_to("PATCH", STATUS_PATH) == [{"status": "APPROVED", "notes": "ok"}]

    detail = (await client.get(f"{API}/expenses/exp-1")).json()
    assert detail["status"]["status"] == "APPROVED"
    assert detail["status"]["label"] == "Approved"
    assert detail["approvalPanel"] is None
    assert [o["targetStatus"] for o in detail["transitionSelector"]["options"]] == ["PAID", "SUBMITTED"]


@pytest.mark.asyncio
async def test_submitter_sees_only_submit_on_draft(client, state, backend):
    backend.add_expense("exp-1", "DRAFT")
    login_as(state, SUBMITTER)

    detail = (await client.get(f"{API}/expenses/exp-1")).json()

    assert detail["approvalPanel"] is None
    selector = detail["transitionSelector"]
    assert [o["targetStatus"] for o in selector["options"]] == ["SUBMITTED"]
    assert selector["options"][0]["label"] == "Submit for Approval"
    assert selector["disabled"] is False


@pytest.mark.asyncio
async def test_detail_view_formats_amounts_and_people(client, state, backend):
    backend.add_expense("exp-1", "DRAFT", currency="VND", amount=1500000, amountBeforeVAT=1363636.4, vatAmount=136363.6)
    login_as(state, SUBMITTER)

    detail = (await client.get(f"{API}/expenses/exp-1")).json()

    assert detail["vendorName"] == "ABC Company"
    assert detail["amountDisplay"] == "₫1,500,000"
    assert detail["amountBeforeVatDisplay"] == "₫1,363,636"
    assert detail["submitterName"] == "Sam Park"
    assert detail["submitterEmail"] == "sam@example.com"
    assert detail["expense"]["amountBeforeVAT"] == 1363636.4
    assert detail["isPending"] is False


@pytest.mark.asyncio
async def test_closed_expense_has_no_controls(client, state, backend):
    backend.add_expense("exp-1", "CLOSED")
    login_as(state, ACCOUNTANT)

    selector = (await client.get(f"{API}/expenses/exp-1")).json()["transitionSelector"]

    assert selector["options"] == []
    assert selector["disabled"] is True


@pytest.mark.asyncio
async def test_missing_expense_is_404(client, state, backend):
    login_as(state, SUBMITTER)

    res = await client.get(f"{API}/expenses/nope")

    assert res.status_code == 404
    assert res.json()["code"] == "NOT_FOUND"
    assert res.json()["message"] == "Expense not found"


# ── transitions ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_return_without_notes_is_rejected_locally(client, state, backend):
    backend.add_expense("exp-1", "SUBMITTED")
    login_as(state, ACCOUNTANT)

    res = await client.post(f"{API}/expenses/exp-1/return", json={"notes": "  "})

    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert body["code"] == "CLIENT_ERROR"
    assert body["status"] == "SUBMITTED"
    assert "notes" in body["details"]
    assert backend.calls_to("PATCH", STATUS_PATH) == []


@pytest.mark.asyncio
async def test_return_with_notes_goes_back_to_draft(client, state, backend):
    backend.add_expense("exp-1", "SUBMITTED")
    login_as(state, ACCOUNTANT)

    res = await client.post(f"{API}/expenses/exp-1/return", json={"notes": "Missing receipt"})

    assert res.status_code == 200
    assert res.json()["status"] == "DRAFT"
    assert backend.calls_to("PATCH", STATUS_PATH) == [{"status": "DRAFT", "notes": "Missing receipt"}]


@pytest.mark.asyncio
async def test_non_accountant_cannot_approve(client, state, backend):
    backend.add_expense("exp-1", "SUBMITTED")
    login_as(state, SUBMITTER)

    res = await client.post(f"{API}/expenses/exp-1/approve", json={})

    assert res.status_code == 403
    assert res.json()["detail"]["code"] == "FORBIDDEN"
    assert backend.calls_to("PATCH", STATUS_PATH) == []


@pytest.mark.asyncio
async def test_approval_needs_a_submitted_expense(client, state, backend):
    backend.add_expense("exp-1", "DRAFT")
    login_as(state, ACCOUNTANT)

    res = await client.post(f"{API}/expenses/exp-1/approve", json={})

    assert res.status_code == 403


@pytest.mark.asyncio
async def test_generic_transition_accepts_camel_case(client, state, backend):
    backend.add_expense("exp-1", "DRAFT")
    login_as(state, SUBMITTER)

    res = await client.post(f"{API}/expenses/exp-1/transition", json={"targetStatus": "SUBMITTED"})

    assert res.status_code == 200
    assert res.json()["status"] == "SUBMITTED"
    assert res.json()["requestedStatus"] == "SUBMITTED"


@pytest.mark.asyncio
async def test_rejected_transition_keeps_displayed_status(client, state, backend):
    backend.add_expense("exp-1", "DRAFT")
    login_as(state, SUBMITTER)
    backend.fail("PATCH", STATUS_PATH, 400, {"message": "Invoice file is required before submission"})

    res = await client.post(f"{API}/expenses/exp-1/transition", json={"targetStatus": "SUBMITTED"})

    assert res.status_code == 400
    assert res.json()["message"] == "Invoice file is required before submission"
    assert res.json()["status"] == "DRAFT"

    detail = (await client.get(f"{API}/expenses/exp-1")).json()
    assert detail["status"]["status"] == "DRAFT"
    assert detail["isPending"] is False


@pytest.mark.asyncio
async def test_unknown_status_value_is_a_validation_error(client, state, backend):
    backend.add_expense("exp-1", "DRAFT")
    login_as(state, SUBMITTER)

    res = await client.post(f"{API}/expenses/exp-1/transition", json={"targetStatus": "IN_PROGRESS"})

    assert res.status_code == 422


# ── list, history, crud ─────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_is_cached_until_a_status_change(client, state, backend):
    backend.add_expense("exp-1", "DRAFT")
    login_as(state, SUBMITTER)

    first = (await client.get(f"{API}/expenses")).json()
    await client.get(f"{API}/expenses")
    assert len(backend.calls_to("GET", "/expenses")) == 1

    row = first["rows"][0]
    assert row["vendorName"] == "ABC Company"
    assert row["amountDisplay"] == "$120.00"
    assert row["statusLabel"] == "Draft"
    assert row["statusVariant"] == "secondary"
    assert first["pagination"]["total"] == 1

    await client.post(f"{API}/expenses/exp-1/transition", json={"targetStatus": "SUBMITTED"})
    refreshed = (await client.get(f"{API}/expenses")).json()

    assert len(backend.calls_to("GET", "/expenses")) == 2
    assert refreshed["rows"][0]["status"] == "SUBMITTED"


@pytest.mark.asyncio
async def test_list_filters_are_forwarded(client, state, backend):
    backend.add_expense("exp-1", "DRAFT")
    backend.add_expense("exp-2", "PAID")
    login_as(state, SUBMITTER)

    body = (await client.get(f"{API}/expenses", params={"status": "PAID", "sortOrder": "DESC"})).json()

    assert [row["id"] for row in body["rows"]] == ["exp-2"]
    assert body["filters"] == {"page": 1, "limit": 10, "status": "PAID", "sortOrder": "DESC"}


@pytest.mark.asyncio
async def test_history_is_newest_first(client, state, backend):
    backend.add_expense("exp-1", "DRAFT")
    login_as(state, ACCOUNTANT)

    await client.post(f"{API}/expenses/exp-1/transition", json={"targetStatus": "SUBMITTED"})
    await client.post(f"{API}/expenses/exp-1/approve", json={"notes": "ok"})

    history = (await client.get(f"{API}/expenses/exp-1/history")).json()

    assert history["expenseId"] == "exp-1"
    assert [(e["fromStatus"], e["toStatus"]) for e in history["entries"]] == [
        ("SUBMITTED", "APPROVED"),
        ("DRAFT", "SUBMITTED"),
    ]
    assert history["entries"][0]["toLabel"] == "Approved"
    assert history["entries"][0]["notes"] == "ok"


@pytest.mark.asyncio
async def test_create_update_delete(client, state, backend):
    login_as(state, SUBMITTER)
    payload = {
        "transactionDate": "2024-03-05",
        "vendorId": "v-1",
        "category": "Travel",
        "amount": 50,
        "currency": "USD",
        "description": "Taxi",
        "paymentMethod": "CASH",
    }

    created = await client.post(f"{API}/expenses", json=payload)
    assert created.status_code == 201
    expense_id = created.json()["expense"]["id"]
    assert created.json()["expense"]["status"] == "DRAFT"
    assert backend.calls_to("POST", "/expenses")[0]["vendorId"] == "v-1"

    updated = await client.patch(f"{API}/expenses/{expense_id}", json={"description": "Airport taxi"})
    assert updated.status_code == 200
    assert updated.json()["expense"]["description"] == "Airport taxi"
    assert state.cache.get(query_keys.expense_detail(expense_id)).description == "Airport taxi"

    deleted = await client.delete(f"{API}/expenses/{expense_id}")
    assert deleted.status_code == 204
    assert expense_id not in backend.expenses
    assert state.cache.get(query_keys.expense_detail(expense_id)) is None


@pytest.mark.asyncio
async def test_failed_update_rolls_back(client, state, backend):
    backend.add_expense("exp-1", "DRAFT")
    login_as(state, SUBMITTER)
    await client.get(f"{API}/expenses/exp-1")
    backend.fail("PATCH", "/expenses/exp-1", 409, {"message": "Expense was modified by someone else"})

    res = await client.patch(f"{API}/expenses/exp-1", json={"description": "Changed"})

    assert res.status_code == 409
    assert res.json()["code"] == "CONFLICT"
    assert res.json()["message"] == "Expense was modified by someone else"
    assert state.cache.get(query_keys.expense_detail("exp-1")).description == "Office supplies"


@pytest.mark.asyncio
async def test_dashboard_view(client, state, backend):
    login_as(state, ACCOUNTANT)
    state.cache.set(query_keys.unread_count(), 3)

    body = (await client.get(f"{API}/dashboard/stats")).json()

    assert body["totalAmountDisplay"] == "$1,234.50"
    assert body["unreadNotifications"] == 3
    counts = {item["status"]: item["count"] for item in body["statusCounts"]}
    assert counts == {"DRAFT": 3, "SUBMITTED": 0, "APPROVED": 0, "PAID": 1, "CLOSED": 0}


@pytest.mark.asyncio
async def test_backend_outage_is_reported_in_plain_words(client, state, backend, sleeps):
    backend.add_expense("exp-1", "DRAFT")
    login_as(state, SUBMITTER)
    backend.fail("GET", "/expenses/exp-1", 503, times=4)

    res = await client.get(f"{API}/expenses/exp-1")

    assert res.status_code == 503
    assert res.json()["code"] == "SERVER_ERROR"
    assert res.json()["message"] == "Server error. Please try again later."
    assert sleeps == [1.0, 2.0, 4.0]
