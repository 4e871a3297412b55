from __future__ import annotations

import json
import re
from typing import Any, Callable, Optional

import httpx
import pytest
import pytest_asyncio

from expense_console.core.config import Settings, get_settings
from expense_console.core.dependencies import build_session_factory
from expense_console.core.state import AppState, get_app_state
from expense_console.schemas.auth import User

BACKEND_URL = "http://backend.test"

ACCOUNTANT = {
    "id": "u-1",
    "email": "ann@example.com",
    "firstName": "Ann",
    "lastName": "Lee",
    "role": "ACCOUNTANT",
}
SUBMITTER = {
    "id": "u-2",
    "email": "sam@example.com",
    "firstName": "Sam",
    "lastName": "Park",
    "role": "USER",
}


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def make_expense(expense_id: str = "exp-1", status: str = "DRAFT", **overrides: Any) -> dict:
    data = {
        "id": expense_id,
        "paymentId": "P-001",
        "transactionDate": "2024-03-01T00:00:00.000Z",
        "vendor": {"id": "v-1", "name": "ABC Company"},
        "category": "Office Supplies",
        "amount": 120.0,
        "amountBeforeVAT": 100.0,
        "vatAmount": 20.0,
        "currency": "USD",
        "description": "Office supplies",
        "paymentMethod": "BANK_TRANSFER",
        "status": status,
        "submitter": {k: v for k, v in SUBMITTER.items() if k != "role"},
        "createdAt": "2024-03-01T10:00:00Z",
        "updatedAt": "2024-03-01T10:00:00Z",
    }
    data.update(overrides)
    return data


class FakeBackend:
    """In-memory stand-in for the remote REST API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.expenses: dict[str, dict] = {}
        self.history: dict[str, list[dict]] = {}
        self.imports: dict[str, dict] = {}
        self.users: dict[str, dict] = {"ann@example.com": dict(ACCOUNTANT), "sam@example.com": dict(SUBMITTER)}
        self.unread_count = 3
        self.calls: list[tuple[str, str, Any]] = []
        self.confirmed_status: Optional[str] = None
        self.status_returns_body = True
        self.on_status_patch: Optional[Callable[[httpx.Request], None]] = None
        self._failures: dict[tuple[str, str], list[tuple[int, Any]]] = {}
        self._stubs: dict[tuple[str, str], tuple[int, Any, Optional[bytes], Optional[dict[str, str]]]] = {}
        self._next_id = 100

    # ── setup helpers ───────────────────────────────────────────────

    def add_expense(self, expense_id: str = "exp-1", status: str = "DRAFT", **overrides: Any) -> dict:
        expense = make_expense(expense_id, status, **overrides)
        self.expenses[expense_id] = expense
        return expense

    def fail(self, method: str, path: str, status: int, body: Any = None, *, times: int = 1) -> None:
        queue = self._failures.setdefault((method.upper(), path), [])
        queue.extend([(status, body)] * times)

    def stub(
        self,
        method: str,
        path: str,
        payload: Any = None,
        status: int = 200,
        *,
        content: Optional[bytes] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        """Canned answer for a route the in-memory model does not implement."""
        self._stubs[(method.upper(), path)] = (status, payload, content, headers)

    def calls_to(self, method: str, path: str) -> list[Any]:
        return [body for m, p, body in self.calls if m == method.upper() and p == path]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    # ── request handling ────────────────────────────────────────────

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method.upper()
        path = request.url.path
        body: Any = None
        if request.content and request.headers.get("content-type", "").startswith("application/json"):
            body = json.loads(request.content)
        self.calls.append((method, path, body))

        queue = self._failures.get((method, path))
        if queue:
            status, payload = queue.pop(0)
            if payload is None:
                return httpx.Response(status)
            return httpx.Response(status, json=payload)

        stub = self._stubs.get((method, path))
        if stub is not None:
            status, payload, content, headers = stub
            if content is not None:
                return httpx.Response(status, content=content, headers=headers)
            if payload is None:
                return httpx.Response(status)
            return httpx.Response(status, json=payload)

        return self._route(request, method, path, body)

    def _route(self, request: httpx.Request, method: str, path: str, body: Any) -> httpx.Response:
        if path in ("/auth/login", "/auth/register") and method == "POST":
            user = self.users.get(body["email"])
            if path == "/auth/register":
                user = {
                    "id": f"u-{self._next_id}",
                    "email": body["email"],
                    "firstName": body["firstName"],
                    "lastName": body["lastName"],
                    "role": body.get("role", "USER"),
                }
                self._next_id += 1
                self.users[body["email"]] = user
            elif user is None or body.get("password") != "secret123":
                return httpx.Response(401, json={"message": "Invalid credentials"})
            return httpx.Response(200, json={"user": user, "access_token": f"token-{user['id']}"})
        if path == "/auth/profile":
            token = request.headers.get("authorization", "")
            user = next((u for u in self.users.values() if token.endswith(u["id"])), None)
            if user is None:
                return httpx.Response(401, json={"message": "Unauthorized"})
            if method == "PATCH":
                user.update(body)
            return httpx.Response(200, json={"data": user})
        if path == "/auth/refresh" and method == "POST":
            return httpx.Response(200, json={"user": ACCOUNTANT, "access_token": "token-refreshed"})

        if path == "/expenses" and method == "GET":
            data = list(self.expenses.values())
            status = request.url.params.get("status")
            if status:
                data = [item for item in data if item["status"] == status]
            pagination = {"page": 1, "limit": 10, "total": len(data), "totalPages": 1}
            return httpx.Response(200, json={"data": data, "pagination": pagination})
        if path == "/expenses" and method == "POST":
            expense_id = f"exp-{self._next_id}"
            self._next_id += 1
            expense = make_expense(expense_id, "DRAFT", **{k: v for k, v in body.items() if k != "vendorId"})
            self.expenses[expense_id] = expense
            return httpx.Response(201, json={"data": expense, "message": "Expense created"})

        match = re.fullmatch(r"/expenses/([^/]+)(/status|/status-history)?", path)
        if match:
            return self._expense_route(request, method, match.group(1), match.group(2), body)

        if path == "/notifications/unread-count":
            return httpx.Response(200, json={"count": self.unread_count})
        if path == "/dashboard/stats":
            return httpx.Response(
                200,
                json={"data": {"totalExpenses": 4, "totalAmount": 1234.5, "statusBreakdown": {"DRAFT": 3, "PAID": 1}}},
            )
        if path == "/import/upload" and method == "POST":
            record = {"id": f"imp-{self._next_id}", "fileName": "expenses.csv", "status": "pending"}
            self._next_id += 1
            self.imports[record["id"]] = record
            return httpx.Response(201, json={"data": record})
        match = re.fullmatch(r"/import/status/([^/]+)", path)
        if match and match.group(1) in self.imports:
            return httpx.Response(200, json={"data": self.imports[match.group(1)]})
        if path == "/import/history":
            return httpx.Response(200, json={"data": list(self.imports.values())})

        return httpx.Response(404, json={"message": f"Cannot {method} {path}"})

    def _expense_route(
        self, request: httpx.Request, method: str, expense_id: str, suffix: Optional[str], body: Any
    ) -> httpx.Response:
        expense = self.expenses.get(expense_id)
        if expense is None:
            return httpx.Response(404, json={"message": "Expense not found"})
        if suffix == "/status-history":
            return httpx.Response(200, json={"data": self.history.get(expense_id, [])})
        if suffix == "/status" and method == "PATCH":
            if self.on_status_patch is not None:
                self.on_status_patch(request)
            previous = expense["status"]
            expense["status"] = self.confirmed_status or body["status"]
            self.history.setdefault(expense_id, []).append(
                {
                    "id": f"h-{len(self.history.get(expense_id, [])) + 1}",
                    "fromStatus": previous,
                    "toStatus": expense["status"],
                    "notes": body.get("notes"),
                    "createdAt": f"2024-03-0{len(self.history.get(expense_id, [])) + 2}T09:00:00Z",
                }
            )
            if not self.status_returns_body:
                return httpx.Response(204)
            return httpx.Response(200, json={"data": expense, "message": "Status updated"})
        if method == "GET":
            return httpx.Response(200, json={"data": expense})
        if method == "PATCH":
            expense.update(body)
            return httpx.Response(200, json={"data": expense})
        if method == "DELETE":
            del self.expenses[expense_id]
            return httpx.Response(204)
        return httpx.Response(405, json={"message": "Method not allowed"})


def build_settings(**overrides: Any) -> Settings:
    values = {
        "api_base_url": BACKEND_URL,
        "enable_background_refresh": False,
        "enable_mock_auth": False,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def session_factory(tmp_path):
    return build_session_factory(f"sqlite:///{tmp_path / 'console_state.db'}")


@pytest.fixture
def settings() -> Settings:
    return build_settings()


@pytest_asyncio.fixture
async def state(settings, backend, sleeps, session_factory):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    app_state = AppState(
        settings,
        session_factory=session_factory,
        transport=backend.transport(),
        sleep=_sleep,
    ).hydrate()
    yield app_state
    await app_state.aclose()


def login_as(state: AppState, user: dict, token: Optional[str] = None) -> User:
    model = User.model_validate(user)
    state.auth.login(model, token or f"token-{model.id}")
    return model


@pytest_asyncio.fixture
async def client(state):
    from expense_console.main import app

    async def _override() -> AppState:
        return state

    app.dependency_overrides[get_app_state] = _override
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.pop(get_app_state, None)
