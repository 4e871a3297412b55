"""Shared request layer for the remote expense REST backend.

One ``BackendClient`` per console process. It owns the bearer token, retries
transient failures with exponential backoff and turns every failure into an
``ApiError``. Payloads are validated against ``expense_console.schemas`` before
they leave this module.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

import httpx
from pydantic import TypeAdapter, ValidationError

from expense_console.core.config import Settings
from expense_console.core.errors import (
    INVALID_RESPONSE,
    ApiError,
    from_response,
    is_retryable,
    normalize_error,
)
from expense_console.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    UpdateProfileRequest,
    User,
)
from expense_console.schemas.common import Page
from expense_console.schemas.expense import (
    Expense,
    ExpenseCreate,
    ExpenseList,
    ExpenseQueryParams,
    ExpenseStatus,
    ExpenseUpdate,
    FileUploadOut,
    StatusHistoryEntry,
)
from expense_console.schemas.importing import ImportRecord
from expense_console.schemas.notification import Notification, NotificationList
from expense_console.schemas.reference import (
    Category,
    CategoryCreate,
    CategoryStatistics,
    CategoryUpdate,
    CategoryUsage,
    Vendor,
    VendorCreate,
    VendorUpdate,
)
from expense_console.schemas.report import (
    ConvertRequest,
    ConvertResult,
    DashboardStats,
    ExchangeRate,
    ExportRequest,
    PaymentsDuePeriod,
    Report,
    ReportFilters,
)

logger = logging.getLogger(__name__)

UnauthorizedHook = Callable[[], Union[None, Awaitable[None]]]

_ENVELOPE_KEYS = {"data", "pagination", "message", "success", "meta", "statusCode"}


@dataclass(frozen=True)
class ExportedFile:
    content: bytes
    content_type: str
    filename: str


def _clean_params(params: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if not params:
        return None
    cleaned: dict[str, Any] = {}
    for key, value in params.items():
        if value is None or value == "" or value == []:
            continue
        if isinstance(value, bool):
            cleaned[key] = "true" if value else "false"
        else:
            cleaned[key] = value
    return cleaned or None


def unwrap(payload: Any) -> Any:
    """Strip the ``{data, pagination, message}`` envelope when the backend sends one."""
    if isinstance(payload, dict) and "data" in payload and set(payload) <= _ENVELOPE_KEYS:
        return payload["data"]
    return payload


def parse(model: Any, payload: Any) -> Any:
    try:
        return TypeAdapter(model).validate_python(payload)
    except ValidationError as exc:
        logger.warning("Backend payload rejected by %s: %s", getattr(model, "__name__", model), exc)
        raise ApiError(INVALID_RESPONSE, "The server returned data in an unexpected format") from exc


def _filename_from(response: httpx.Response, default: str) -> str:
    disposition = response.headers.get("content-disposition", "")
    for part in disposition.split(";"):
        part = part.strip()
        if part.lower().startswith("filename="):
            return part.split("=", 1)[1].strip().strip('"') or default
    return default


class BackendClient:
    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_unauthorized: Optional[UnauthorizedHook] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._token: Optional[str] = None
        self._on_unauthorized = on_unauthorized
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=settings.api_base_url.rstrip("/"),
            timeout=settings.api_timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token or None

    def set_unauthorized_hook(self, hook: Optional[UnauthorizedHook]) -> None:
        self._on_unauthorized = hook

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Core request loop
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        if self._token:
            return {"Authorization": f"Bearer {self._token}"}
        return {}

    def _max_retries(self, mutation: bool) -> int:
        if mutation:
            return max(0, int(self._settings.mutation_max_retries))
        return max(0, int(self._settings.query_max_retries))

    def retry_delay(self, attempt: int, *, mutation: bool) -> float:
        if mutation:
            return float(self._settings.mutation_retry_delay_seconds)
        base = float(self._settings.retry_base_delay_seconds)
        return min(base * (2 ** attempt), float(self._settings.retry_max_delay_seconds))

    @staticmethod
    def should_retry(error: ApiError) -> bool:
        # client errors are never retried, 408 and 429 included
        if error.status is not None and 400 <= error.status < 500:
            return False
        return is_retryable(error)

    async def _handle_unauthorized(self) -> None:
        logger.warning("Backend answered 401; clearing session")
        self._token = None
        if self._on_unauthorized is None:
            return
        result = self._on_unauthorized()
        if inspect.isawaitable(result):
            await result

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
        files: Optional[dict[str, Any]] = None,
        mutation: Optional[bool] = None,
    ) -> httpx.Response:
        is_mutation = method.upper() != "GET" if mutation is None else mutation
        max_retries = self._max_retries(is_mutation)
        attempt = 0
        while True:
            try:
                response = await self._client.request(
                    method,
                    path,
                    json=json,
                    params=_clean_params(params),
                    files=files,
                    headers=self._headers(),
                )
            except httpx.HTTPError as exc:
                error = normalize_error(exc)
            else:
                if response.is_success:
                    return response
                error = from_response(response)

            if error.status == 401:
                await self._handle_unauthorized()
                raise error
            if attempt >= max_retries or not self.should_retry(error):
                logger.warning("%s %s failed: code=%s status=%s", method, path, error.code, error.status)
                raise error

            delay = self.retry_delay(attempt, mutation=is_mutation)
            attempt += 1
            logger.info(
                "Retrying %s %s in %.1fs (attempt %s/%s, code=%s)",
                method,
                path,
                delay,
                attempt,
                max_retries,
                error.code,
            )
            await self._sleep(delay)

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self.send(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(INVALID_RESPONSE, "The server returned data in an unexpected format") from exc

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def login(self, credentials: LoginRequest) -> AuthResponse:
        payload = await self.request("POST", "/auth/login", json=credentials.model_dump())
        return parse(AuthResponse, unwrap(payload))

    async def register(self, data: RegisterRequest) -> AuthResponse:
        payload = await self.request("POST", "/auth/register", json=data.to_backend())
        return parse(AuthResponse, unwrap(payload))

    async def get_profile(self) -> User:
        return parse(User, unwrap(await self.request("GET", "/auth/profile")))

    async def update_profile(self, data: UpdateProfileRequest) -> User:
        payload = await self.request("PATCH", "/auth/profile", json=data.to_backend())
        return parse(User, unwrap(payload))

    async def refresh_token(self) -> AuthResponse:
        return parse(AuthResponse, unwrap(await self.request("POST", "/auth/refresh")))

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    async def list_expenses(self, params: Optional[ExpenseQueryParams] = None) -> ExpenseList:
        query = params.to_backend() if params else None
        payload = await self.request("GET", "/expenses", params=query)
        if isinstance(payload, list):
            payload = {"data": payload}
        return parse(ExpenseList, payload)

    async def get_expense(self, expense_id: str) -> Expense:
        return parse(Expense, unwrap(await self.request("GET", f"/expenses/{expense_id}")))

    async def create_expense(self, data: ExpenseCreate) -> Expense:
        payload = await self.request("POST", "/expenses", json=data.to_backend())
        return parse(Expense, unwrap(payload))

    async def update_expense(self, expense_id: str, data: ExpenseUpdate) -> Expense:
        payload = await self.request("PATCH", f"/expenses/{expense_id}", json=data.to_backend())
        return parse(Expense, unwrap(payload))

    async def delete_expense(self, expense_id: str) -> None:
        await self.request("DELETE", f"/expenses/{expense_id}")

    async def update_expense_status(
        self, expense_id: str, status: ExpenseStatus, notes: Optional[str] = None
    ) -> Optional[Expense]:
        """Returns the updated expense, or None when the backend answers without a body."""
        body: dict[str, Any] = {"status": status.value}
        if notes:
            body["notes"] = notes
        payload = unwrap(await self.request("PATCH", f"/expenses/{expense_id}/status", json=body))
        if not payload:
            return None
        return parse(Expense, payload)

    async def get_status_history(self, expense_id: str) -> list[StatusHistoryEntry]:
        payload = await self.request("GET", f"/expenses/{expense_id}/status-history")
        return parse(list[StatusHistoryEntry], unwrap(payload) or [])

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def list_categories(self, params: Optional[dict[str, Any]] = None) -> list[Category]:
        payload = await self.request("GET", "/categories", params=params)
        return parse(list[Category], unwrap(payload) or [])

    async def get_category(self, category_id: str) -> Category:
        return parse(Category, unwrap(await self.request("GET", f"/categories/{category_id}")))

    async def create_category(self, data: CategoryCreate) -> Category:
        payload = await self.request("POST", "/categories", json=data.to_backend())
        return parse(Category, unwrap(payload))

    async def update_category(self, category_id: str, data: CategoryUpdate) -> Category:
        payload = await self.request("PUT", f"/categories/{category_id}", json=data.to_backend())
        return parse(Category, unwrap(payload))

    async def delete_category(self, category_id: str) -> None:
        await self.request("DELETE", f"/categories/{category_id}")

    async def update_category_status(self, category_id: str, is_active: bool) -> Category:
        payload = await self.request(
            "PUT", f"/categories/{category_id}/status", json={"isActive": is_active}
        )
        return parse(Category, unwrap(payload))

    async def get_category_usage(self, category_id: str) -> CategoryUsage:
        payload = await self.request("GET", f"/categories/{category_id}/usage")
        return parse(CategoryUsage, unwrap(payload))

    async def get_category_statistics(self) -> CategoryStatistics:
        payload = await self.request("GET", "/categories/statistics")
        return parse(CategoryStatistics, unwrap(payload))

    # ------------------------------------------------------------------
    # Vendors
    # ------------------------------------------------------------------

    async def list_vendors(self, params: Optional[dict[str, Any]] = None) -> Page[Vendor]:
        payload = await self.request("GET", "/vendors", params=params)
        if isinstance(payload, list):
            payload = {"data": payload}
        return parse(Page[Vendor], payload)

    async def get_active_vendors(self) -> list[Vendor]:
        payload = await self.request("GET", "/vendors/active")
        return parse(list[Vendor], unwrap(payload) or [])

    async def get_vendor(self, vendor_id: str) -> Vendor:
        return parse(Vendor, unwrap(await self.request("GET", f"/vendors/{vendor_id}")))

    async def create_vendor(self, data: VendorCreate) -> Vendor:
        payload = await self.request("POST", "/vendors", json=data.to_backend())
        return parse(Vendor, unwrap(payload))

    async def update_vendor(self, vendor_id: str, data: VendorUpdate) -> Vendor:
        payload = await self.request("PATCH", f"/vendors/{vendor_id}", json=data.to_backend())
        return parse(Vendor, unwrap(payload))

    async def delete_vendor(self, vendor_id: str) -> None:
        await self.request("DELETE", f"/vendors/{vendor_id}")

    async def toggle_vendor_status(self, vendor_id: str) -> Vendor:
        payload = await self.request("PATCH", f"/vendors/{vendor_id}/toggle-status")
        return parse(Vendor, unwrap(payload))

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def upload_file(self, filename: str, content: bytes, content_type: str) -> FileUploadOut:
        payload = await self.request(
            "POST",
            "/files/upload",
            files={"file": (filename, content, content_type)},
        )
        return parse(FileUploadOut, unwrap(payload))

    async def get_file(self, file_id: str) -> FileUploadOut:
        return parse(FileUploadOut, unwrap(await self.request("GET", f"/files/{file_id}")))

    async def delete_file(self, file_id: str) -> None:
        await self.request("DELETE", f"/files/{file_id}")

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def list_notifications(
        self, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> NotificationList:
        payload = await self.request(
            "GET", "/notifications", params={"status": status, "limit": limit, "offset": offset}
        )
        if isinstance(payload, list):
            payload = {"data": payload}
        return parse(NotificationList, payload)

    async def get_unread_count(self) -> int:
        payload = unwrap(await self.request("GET", "/notifications/unread-count"))
        if isinstance(payload, dict):
            payload = payload.get("count", 0)
        return parse(int, payload or 0)

    async def mark_notification_read(self, notification_id: str) -> Notification:
        payload = await self.request("PATCH", f"/notifications/{notification_id}/read")
        return parse(Notification, unwrap(payload))

    async def dismiss_notification(self, notification_id: str) -> Notification:
        payload = await self.request("PATCH", f"/notifications/{notification_id}/dismiss")
        return parse(Notification, unwrap(payload))

    async def mark_all_notifications_read(self) -> None:
        await self.request("PATCH", "/notifications/mark-all-read")

    # ------------------------------------------------------------------
    # Dashboard, reports, currency
    # ------------------------------------------------------------------

    async def get_dashboard_stats(self) -> DashboardStats:
        return parse(DashboardStats, unwrap(await self.request("GET", "/dashboard/stats")))

    async def get_reports(self, filters: ReportFilters) -> Report:
        payload = await self.request("GET", "/reports", params=filters.to_backend())
        if isinstance(payload, list):
            payload = {"data": payload}
        return parse(Report, payload)

    async def get_payments_due(self, period: PaymentsDuePeriod) -> list[dict[str, Any]]:
        payload = await self.request("GET", "/reports/payments-due", params={"period": period.value})
        return parse(list[dict[str, Any]], unwrap(payload) or [])

    async def export_report(self, request: ExportRequest) -> ExportedFile:
        response = await self.send("POST", "/reports/export", json=request.to_backend(), mutation=False)
        extension = {"excel": "xlsx", "csv": "csv", "pdf": "pdf"}[request.format.value]
        return ExportedFile(
            content=response.content,
            content_type=response.headers.get("content-type", "application/octet-stream"),
            filename=_filename_from(response, f"{request.report_type}-report.{extension}"),
        )

    async def get_exchange_rate(
        self, from_currency: str, to_currency: str, on_date: Optional[str] = None
    ) -> ExchangeRate:
        payload = await self.request(
            "GET",
            "/currency/exchange-rate",
            params={"from": from_currency, "to": to_currency, "date": on_date},
        )
        return parse(ExchangeRate, unwrap(payload))

    async def convert_currency(self, data: ConvertRequest) -> ConvertResult:
        payload = await self.request("POST", "/currency/convert", json=data.to_backend(), mutation=False)
        return parse(ConvertResult, unwrap(payload))

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def upload_import(self, filename: str, content: bytes, content_type: str) -> ImportRecord:
        payload = await self.request(
            "POST",
            "/import/upload",
            files={"file": (filename, content, content_type)},
        )
        return parse(ImportRecord, unwrap(payload))

    async def get_import_status(self, import_id: str) -> ImportRecord:
        payload = await self.request("GET", f"/import/status/{import_id}")
        return parse(ImportRecord, unwrap(payload))

    async def get_import_history(self) -> list[ImportRecord]:
        payload = await self.request("GET", "/import/history")
        return parse(list[ImportRecord], unwrap(payload) or [])
