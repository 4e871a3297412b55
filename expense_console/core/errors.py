"""Error taxonomy for everything the console observes from the backend.

Every failure crossing the request boundary is normalised into ``ApiError`` so
routers and services only ever deal with one shape.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

import httpx

NETWORK_ERROR = "NETWORK_ERROR"
TIMEOUT = "TIMEOUT"
VALIDATION_ERROR = "VALIDATION_ERROR"
UNAUTHORIZED = "UNAUTHORIZED"
FORBIDDEN = "FORBIDDEN"
NOT_FOUND = "NOT_FOUND"
CONFLICT = "CONFLICT"
RATE_LIMITED = "RATE_LIMITED"
SERVER_ERROR = "SERVER_ERROR"
CLIENT_ERROR = "CLIENT_ERROR"
UNKNOWN_ERROR = "UNKNOWN_ERROR"
INVALID_RESPONSE = "INVALID_RESPONSE"

DEFAULT_FALLBACK_MESSAGE = "An unexpected error occurred."

_STATUS_CODES = {
    400: VALIDATION_ERROR,
    401: UNAUTHORIZED,
    403: FORBIDDEN,
    404: NOT_FOUND,
    409: CONFLICT,
    429: RATE_LIMITED,
}

_RETRYABLE_CODES = {NETWORK_ERROR, TIMEOUT, SERVER_ERROR, RATE_LIMITED}
_RETRYABLE_STATUSES = {408, 429, 500, 502, 503, 504}

_FRIENDLY_MESSAGES = {
    NETWORK_ERROR: "Please check your internet connection and try again.",
    VALIDATION_ERROR: "Please check your input and correct any errors.",
    UNAUTHORIZED: "Please log in to continue.",
    FORBIDDEN: "You do not have permission to perform this action.",
    NOT_FOUND: "The requested resource was not found.",
    CONFLICT: "This action conflicts with existing data.",
    RATE_LIMITED: "Too many requests. Please wait a moment and try again.",
    SERVER_ERROR: "Server error. Please try again later.",
    TIMEOUT: "Request timed out. Please try again.",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ApiError(Exception):
    def __init__(
        self,
        code: str,
        message: str,
        *,
        status: Optional[int] = None,
        details: Optional[dict[str, str]] = None,
        timestamp: Optional[str] = None,
        backend_message: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.details = details or {}
        self.timestamp = timestamp or _now_iso()
        self.backend_message = backend_message

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "status": self.status,
            "details": self.details,
            "timestamp": self.timestamp,
        }

    def __repr__(self) -> str:
        return f"ApiError(code={self.code!r}, status={self.status!r}, message={self.message!r})"


def code_for_status(status: int) -> str:
    if status in _STATUS_CODES:
        return _STATUS_CODES[status]
    if status >= 500:
        return SERVER_ERROR
    return f"HTTP_{status}"


def _field_details(body: dict[str, Any]) -> dict[str, str]:
    """Pull a field -> message map out of the shapes the backend uses for 400s."""
    for key in ("details", "errors", "fieldErrors"):
        raw = body.get(key)
        if isinstance(raw, dict):
            return {str(field): _join_messages(msg) for field, msg in raw.items()}
        if isinstance(raw, list):
            details: dict[str, str] = {}
            for item in raw:
                if not isinstance(item, dict):
                    continue
                field = item.get("field") or item.get("property") or item.get("path")
                if isinstance(field, list):
                    field = ".".join(str(part) for part in field)
                message = item.get("message") or item.get("constraints") or item.get("msg")
                if field:
                    details[str(field)] = _join_messages(message)
            if details:
                return details
    return {}


def _join_messages(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        return "; ".join(str(item) for item in value.values())
    if isinstance(value, (list, tuple)):
        return "; ".join(str(item) for item in value)
    return str(value)


def _backend_message(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    message = body.get("message")
    if isinstance(message, list):
        # class-validator style backends send a list of messages
        return "; ".join(str(item) for item in message) or None
    if message:
        return str(message)
    error = body.get("error")
    if isinstance(error, str) and error:
        return error
    return None


def from_response(response: httpx.Response) -> ApiError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    status = response.status_code
    code = code_for_status(status)
    backend_message = _backend_message(body)
    message = backend_message or f"HTTP error! status: {status}"
    details = _field_details(body) if isinstance(body, dict) else {}
    if status == 400 and isinstance(body, dict) and body.get("code") and body["code"] != VALIDATION_ERROR:
        # keep backend-specific 400 codes visible, but details still map to fields
        code = str(body["code"])
    return ApiError(code, message, status=status, details=details, backend_message=backend_message)


def normalize_error(exc: BaseException, *, fallback_message: str = DEFAULT_FALLBACK_MESSAGE) -> ApiError:
    if isinstance(exc, ApiError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return ApiError(TIMEOUT, "Request timed out")
    if isinstance(exc, httpx.HTTPStatusError):
        return from_response(exc.response)
    if isinstance(exc, httpx.RequestError):
        return ApiError(NETWORK_ERROR, str(exc) or "Network error - please check your connection and try again")
    if isinstance(exc, Exception) and str(exc):
        return ApiError(CLIENT_ERROR, str(exc))
    return ApiError(UNKNOWN_ERROR, fallback_message)


def is_retryable(error: ApiError) -> bool:
    if error.status is not None and 400 <= error.status < 500 and error.status not in _RETRYABLE_STATUSES:
        return False
    return error.code in _RETRYABLE_CODES or (error.status is not None and error.status in _RETRYABLE_STATUSES)


def user_friendly_message(error: ApiError) -> str:
    return _FRIENDLY_MESSAGES.get(error.code) or error.message or DEFAULT_FALLBACK_MESSAGE


def display_message(error: Optional[BaseException], fallback: str) -> str:
    """Message to put in front of the operator: the backend's own text when it sent one."""
    if error is None:
        return fallback
    normalized = normalize_error(error, fallback_message=fallback)
    if normalized.backend_message:
        return normalized.backend_message
    if normalized.code == CLIENT_ERROR:
        return normalized.message
    return fallback


def client_error(message: str, *, details: Optional[dict[str, str]] = None) -> ApiError:
    return ApiError(CLIENT_ERROR, message, details=details)


def http_status_for(error: ApiError) -> int:
    if error.status is not None:
        return error.status
    if error.code in (NETWORK_ERROR, TIMEOUT, INVALID_RESPONSE):
        return 502
    if error.code == CLIENT_ERROR:
        return 400
    return 500
