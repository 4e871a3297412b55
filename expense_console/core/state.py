"""Application state handed to routes through ``get_app_state``.

Auth and UI preferences survive restarts in the ``client_state`` table. They are
hydrated once when the state is built and written back after every change.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Awaitable, Callable, Iterator, Optional

import httpx
import jwt
from fastapi import Request
from sqlalchemy.orm import sessionmaker

from expense_console.core.backend_client import BackendClient
from expense_console.core.config import Settings, get_settings
from expense_console.core.dependencies import build_session_factory, dispose
from expense_console.models.state import ClientState
from expense_console.schemas.auth import SessionOut, User, UserRole
from expense_console.services.query_cache import QueryCache

logger = logging.getLogger(__name__)

AUTH_STORAGE_KEY = "auth-storage"
UI_STORAGE_KEY = "ui-storage"


class StateStorage:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def load(self, key: str) -> Optional[dict[str, Any]]:
        db = self._session_factory()
        try:
            row = db.get(ClientState, key)
            if row is None or not isinstance(row.value, dict):
                return None
            return dict(row.value)
        finally:
            db.close()

    def save(self, key: str, value: dict[str, Any]) -> None:
        db = self._session_factory()
        try:
            row = db.get(ClientState, key)
            if row is None:
                db.add(ClientState(key=key, value=value))
            else:
                row.value = value
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete(self, key: str) -> None:
        db = self._session_factory()
        try:
            row = db.get(ClientState, key)
            if row is not None:
                db.delete(row)
                db.commit()
        finally:
            db.close()


class AuthStore:
    def __init__(self, storage: StateStorage, backend: BackendClient, settings: Settings) -> None:
        self._storage = storage
        self._backend = backend
        self._settings = settings
        self.user: Optional[User] = None
        self.token: Optional[str] = None
        self.is_authenticated = False
        self.is_mock_mode = False

    def hydrate(self) -> None:
        saved = self._storage.load(AUTH_STORAGE_KEY) or {}
        user = saved.get("user")
        self.user = User.model_validate(user) if user else None
        self.token = saved.get("token") or None
        self.is_authenticated = bool(saved.get("isAuthenticated")) and self.token is not None
        self.is_mock_mode = bool(saved.get("isMockMode"))
        if self._settings.enable_mock_auth and not self.token and not self.is_mock_mode:
            self.login_mock()
            return
        self._backend.set_token(self.token)

    def _persist(self) -> None:
        self._storage.save(
            AUTH_STORAGE_KEY,
            {
                "user": self.user.model_dump(mode="json", by_alias=True) if self.user else None,
                "token": self.token,
                "isAuthenticated": self.is_authenticated,
                "isMockMode": self.is_mock_mode,
            },
        )

    def login(self, user: User, token: str) -> None:
        self.user = user
        self.token = token
        self.is_authenticated = True
        self.is_mock_mode = False
        self._backend.set_token(token)
        self._persist()
        logger.info("Session started for user_id=%s role=%s", user.id, user.role.value)

    def login_mock(self) -> bool:
        if not self._settings.enable_mock_auth:
            return False
        self.user = User(
            id=self._settings.mock_user_id,
            email=self._settings.mock_user_email,
            first_name=self._settings.mock_user_first_name,
            last_name=self._settings.mock_user_last_name,
            role=UserRole.ACCOUNTANT,
        )
        self.token = self._settings.mock_token
        self.is_authenticated = True
        self.is_mock_mode = True
        self._backend.set_token(self.token)
        self._persist()
        logger.info("Mock authentication enabled; logged in as %s", self.user.email)
        return True

    def update_user(self, changes: dict[str, Any]) -> Optional[User]:
        if self.user is None:
            return None
        self.user = self.user.model_copy(update={k: v for k, v in changes.items() if v is not None})
        self._persist()
        return self.user

    def clear(self) -> None:
        was_authenticated = self.is_authenticated
        self.user = None
        self.token = None
        self.is_authenticated = False
        self.is_mock_mode = False
        self._backend.set_token(None)
        self._persist()
        if was_authenticated:
            logger.info("Session cleared")

    def token_expires_at(self) -> Optional[int]:
        if not self.token or self.is_mock_mode:
            return None
        try:
            claims = jwt.decode(self.token, options={"verify_signature": False})
        except jwt.DecodeError:
            return None
        exp = claims.get("exp")
        return int(exp) if isinstance(exp, (int, float)) else None

    def is_token_expired(self, *, leeway_seconds: int = 30, now: Optional[float] = None) -> bool:
        expires_at = self.token_expires_at()
        if expires_at is None:
            return False
        current = time.time() if now is None else now
        return expires_at - leeway_seconds <= current

    def snapshot(self) -> SessionOut:
        return SessionOut(
            is_authenticated=self.is_authenticated,
            is_mock_mode=self.is_mock_mode,
            user=self.user,
            token_expires_at=self.token_expires_at(),
        )


class UIStore:
    def __init__(self, storage: StateStorage) -> None:
        self._storage = storage
        self.sidebar_collapsed = False

    def hydrate(self) -> None:
        saved = self._storage.load(UI_STORAGE_KEY) or {}
        self.sidebar_collapsed = bool(saved.get("sidebarCollapsed", False))

    def preferences(self) -> dict[str, Any]:
        return {"sidebarCollapsed": self.sidebar_collapsed}

    def toggle_sidebar(self) -> bool:
        return self.set_sidebar_collapsed(not self.sidebar_collapsed)

    def set_sidebar_collapsed(self, collapsed: bool) -> bool:
        self.sidebar_collapsed = bool(collapsed)
        self._storage.save(UI_STORAGE_KEY, self.preferences())
        return self.sidebar_collapsed


@dataclass
class LoadingEntry:
    message: Optional[str] = None
    progress: Optional[float] = None
    active: int = 0
    started_at: float = field(default_factory=time.monotonic)


class LoadingTracker:
    """Which features currently have a request in flight."""

    def __init__(self) -> None:
        self._entries: dict[str, LoadingEntry] = {}
        self._lock = Lock()

    def start(self, feature: str, message: Optional[str] = None) -> None:
        with self._lock:
            entry = self._entries.setdefault(feature, LoadingEntry())
            entry.active += 1
            if message is not None:
                entry.message = message

    def set_progress(self, feature: str, progress: float) -> None:
        with self._lock:
            entry = self._entries.setdefault(feature, LoadingEntry())
            entry.progress = max(0.0, min(100.0, float(progress)))

    def stop(self, feature: str) -> None:
        # the flag clears when the last overlapping request for the feature ends
        with self._lock:
            entry = self._entries.get(feature)
            if entry is None:
                return
            entry.active -= 1
            if entry.active <= 0:
                del self._entries[feature]

    def is_loading(self, feature: str) -> bool:
        with self._lock:
            return feature in self._entries

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {
                feature: {"isLoading": True, "message": entry.message, "progress": entry.progress}
                for feature, entry in self._entries.items()
            }

    @contextmanager
    def track(self, feature: str, message: Optional[str] = None) -> Iterator[None]:
        self.start(feature, message)
        try:
            yield
        finally:
            self.stop(feature)


class AppState:
    def __init__(
        self,
        settings: Settings,
        *,
        session_factory: Optional[sessionmaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self._session_factory = session_factory or build_session_factory(settings.database_url)
        self.storage = StateStorage(self._session_factory)
        self.backend = BackendClient(
            settings,
            transport=transport,
            on_unauthorized=self.handle_unauthorized,
            sleep=sleep,
        )
        self.cache = QueryCache(settings.stale_seconds_for)
        self.auth = AuthStore(self.storage, self.backend, settings)
        self.ui = UIStore(self.storage)
        self.loading = LoadingTracker()
        self.watched_imports: set[str] = set()

    def hydrate(self) -> "AppState":
        self.auth.hydrate()
        self.ui.hydrate()
        return self

    def handle_unauthorized(self) -> None:
        self.auth.clear()
        self.cache.clear()

    async def aclose(self) -> None:
        await self.backend.aclose()
        dispose(self._session_factory)


def init_app_state(app: Any, settings: Optional[Settings] = None) -> AppState:
    state = getattr(app.state, "console", None)
    if state is None:
        state = AppState(settings or get_settings()).hydrate()
        app.state.console = state
    return state


async def get_app_state(request: Request) -> AppState:
    return init_app_state(request.app)
