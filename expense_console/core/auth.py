import logging

from fastapi import Depends, HTTPException

from expense_console.core.errors import ApiError
from expense_console.core.state import AppState, get_app_state
from expense_console.schemas.auth import User

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"


def _unauthorized(message: str = "Please log in to continue.") -> HTTPException:
    return HTTPException(401, {"code": "UNAUTHORIZED", "message": message, "redirect": LOGIN_PATH})


async def refresh_if_expired(state: AppState) -> None:
    """Swap an expired bearer token for a fresh one, or end the session."""
    if not state.auth.is_token_expired():
        return
    try:
        refreshed = await state.backend.refresh_token()
    except ApiError as exc:
        logger.warning("Token refresh failed: code=%s", exc.code)
        state.handle_unauthorized()
        raise _unauthorized("Your session has expired. Please log in again.") from exc
    state.auth.login(refreshed.user, refreshed.access_token)


async def require_session(state: AppState = Depends(get_app_state)) -> User:
    if not state.auth.is_authenticated or state.auth.user is None:
        raise _unauthorized()
    await refresh_if_expired(state)
    return state.auth.user

