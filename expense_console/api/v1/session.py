import logging

from fastapi import APIRouter, Depends, HTTPException

from expense_console.core.auth import require_session
from expense_console.core.state import AppState, get_app_state
from expense_console.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    SessionOut,
    UpdateProfileRequest,
    User,
)
from expense_console.services import query_keys

router = APIRouter()
logger = logging.getLogger(__name__)


def _start_session(state: AppState, auth: AuthResponse) -> SessionOut:
    # a previous user's read models must not leak into the new session
    state.cache.clear()
    state.auth.login(auth.user, auth.access_token)
    state.cache.set(query_keys.profile(), auth.user)
    return state.auth.snapshot()


@router.get("/session", response_model=SessionOut)
async def get_session(state: AppState = Depends(get_app_state)):
    return state.auth.snapshot()


@router.post("/session/login", response_model=SessionOut)
async def login(payload: LoginRequest, state: AppState = Depends(get_app_state)):
    with state.loading.track("auth", "Signing in..."):
        auth = await state.backend.login(payload)
    return _start_session(state, auth)


@router.post("/session/register", response_model=SessionOut, status_code=201)
async def register(payload: RegisterRequest, state: AppState = Depends(get_app_state)):
    with state.loading.track("auth", "Creating account..."):
        auth = await state.backend.register(payload)
    return _start_session(state, auth)


@router.post("/session/logout", response_model=SessionOut)
async def logout(state: AppState = Depends(get_app_state)):
    state.auth.clear()
    state.cache.clear()
    state.watched_imports.clear()
    return state.auth.snapshot()


@router.post("/session/refresh", response_model=SessionOut)
async def refresh(
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    auth = await state.backend.refresh_token()
    state.auth.login(auth.user, auth.access_token)
    return state.auth.snapshot()


@router.post("/session/mock-login", response_model=SessionOut)
async def mock_login(state: AppState = Depends(get_app_state)):
    if not state.settings.enable_mock_auth:
        raise HTTPException(404, "Not found")
    state.cache.clear()
    state.auth.login_mock()
    return state.auth.snapshot()


@router.get("/session/profile", response_model=User)
async def get_profile(
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    profile = await state.cache.fetch(query_keys.profile(), state.backend.get_profile)
    state.auth.update_user(profile.model_dump())
    return profile


@router.patch("/session/profile", response_model=User)
async def update_profile(
    payload: UpdateProfileRequest,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    profile = await state.backend.update_profile(payload)
    state.cache.set(query_keys.profile(), profile)
    state.auth.update_user(profile.model_dump())
    return profile
