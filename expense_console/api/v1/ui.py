from fastapi import APIRouter, Depends

from expense_console.core.state import AppState, get_app_state
from expense_console.schemas.ui import LoadingOut, UIPreferences, UIPreferencesUpdate

router = APIRouter()


@router.get("/ui/preferences", response_model=UIPreferences)
async def get_preferences(state: AppState = Depends(get_app_state)):
    return UIPreferences(sidebar_collapsed=state.ui.sidebar_collapsed)


@router.patch("/ui/preferences", response_model=UIPreferences)
async def update_preferences(payload: UIPreferencesUpdate, state: AppState = Depends(get_app_state)):
    if payload.sidebar_collapsed is not None:
        state.ui.set_sidebar_collapsed(payload.sidebar_collapsed)
    return UIPreferences(sidebar_collapsed=state.ui.sidebar_collapsed)


@router.post("/ui/sidebar/toggle", response_model=UIPreferences)
async def toggle_sidebar(state: AppState = Depends(get_app_state)):
    return UIPreferences(sidebar_collapsed=state.ui.toggle_sidebar())


@router.get("/ui/loading", response_model=LoadingOut)
async def get_loading(state: AppState = Depends(get_app_state)):
    return LoadingOut(features=state.loading.snapshot())
