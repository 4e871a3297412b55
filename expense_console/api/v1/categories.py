from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from expense_console.core.auth import require_session
from expense_console.core.state import AppState, get_app_state
from expense_console.schemas.auth import User
from expense_console.schemas.reference import (
    Category,
    CategoryCreate,
    CategoryStatistics,
    CategoryStatusUpdate,
    CategoryUpdate,
    CategoryUsage,
)
from expense_console.services import query_keys

router = APIRouter()


def _categories_changed(state: AppState, category_id: Optional[str] = None) -> None:
    state.cache.invalidate(query_keys.category_lists())
    state.cache.invalidate(query_keys.category_statistics())
    if category_id:
        state.cache.invalidate(query_keys.category_detail(category_id))


@router.get("/categories", response_model=list[Category])
async def list_categories(
    search: Optional[str] = None,
    is_active: Optional[bool] = Query(None, alias="isActive"),
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    params = {"search": search, "isActive": is_active}
    return await state.cache.fetch(
        query_keys.category_list(params),
        lambda: state.backend.list_categories(params),
    )


@router.post("/categories", response_model=Category, status_code=201)
async def create_category(
    payload: CategoryCreate,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    category = await state.backend.create_category(payload)
    state.cache.set(query_keys.category_detail(category.id), category)
    _categories_changed(state)
    return category


@router.get("/categories/statistics", response_model=CategoryStatistics)
async def get_category_statistics(
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    return await state.cache.fetch(query_keys.category_statistics(), state.backend.get_category_statistics)


@router.get("/categories/{category_id}", response_model=Category)
async def get_category(
    category_id: str,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    return await state.cache.fetch(
        query_keys.category_detail(category_id),
        lambda: state.backend.get_category(category_id),
    )


@router.put("/categories/{category_id}", response_model=Category)
async def update_category(
    category_id: str,
    payload: CategoryUpdate,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    category = await state.backend.update_category(category_id, payload)
    _categories_changed(state, category_id)
    state.cache.set(query_keys.category_detail(category_id), category)
    return category


@router.put("/categories/{category_id}/status", response_model=Category)
async def update_category_status(
    category_id: str,
    payload: CategoryStatusUpdate,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    category = await state.backend.update_category_status(category_id, payload.is_active)
    _categories_changed(state, category_id)
    state.cache.set(query_keys.category_detail(category_id), category)
    return category


@router.get("/categories/{category_id}/usage", response_model=CategoryUsage)
async def get_category_usage(
    category_id: str,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    return await state.cache.fetch(
        query_keys.category_usage(category_id),
        lambda: state.backend.get_category_usage(category_id),
    )


@router.delete("/categories/{category_id}", status_code=204)
async def delete_category(
    category_id: str,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    await state.backend.delete_category(category_id)
    state.cache.remove(query_keys.category_detail(category_id))
    _categories_changed(state)
    return Response(status_code=204)
