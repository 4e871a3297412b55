from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from expense_console.core.auth import require_session
from expense_console.core.state import AppState, get_app_state
from expense_console.schemas.auth import User
from expense_console.schemas.common import Page
from expense_console.schemas.reference import ReferenceStatus, Vendor, VendorCreate, VendorUpdate
from expense_console.services import query_keys

router = APIRouter()


def _vendors_changed(state: AppState, vendor_id: Optional[str] = None) -> None:
    # active_vendors() sits under the list prefix
    state.cache.invalidate(query_keys.vendor_lists())
    if vendor_id:
        state.cache.invalidate(query_keys.vendor_detail(vendor_id))


@router.get("/vendors", response_model=Page[Vendor])
async def list_vendors(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    status: Optional[ReferenceStatus] = None,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    params = {"page": page, "limit": limit, "search": search, "status": status.value if status else None}
    return await state.cache.fetch(
        query_keys.vendor_list(params),
        lambda: state.backend.list_vendors(params),
    )


@router.get("/vendors/active", response_model=list[Vendor])
async def list_active_vendors(
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    return await state.cache.fetch(query_keys.active_vendors(), state.backend.get_active_vendors)


@router.post("/vendors", response_model=Vendor, status_code=201)
async def create_vendor(
    payload: VendorCreate,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    vendor = await state.backend.create_vendor(payload)
    state.cache.set(query_keys.vendor_detail(vendor.id), vendor)
    _vendors_changed(state)
    return vendor


@router.get("/vendors/{vendor_id}", response_model=Vendor)
async def get_vendor(
    vendor_id: str,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    return await state.cache.fetch(
        query_keys.vendor_detail(vendor_id),
        lambda: state.backend.get_vendor(vendor_id),
    )


@router.patch("/vendors/{vendor_id}", response_model=Vendor)
async def update_vendor(
    vendor_id: str,
    payload: VendorUpdate,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    vendor = await state.backend.update_vendor(vendor_id, payload)
    _vendors_changed(state, vendor_id)
    state.cache.set(query_keys.vendor_detail(vendor_id), vendor)
    return vendor


@router.patch("/vendors/{vendor_id}/toggle-status", response_model=Vendor)
async def toggle_vendor_status(
    vendor_id: str,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    vendor = await state.backend.toggle_vendor_status(vendor_id)
    _vendors_changed(state, vendor_id)
    state.cache.set(query_keys.vendor_detail(vendor_id), vendor)
    return vendor


@router.delete("/vendors/{vendor_id}", status_code=204)
async def delete_vendor(
    vendor_id: str,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    await state.backend.delete_vendor(vendor_id)
    state.cache.remove(query_keys.vendor_detail(vendor_id))
    _vendors_changed(state)
    return Response(status_code=204)
