from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from expense_console.core.auth import require_session
from expense_console.core.state import AppState, get_app_state
from expense_console.schemas.auth import User
from expense_console.schemas.notification import Notification, NotificationList, UnreadCount
from expense_console.services import query_keys

router = APIRouter()


@router.get("/notifications", response_model=NotificationList)
async def list_notifications(
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    params = {"status": status, "limit": limit, "offset": offset}
    return await state.cache.fetch(
        query_keys.notification_list(params),
        lambda: state.backend.list_notifications(status=status, limit=limit, offset=offset),
    )


@router.get("/notifications/unread-count", response_model=UnreadCount)
async def get_unread_count(
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    count = await state.cache.fetch(query_keys.unread_count(), state.backend.get_unread_count)
    return UnreadCount(count=count)


@router.patch("/notifications/mark-all-read", status_code=204)
async def mark_all_read(
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    await state.backend.mark_all_notifications_read()
    state.cache.set(query_keys.unread_count(), 0)
    state.cache.invalidate(query_keys.notification_lists())
    return Response(status_code=204)


@router.patch("/notifications/{notification_id}/read", response_model=Notification)
async def mark_read(
    notification_id: str,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    notification = await state.backend.mark_notification_read(notification_id)
    state.cache.invalidate(query_keys.notifications_all())
    return notification


@router.patch("/notifications/{notification_id}/dismiss", response_model=Notification)
async def dismiss(
    notification_id: str,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    notification = await state.backend.dismiss_notification(notification_id)
    state.cache.invalidate(query_keys.notifications_all())
    return notification
