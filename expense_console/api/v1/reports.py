from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from expense_console.core.auth import require_session
from expense_console.core.state import AppState, get_app_state
from expense_console.schemas.auth import User
from expense_console.schemas.expense import ExpenseStatus
from expense_console.schemas.report import (
    ExportRequest,
    PaymentsDuePeriod,
    Report,
    ReportFilters,
    ReportGroupBy,
)
from expense_console.services import query_keys
from expense_console.services.read_models import DashboardView, build_dashboard_view

router = APIRouter()


@router.get("/dashboard/stats", response_model=DashboardView)
async def get_dashboard(
    currency: str = "USD",
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    stats = await state.cache.fetch(query_keys.dashboard_stats(), state.backend.get_dashboard_stats)
    return build_dashboard_view(
        stats,
        currency=currency,
        unread_notifications=state.cache.get(query_keys.unread_count()),
    )


@router.get("/reports", response_model=Report)
async def get_reports(
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    categories: Optional[list[str]] = Query(None),
    vendors: Optional[list[str]] = Query(None),
    statuses: Optional[list[ExpenseStatus]] = Query(None),
    currency: Optional[str] = None,
    group_by: Optional[ReportGroupBy] = Query(None, alias="groupBy"),
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    filters = ReportFilters(
        date_from=date_from,
        date_to=date_to,
        categories=categories,
        vendors=vendors,
        statuses=statuses,
        currency=currency,
        group_by=group_by,
        page=page,
        limit=limit,
    )
    with state.loading.track("reports", "Generating report..."):
        return await state.backend.get_reports(filters)


@router.get("/reports/payments-due")
async def get_payments_due(
    period: PaymentsDuePeriod = PaymentsDuePeriod.WEEKLY,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    return {"period": period.value, "data": await state.backend.get_payments_due(period)}


@router.post("/reports/export")
async def export_report(
    payload: ExportRequest,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    with state.loading.track("reports", "Exporting report..."):
        exported = await state.backend.export_report(payload)
    return Response(
        content=exported.content,
        media_type=exported.content_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )
