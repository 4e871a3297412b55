"""View models the console serves, built from validated backend payloads."""

from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import Field

from expense_console.schemas.auth import User
from expense_console.schemas.common import CamelModel, Pagination
from expense_console.schemas.expense import Expense, ExpenseList, ExpenseStatus, StatusHistoryEntry
from expense_console.schemas.report import DashboardStats
from expense_console.services.workflow import (
    ApprovalPanel,
    StatusBadge,
    TransitionSelector,
    build_approval_panel,
    build_selector,
    status_badge,
)
from expense_console.utils.formatters import format_currency, get_status_label, get_status_variant


class ExpenseRow(CamelModel):
    id: str
    payment_id: Optional[str] = None
    transaction_date: Optional[date] = None
    vendor_name: str
    category: Optional[str] = None
    description: str = ""
    amount: float
    currency: str
    amount_display: str
    status: ExpenseStatus
    status_label: str
    status_variant: str
    submitter_name: Optional[str] = None
    has_invoice: bool = False


class ExpenseListView(CamelModel):
    rows: list[ExpenseRow] = Field(default_factory=list)
    pagination: Optional[Pagination] = None
    filters: dict[str, Any] = Field(default_factory=dict)


class ExpenseDetailView(CamelModel):
    expense: Expense
    vendor_name: str
    amount_display: str
    amount_before_vat_display: Optional[str] = None
    vat_amount_display: Optional[str] = None
    status: StatusBadge
    submitter_name: str
    submitter_email: str
    transition_selector: TransitionSelector
    approval_panel: Optional[ApprovalPanel] = None
    is_pending: bool = False


class HistoryEntryView(CamelModel):
    from_status: Optional[ExpenseStatus] = None
    from_label: Optional[str] = None
    to_status: ExpenseStatus
    to_label: str
    notes: Optional[str] = None
    changed_by: Optional[str] = None
    changed_at: Optional[datetime] = None


class StatusHistoryView(CamelModel):
    expense_id: str
    entries: list[HistoryEntryView] = Field(default_factory=list)


class StatusCount(CamelModel):
    status: str
    label: str
    count: int


class DashboardView(CamelModel):
    stats: DashboardStats
    total_amount_display: str
    status_counts: list[StatusCount] = Field(default_factory=list)
    unread_notifications: Optional[int] = None


def _submitter_name(expense: Expense) -> Optional[str]:
    if expense.submitter is None:
        return None
    return expense.submitter.full_name or expense.submitter.email


def build_expense_row(expense: Expense) -> ExpenseRow:
    return ExpenseRow(
        id=expense.id,
        payment_id=expense.payment_id,
        transaction_date=expense.transaction_date,
        vendor_name=expense.vendor_name,
        category=expense.category,
        description=expense.description,
        amount=expense.amount,
        currency=expense.currency,
        amount_display=format_currency(expense.amount, expense.currency),
        status=expense.status,
        status_label=get_status_label(expense.status.value),
        status_variant=get_status_variant(expense.status.value),
        submitter_name=_submitter_name(expense),
        has_invoice=bool(expense.invoice_file_id or expense.invoice_file or expense.invoice_link),
    )


def build_list_view(expenses: ExpenseList, filters: Optional[dict[str, Any]] = None) -> ExpenseListView:
    return ExpenseListView(
        rows=[build_expense_row(expense) for expense in expenses.data],
        pagination=expenses.pagination,
        filters=filters or {},
    )


def build_detail_view(
    expense: Expense,
    user: Optional[User],
    privileged_role: str,
    *,
    is_pending: bool = False,
) -> ExpenseDetailView:
    def money(value: Optional[float]) -> Optional[str]:
        return format_currency(value, expense.currency) if value is not None else None

    return ExpenseDetailView(
        expense=expense,
        vendor_name=expense.vendor_name,
        amount_display=format_currency(expense.amount, expense.currency),
        amount_before_vat_display=money(expense.amount_before_vat),
        vat_amount_display=money(expense.vat_amount),
        status=status_badge(expense.status),
        submitter_name=_submitter_name(expense) or "N/A",
        submitter_email=(expense.submitter.email if expense.submitter else None) or "N/A",
        transition_selector=build_selector(expense.status),
        approval_panel=build_approval_panel(user, expense, privileged_role),
        is_pending=is_pending,
    )


def _history_sort_key(entry: StatusHistoryEntry) -> datetime:
    if entry.changed_at is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if entry.changed_at.tzinfo is None:
        return entry.changed_at.replace(tzinfo=timezone.utc)
    return entry.changed_at


def build_history_view(expense_id: str, entries: list[StatusHistoryEntry]) -> StatusHistoryView:
    ordered = sorted(entries, key=_history_sort_key, reverse=True)
    return StatusHistoryView(
        expense_id=expense_id,
        entries=[
            HistoryEntryView(
                from_status=entry.from_status,
                from_label=get_status_label(entry.from_status.value) if entry.from_status else None,
                to_status=entry.to_status,
                to_label=get_status_label(entry.to_status.value),
                notes=entry.notes,
                changed_by=entry.changed_by.full_name or entry.changed_by.email if entry.changed_by else None,
                changed_at=entry.changed_at,
            )
            for entry in ordered
        ],
    )


def build_dashboard_view(
    stats: DashboardStats, *, currency: str = "USD", unread_notifications: Optional[int] = None
) -> DashboardView:
    counts = [
        StatusCount(
            status=status.value,
            label=get_status_label(status.value),
            count=stats.status_breakdown.get(status.value, 0),
        )
        for status in ExpenseStatus
    ]
    return DashboardView(
        stats=stats,
        total_amount_display=format_currency(stats.total_amount, currency),
        status_counts=counts,
        unread_notifications=unread_notifications,
    )
