from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from expense_console.schemas.common import CamelModel
from expense_console.schemas.expense import ExpenseStatus


class DashboardStats(CamelModel):
    total_expenses: int = 0
    total_amount: float = 0.0
    pending_approvals: int = 0
    approved_this_month: int = 0
    status_breakdown: dict[str, int] = Field(default_factory=dict)
    category_breakdown: list[dict[str, Any]] = Field(default_factory=list)
    recent_expenses: list[dict[str, Any]] = Field(default_factory=list)
    monthly_trend: list[dict[str, Any]] = Field(default_factory=list)


class ReportGroupBy(str, Enum):
    MONTH = "month"
    CATEGORY = "category"
    VENDOR = "vendor"
    STATUS = "status"


class ExportFormat(str, Enum):
    EXCEL = "excel"
    CSV = "csv"
    PDF = "pdf"


class PaymentsDuePeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    OVERDUE = "overdue"


class ReportFilters(CamelModel):
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    categories: Optional[list[str]] = None
    vendors: Optional[list[str]] = None
    statuses: Optional[list[ExpenseStatus]] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    submitter_id: Optional[str] = None
    payment_id: Optional[str] = None
    expense_month: Optional[str] = None
    group_by: Optional[ReportGroupBy] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = Field(default=None, pattern="^(ASC|DESC)$")
    page: Optional[int] = Field(default=None, ge=1)
    limit: Optional[int] = Field(default=None, ge=1, le=1000)


class ExportRequest(ReportFilters):
    format: ExportFormat = ExportFormat.EXCEL
    report_type: str = "expenses"


class ReportSummary(CamelModel):
    total_amount: float = 0.0
    total_count: int = 0
    groups: list[dict[str, Any]] = Field(default_factory=list)


class Report(CamelModel):
    data: list[dict[str, Any]] = Field(default_factory=list)
    summary: Optional[ReportSummary] = None
    generated_at: Optional[datetime] = None


class ExchangeRate(CamelModel):
    from_currency: str = Field(..., alias="from")
    to_currency: str = Field(..., alias="to")
    rate: float
    date: Optional[str] = None


class ConvertRequest(CamelModel):
    amount: float = Field(..., gt=0)
    from_currency: str = Field(..., alias="from", min_length=3, max_length=3)
    to_currency: str = Field(..., alias="to", min_length=3, max_length=3)


class ConvertResult(CamelModel):
    amount: float
    converted_amount: float
    rate: float
    from_currency: str = Field(..., alias="from")
    to_currency: str = Field(..., alias="to")
