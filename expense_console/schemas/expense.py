from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from expense_console.schemas.common import CamelModel, Pagination


class ExpenseStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    PAID = "PAID"
    CLOSED = "CLOSED"


class Currency(str, Enum):
    VND = "VND"
    USD = "USD"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CREDIT_CARD = "CREDIT_CARD"


class Submitter(CamelModel):
    id: str
    email: Optional[str] = None
    first_name: str = ""
    last_name: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class VendorRef(CamelModel):
    id: str
    name: str = ""
    status: Optional[str] = None


class FileRef(CamelModel):
    id: str
    original_name: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    url: Optional[str] = None


class Expense(CamelModel):
    id: str
    payment_id: Optional[str] = None
    sub_id: Optional[str] = None
    transaction_date: Optional[date] = None
    expense_month: Optional[str] = None
    type: Optional[str] = None
    vendor: Optional[Union[VendorRef, str]] = None
    category: Optional[str] = None
    category_entity_id: Optional[str] = None
    amount: float = 0.0
    amount_before_vat: Optional[float] = Field(default=None, alias="amountBeforeVAT")
    vat_amount: Optional[float] = None
    vat_percentage: Optional[float] = None
    currency: str = Currency.USD.value
    exchange_rate: Optional[float] = None
    description: str = ""
    project_cost_center: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    status: ExpenseStatus
    submitter: Optional[Submitter] = None
    invoice_file_id: Optional[str] = None
    invoice_file: Optional[FileRef] = None
    invoice_link: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("transaction_date", mode="before")
    @classmethod
    def _date_only(cls, value):
        # backend sends full ISO timestamps for calendar dates
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        return value

    @property
    def vendor_name(self) -> str:
        if self.vendor is None:
            return "N/A"
        if isinstance(self.vendor, str):
            return self.vendor
        return self.vendor.name or "N/A"


class ExpenseCreate(CamelModel):
    transaction_date: date
    vendor_id: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0.01)
    currency: Currency
    exchange_rate: Optional[float] = None
    amount_before_vat: Optional[float] = Field(default=None, alias="amountBeforeVAT")
    vat_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    vat_amount: Optional[float] = Field(default=None, ge=0)
    description: str = Field(..., min_length=1)
    project_cost_center: Optional[str] = None
    payment_method: PaymentMethod
    invoice_file_id: Optional[str] = None

    @model_validator(mode="after")
    def _positive_exchange_rate(self):
        if self.exchange_rate is not None and self.exchange_rate <= 0:
            raise ValueError("Exchange rate must be greater than 0")
        return self


class ExpenseUpdate(CamelModel):
    transaction_date: Optional[date] = None
    vendor_id: Optional[str] = None
    category: Optional[str] = None
    amount: Optional[float] = Field(default=None, ge=0.01)
    currency: Optional[Currency] = None
    exchange_rate: Optional[float] = None
    amount_before_vat: Optional[float] = Field(default=None, alias="amountBeforeVAT")
    vat_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    vat_amount: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    project_cost_center: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    invoice_file_id: Optional[str] = None


class ExpenseQueryParams(CamelModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    status: Optional[ExpenseStatus] = None
    category: Optional[str] = None
    vendor_id: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    search: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = Field(default=None, pattern="^(ASC|DESC)$")


class ExpenseList(CamelModel):
    data: list[Expense] = Field(default_factory=list)
    pagination: Optional[Pagination] = None


class StatusTransitionRequest(CamelModel):
    target_status: ExpenseStatus
    notes: Optional[str] = Field(default=None, max_length=1000)


class NotesRequest(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=1000)


class StatusHistoryEntry(CamelModel):
    id: Optional[str] = None
    from_status: Optional[ExpenseStatus] = None
    to_status: ExpenseStatus
    notes: Optional[str] = None
    changed_by: Optional[Submitter] = None
    changed_at: Optional[datetime] = Field(default=None, alias="createdAt")


class FileUploadOut(CamelModel):
    id: str
    original_name: Optional[str] = None
    filename: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    url: Optional[str] = None
    created_at: Optional[datetime] = None
