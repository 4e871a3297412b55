from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from expense_console.schemas.common import CamelModel


class ReferenceStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Category(CamelModel):
    id: str
    name: str
    code: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    is_active: bool = True
    expense_count: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: Optional[str] = Field(default=None, max_length=20)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    is_active: bool = True


class CategoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    code: Optional[str] = Field(default=None, max_length=20)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class CategoryStatusUpdate(CamelModel):
    is_active: bool


class CategoryUsage(CamelModel):
    category_id: Optional[str] = None
    expense_count: int = 0
    total_amount: float = 0.0
    can_delete: bool = True


class CategoryStatistics(CamelModel):
    total_categories: int = 0
    active_categories: int = 0
    inactive_categories: int = 0
    most_used: list[Category] = Field(default_factory=list)


class Vendor(CamelModel):
    id: str
    name: str
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    tax_id: Optional[str] = None
    status: ReferenceStatus = ReferenceStatus.ACTIVE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == ReferenceStatus.ACTIVE


class VendorCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    tax_id: Optional[str] = None


class VendorUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    tax_id: Optional[str] = None
