from datetime import datetime
from typing import Any, Optional

from pydantic import Field, computed_field

from expense_console.schemas.common import CamelModel

ACTIVE_IMPORT_STATUSES = frozenset({"pending", "processing"})


class ImportRowError(CamelModel):
    row: int
    field: str
    value: Optional[str] = None
    message: str
    suggestion: Optional[str] = None


class ImportPreview(CamelModel):
    file_name: str
    headers: list[str] = Field(default_factory=list)
    total_rows: int = 0
    sample_data: list[dict[str, Any]] = Field(default_factory=list)
    errors: list[ImportRowError] = Field(default_factory=list)

    @computed_field
    @property
    def can_upload(self) -> bool:
        return self.total_rows > 0 and not self.errors


class ImportRecord(CamelModel):
    id: str
    file_name: Optional[str] = Field(default=None, alias="fileName")
    status: str = "pending"
    progress: float = 0.0
    total_rows: int = 0
    processed_rows: int = 0
    successful_rows: int = 0
    error_rows: int = 0
    errors: list[dict[str, Any]] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status.lower() in ACTIVE_IMPORT_STATUSES

    @property
    def summary(self) -> Optional[str]:
        if self.status.lower() != "completed":
            return None
        if self.error_rows > 0:
            return (
                f"Import completed with {self.error_rows} errors. "
                f"{self.successful_rows} records were imported successfully."
            )
        return f"Import completed successfully! All {self.successful_rows} records were imported."
