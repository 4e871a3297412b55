from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from expense_console.schemas.common import CamelModel


class Notification(CamelModel):
    id: str
    type: Optional[str] = None
    title: str = ""
    message: str = ""
    status: str = "UNREAD"
    expense_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None

    @property
    def is_unread(self) -> bool:
        return self.status.upper() == "UNREAD"


class NotificationList(CamelModel):
    data: list[Notification] = Field(default_factory=list)
    total: Optional[int] = None


class UnreadCount(CamelModel):
    count: int = 0
