from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Backend payloads are camelCase JSON; fields are snake_case here."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_backend(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Pagination(CamelModel):
    page: int = 1
    limit: int = 10
    total: int = 0
    total_pages: int = 0


class Page(CamelModel, Generic[T]):
    data: list[T] = Field(default_factory=list)
    pagination: Optional[Pagination] = None
    message: Optional[str] = None
