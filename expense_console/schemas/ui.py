from typing import Optional

from pydantic import Field

from expense_console.schemas.common import CamelModel


class UIPreferences(CamelModel):
    sidebar_collapsed: bool = False


class UIPreferencesUpdate(CamelModel):
    sidebar_collapsed: Optional[bool] = None


class LoadingState(CamelModel):
    is_loading: bool = True
    message: Optional[str] = None
    progress: Optional[float] = None


class LoadingOut(CamelModel):
    features: dict[str, LoadingState] = Field(default_factory=dict)
