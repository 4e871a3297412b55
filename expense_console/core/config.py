from functools import lru_cache
import json
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_mapping_value(value) -> dict[str, int]:
    if not value:
        return {}
    if isinstance(value, dict):
        return {str(key).strip(): int(item) for key, item in value.items()}
    raw = str(value).strip()
    if raw == "":
        return {}
    try:
        parsed = json.loads(raw)
        if isinstance(parsed, dict):
            return {str(key).strip(): int(item) for key, item in parsed.items()}
    except (ValueError, TypeError):
        pass
    result: dict[str, int] = {}
    for item in raw.split(","):
        if "=" not in item:
            continue
        key, _, seconds = item.partition("=")
        if key.strip() and seconds.strip():
            result[key.strip()] = int(seconds.strip())
    return result


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        validate_by_name=True,
        populate_by_name=True,
    )
    api_base_url: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("API_BASE_URL", "API_URL"),
    )
    api_timeout_seconds: float = 15.0
    database_url: str = "sqlite:///./expense_console.db"

    query_max_retries: int = 3
    mutation_max_retries: int = 1
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0
    mutation_retry_delay_seconds: float = 1.0

    cache_default_stale_seconds: int = 300
    cache_stale_seconds: Annotated[dict[str, int], NoDecode] = Field(
        default_factory=lambda: {
            "auth": 600,
            "expenses": 120,
            "categories": 600,
            "vendors": 300,
            "notifications": 30,
        },
    )

    enable_background_refresh: bool = True
    refresh_interval_seconds: int = 60
    import_poll_interval_seconds: int = 2

    privileged_role: str = "ACCOUNTANT"

    enable_mock_auth: bool = Field(
        default=False,
        validation_alias=AliasChoices("ENABLE_MOCK_AUTH", "DEV_MOCK_AUTH"),
    )
    mock_user_id: str = "dev-user-123"
    mock_user_email: str = "dev@example.com"
    mock_user_first_name: str = "John"
    mock_user_last_name: str = "Developer"
    mock_token: str = "dev-token-123"

    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)

    security_headers_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("SECURITY_HEADERS_ENABLED", "SECURE_HEADERS_ENABLED"),
    )
    expose_error_details: bool = False

    import_max_file_bytes: int = 10 * 1024 * 1024
    import_preview_sample_rows: int = 5

    cors_allow_origins: Annotated[list[str], NoDecode] = Field(default_factory=list)
    cors_allow_methods: Annotated[list[str], NoDecode] = Field(default_factory=lambda: [
        "GET",
        "POST",
        "PUT",
        "PATCH",
        "DELETE",
        "OPTIONS",
    ])
    cors_allow_headers: Annotated[list[str], NoDecode] = Field(default_factory=lambda: [
        "Authorization",
        "Content-Type",
        "Accept",
    ])

    @field_validator(
        "cors_allow_origins",
        "cors_allow_methods",
        "cors_allow_headers",
        mode="before",
    )
    @classmethod
    def _split_csv(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    # env value arrives as the raw string: JSON object or key=value pairs
    @field_validator("cache_stale_seconds", mode="before")
    @classmethod
    def _parse_stale_map(cls, value):
        return _parse_mapping_value(value)

    def stale_seconds_for(self, scope: str) -> int:
        return int(self.cache_stale_seconds.get(scope, self.cache_default_stale_seconds))


@lru_cache
def get_settings() -> Settings:
    return Settings()
