from __future__ import annotations

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    openphone_api_key: str | None = None
    openphone_api_url: str = "https://api.openphone.com/v1"
    openphone_phone_number_id: str | None = None
    openphone_page_size: int = 50
    openphone_http_timeout_seconds: float = 30.0

    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    classification_model: str = "gpt-4"
    classification_fallback_model: str | None = None
    classification_temperature: float = 0.1
    classification_max_tokens: int = 500
    llm_max_retries: int = 3
    llm_retry_backoff_base_seconds: float = 0.1
    llm_completion_timeout_seconds: float = 60.0
    llm_transient_status_codes: str = "429,500,502,503"
    llm_non_retriable_status_codes: str = "400,401"

    google_sheets_credentials: str | None = None
    google_sheet_id: str | None = None
    google_sheet_tab: str = "Orders"
    sheets_http_timeout_seconds: float = 30.0

    slack_webhook_url: str | None = None
    slack_http_timeout_seconds: float = 10.0
    alert_business_name: str = "Sherwood Island Oysters"

    timezone: str = "America/New_York"
    call_timeout_seconds: float = 120.0

    scheduler_enabled: bool = True
    schedule_primary_hours: str = "5,6,8,9,11,12,14,15"
    schedule_primary_minute: int = 0
    schedule_secondary_hours: str = "6,8,10,12,14"
    schedule_secondary_minute: int = 30

    ops_console_enabled: bool = False
    ops_event_buffer_size: int = 500

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"TIMEZONE is not a known IANA zone: {value!r}") from exc
        return value

    @field_validator("openphone_page_size")
    @classmethod
    def validate_page_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("OPENPHONE_PAGE_SIZE must be positive")
        return value

    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def llm_transient_status_code_set(self) -> set[int]:
        return {int(item.strip()) for item in self.llm_transient_status_codes.split(",") if item.strip()}

    def llm_non_retriable_status_code_set(self) -> set[int]:
        return {int(item.strip()) for item in self.llm_non_retriable_status_codes.split(",") if item.strip()}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
