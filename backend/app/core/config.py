"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "DayGuard Backend"
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "text"
    database_url: str = "postgresql+psycopg2://dayguard@localhost:5432/dayguard"
    service_token: str | None = None
    default_timezone: str = "Asia/Kolkata"

    openai_api_key: str | None = None
    reasoning_model: str = "gpt-4o-mini"
    reasoning_pro_model: str = "gpt-4o"
    reasoning_max_attempts: int = 3
    reasoning_base_delay_seconds: float = 0.5
    reasoning_max_delay_seconds: float = 5.0
    reasoning_timeout_seconds: float = 30.0

    free_slot_min_minutes: int = 15
    deep_work_min_minutes: int = 60

    event_sweep_batch_size: int = 20
    event_lease_seconds: int = 180
    event_max_delivery_attempts: int = 5
    subscriber_base_url: str = "http://localhost:8000"
    compose_endpoint_url: str | None = None
    subscriber_timeout_seconds: float = 120.0

    scheduler_enabled: bool = False
    scheduler_timezone: str = "UTC"
    event_sweep_interval_seconds: int = 30

    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "dayguard"

    @property
    def reasoning_budget_seconds(self) -> float:
        """Longest one agent run can spend on the reasoning service, backoff included."""
        backoff = sum(
            min(self.reasoning_base_delay_seconds * (2**attempt), self.reasoning_max_delay_seconds)
            for attempt in range(self.reasoning_max_attempts - 1)
        )
        return self.reasoning_max_attempts * self.reasoning_timeout_seconds + backoff

    @model_validator(mode="after")
    def _delivery_outlasts_reasoning(self) -> "Settings":
        # A subscriber call cut short while its handler still runs gets redelivered.
        budget = self.reasoning_budget_seconds
        if self.subscriber_timeout_seconds <= budget:
            raise ValueError(
                f"subscriber_timeout_seconds ({self.subscriber_timeout_seconds}) must exceed "
                f"the reasoning retry budget ({budget:.1f}s)"
            )
        if self.event_lease_seconds <= self.subscriber_timeout_seconds:
            raise ValueError("event_lease_seconds must exceed subscriber_timeout_seconds")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
