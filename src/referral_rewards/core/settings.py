from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


def _default_locations() -> dict[str, int]:
    return {
        "Kwality House, Kemps Corner": 9030,
        "Supreme HQ, Bandra": 29821,
        "Kenkere House": 22116,
    }


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True)

    environment: Literal["development", "staging", "production"] = "development"
    service_name: str = "referral-rewards"
    log_level: str = "INFO"
    database_url: str = "sqlite+aiosqlite:///./referral_rewards.db"

    # Upstream booking API
    momence_base_url: str = "https://momence.com/_api/primary"
    momence_host_id: int = 13752
    momence_all_cookies: SecretStr | None = None
    momence_app_header: str = "dashboard-3e70af2f38ef34aeb9824cb7b75a7397e5c9966e"
    momence_user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/143.0.0.0 Safari/537.36"
    )

    # Candidate filter (one-visit customers)
    source_membership_id: int = 263860
    candidate_visits_start_date: str = "2025-12-01T12:00:00+05:30"
    candidate_visits_end_date: str = "2027-12-31T12:00:00+05:30"
    candidate_page_size: int = 20

    # Referral report period
    report_timezone: str = "Asia/Kolkata"
    report_day: str = "2025-12-26T00:00:00.000Z"
    report_start_date: str = "2025-12-22T18:30:00.000Z"
    report_end_date: str = "2027-12-31T18:29:00.000Z"
    report_compare_start_date: str = "2025-12-22T18:30:00.000Z"
    report_compare_end_date: str = "2025-12-31T18:29:59.999Z"

    # Reward issuance
    referral_membership_id: int = 583035
    location_ids: dict[str, int] = Field(default_factory=_default_locations)
    default_location_name: str = "Kwality House, Kemps Corner"
    host_name: str = "Physique 57 Mumbai"
    host_currency: str = "inr"

    # Request executor
    customer_request_timeout_seconds: float = 30.0
    report_request_timeout_seconds: float = 45.0
    payment_request_timeout_seconds: float = 30.0
    ledger_request_timeout_seconds: float = 15.0
    retry_max_attempts: int = 3
    retry_initial_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 10.0

    # Report polling and pacing
    report_poll_interval_seconds: float = 3.0
    report_poll_max_attempts: int = 100
    inter_record_delay_seconds: float = 1.0

    # Alerting
    alert_webhook_url: str | None = None
    alert_slack_channel: str | None = None

    # Scheduler and health surface
    schedule_path: str = "config/schedules.toml"
    health_port: int | None = None

    @field_validator("retry_max_attempts", "report_poll_max_attempts", "candidate_page_size")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(value, 1)

    @field_validator("alert_webhook_url", "alert_slack_channel", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def missing_required(self) -> list[str]:
        missing: list[str] = []
        if self.momence_all_cookies is None or not self.momence_all_cookies.get_secret_value().strip():
            missing.append("MOMENCE_ALL_COOKIES")
        if not self.database_url.strip():
            missing.append("DATABASE_URL")
        return missing

    def require_run_configuration(self) -> None:
        """Raise ``ConfigurationError`` when a run cannot start."""

        missing = self.missing_required()
        if missing:
            raise ConfigurationError(missing)


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]
