"""Application configuration and settings."""

from functools import lru_cache
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Service Configuration
    service_name: str = "debt-collection-agent"
    service_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    # Reminder policy
    reminder_interval_hours: int = 24
    max_reminder_attempts: int = 5
    escalation_threshold_days: int = 7
    default_escalation_type: str = "legal"
    message_delay_seconds: float = 2.0
    respect_contact_window: bool = True

    # Scheduling
    timezone: str = "Asia/Jakarta"
    reminder_sweep_interval_seconds: int = 3600
    escalation_sweep_interval_seconds: int = 6 * 3600
    daily_task_interval_seconds: int = 24 * 3600
    weekly_task_interval_seconds: int = 7 * 24 * 3600
    scheduler_enabled: bool = True

    # Credit rating thresholds
    poor_default_rate: float = 0.3
    fair_default_rate: float = 0.1
    fair_on_time_rate: float = 0.5
    excellent_on_time_rate: float = 0.8

    # Message channel (WhatsApp gateway)
    default_country_code: str = "62"
    channel_address_suffix: str = "@s.whatsapp.net"
    whatsapp_gateway_url: str = "http://localhost:3001"
    whatsapp_gateway_timeout: int = 30
    channel_failure_threshold: int = 5
    circuit_breaker_timeout: int = 60
    channel_retry_attempts: int = 3

    # OpenAI Configuration
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.7
    openai_max_tokens: int = 400
    openai_timeout: int = 30

    # Message content
    company_name: str = "Finance Team"
    default_language: str = "id"

    @field_validator(
        "reminder_interval_hours",
        "max_reminder_attempts",
        "escalation_threshold_days",
        "reminder_sweep_interval_seconds",
        "escalation_sweep_interval_seconds",
        "daily_task_interval_seconds",
        "weekly_task_interval_seconds",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Intervals and attempt limits must be positive")
        return v

    @field_validator("message_delay_seconds")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Message delay cannot be negative")
        return v

    @field_validator(
        "poor_default_rate",
        "fair_default_rate",
        "fair_on_time_rate",
        "excellent_on_time_rate",
    )
    @classmethod
    def validate_rates(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("Credit rating thresholds must be between 0.0 and 1.0")
        return v

    @field_validator("openai_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError("OpenAI temperature must be between 0.0 and 2.0")
        return v

    @field_validator("default_escalation_type")
    @classmethod
    def validate_escalation_type(cls, v: str) -> str:
        allowed = {"legal", "collection_agency", "management", "write_off"}
        if v not in allowed:
            raise ValueError(f"Escalation type must be one of {sorted(allowed)}")
        return v

    @model_validator(mode="after")
    def validate_rate_order(self) -> "Settings":
        if self.fair_default_rate > self.poor_default_rate:
            raise ValueError("fair_default_rate must not exceed poor_default_rate")
        return self

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
