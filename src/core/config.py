"""Configuration management for the listing renewal SMS engine.

All configuration is loaded from environment variables and/or .env file.
Timeouts and windows default to the values the SMS flows were designed around.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root detection
PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE = PROJECT_ROOT / ".env"

DATABASE_FILE = PROJECT_ROOT / "renewal_sms.db"
ABSOLUTE_DATABASE_URL = f"sqlite:///{DATABASE_FILE.as_posix()}"


def _resolve_database_url(url: str) -> str:
    """Anchor relative SQLite paths at PROJECT_ROOT so the CLI, scheduler and API share one file."""
    prefix = "sqlite:///"
    if not url.startswith(prefix):
        return url

    path_part = url[len(prefix):]
    # :memory: and absolute paths are left alone
    if path_part.startswith("/") or ":" in path_part:
        return url
    if path_part.startswith("./"):
        path_part = path_part[2:]
    return f"{prefix}{(PROJECT_ROOT / path_part).as_posix()}"


class Settings(BaseSettings):
    """
    Runtime configuration.

    Environment variables win over the project-root .env file, which wins
    over the defaults below.
    """

    model_config = SettingsConfigDict(
        env_file=ENV_FILE if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------
    database_url: str = Field(
        default=ABSOLUTE_DATABASE_URL,
        alias="DATABASE_URL",
        description="SQLAlchemy connection string.",
    )
    db_pool_size: int = Field(default=5, alias="DB_POOL_SIZE", ge=1)
    db_max_overflow: int = Field(default=10, alias="DB_MAX_OVERFLOW", ge=0)
    db_pool_timeout: int = Field(default=30, alias="DB_POOL_TIMEOUT", ge=1)

    # -------------------------------------------------------------------------
    # Twilio
    # -------------------------------------------------------------------------
    twilio_account_sid: Optional[str] = Field(default=None, alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: Optional[str] = Field(default=None, alias="TWILIO_AUTH_TOKEN")
    twilio_from_number: Optional[str] = Field(default=None, alias="TWILIO_FROM_NUMBER")
    twilio_messaging_service_sid: Optional[str] = Field(
        default=None, alias="TWILIO_MESSAGING_SERVICE_SID"
    )
    twilio_max_messages_per_second: float = Field(
        default=1.0, alias="TWILIO_MAX_MESSAGES_PER_SECOND", gt=0
    )
    twilio_status_callback_url: Optional[str] = Field(
        default=None, alias="TWILIO_STATUS_CALLBACK_URL", description="Webhook URL for delivery status"
    )
    validate_twilio_signature: bool = Field(
        default=True,
        alias="VALIDATE_TWILIO_SIGNATURE",
        description="Reject inbound webhooks whose X-Twilio-Signature does not match",
    )

    # -------------------------------------------------------------------------
    # Conversation flow
    # -------------------------------------------------------------------------
    platform_name: str = Field(default="Hadirot", alias="PLATFORM_NAME")
    dashboard_url: str = Field(default="hadirot.com/dashboard", alias="DASHBOARD_URL")
    renewal_window_days: int = Field(default=14, alias="RENEWAL_WINDOW_DAYS", ge=1)
    disambiguation_timeout_hours: int = Field(
        default=24, alias="DISAMBIGUATION_TIMEOUT_HOURS", ge=1
    )
    conversation_timeout_hours: int = Field(
        default=24, alias="CONVERSATION_TIMEOUT_HOURS", ge=1,
        description="Expiry for conversations created from unsolicited messages",
    )
    fallback_cooldown_hours: int = Field(default=24, alias="FALLBACK_COOLDOWN_HOURS", ge=0)
    max_disambiguation_candidates: int = Field(
        default=5, alias="MAX_DISAMBIGUATION_CANDIDATES", ge=2
    )
    max_selection_candidates: int = Field(default=3, alias="MAX_SELECTION_CANDIDATES", ge=2)

    # -------------------------------------------------------------------------
    # Per-phone serialization
    # -------------------------------------------------------------------------
    phone_lock_backend: str = Field(default="memory", alias="PHONE_LOCK_BACKEND")
    phone_lock_timeout_seconds: int = Field(default=60, alias="PHONE_LOCK_TIMEOUT_SECONDS", ge=1)
    phone_lock_wait_seconds: float = Field(default=10.0, alias="PHONE_LOCK_WAIT_SECONDS", ge=0)

    # -------------------------------------------------------------------------
    # Admin alerting
    # -------------------------------------------------------------------------
    admin_alert_phone: Optional[str] = Field(default=None, alias="ADMIN_ALERT_PHONE")
    admin_slack_webhook_url: Optional[str] = Field(default=None, alias="ADMIN_SLACK_WEBHOOK_URL")

    # -------------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------------
    sweep_interval_minutes: int = Field(default=60, alias="SWEEP_INTERVAL_MINUTES", ge=1)

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    dry_run: bool = Field(default=True, alias="DRY_RUN")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="text", alias="LOG_FORMAT")  # "text" or "json"
    environment: str = Field(default="local", alias="ENVIRONMENT")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        lower = v.lower()
        if lower not in {"text", "json"}:
            raise ValueError("log_format must be 'text' or 'json'")
        return lower

    @field_validator("phone_lock_backend")
    @classmethod
    def validate_phone_lock_backend(cls, v: str) -> str:
        lower = v.lower()
        if lower not in {"memory", "database"}:
            raise ValueError("phone_lock_backend must be 'memory' or 'database'")
        return lower

    @model_validator(mode="after")
    def validate_twilio_config(self) -> "Settings":
        """Validate Twilio configuration when not in dry-run mode."""
        if not self.dry_run and self.environment == "production":
            if not all([self.twilio_account_sid, self.twilio_auth_token, self.twilio_from_number]):
                raise ValueError("Twilio credentials required in production mode")
        return self

    @model_validator(mode="after")
    def resolve_database_url(self) -> "Settings":
        """Convert relative SQLite paths to absolute paths."""
        self.database_url = _resolve_database_url(self.database_url)
        return self

    # -------------------------------------------------------------------------
    # Helper Methods for Feature Detection
    # -------------------------------------------------------------------------

    def is_twilio_enabled(self) -> bool:
        """Check if Twilio is configured."""
        return bool(self.twilio_account_sid and self.twilio_auth_token)

    def can_send_sms(self) -> bool:
        """
        Check whether outbound SMS can be produced at all.

        Dry-run mode always can (messages are logged instead of sent).
        """
        return self.dry_run or bool(
            self.is_twilio_enabled()
            and (self.twilio_from_number or self.twilio_messaging_service_sid)
        )

    def is_slack_alerting_enabled(self) -> bool:
        return bool(self.admin_slack_webhook_url)

    def is_sms_alerting_enabled(self) -> bool:
        return bool(self.admin_alert_phone)

    def get_enabled_services(self) -> list[str]:
        """Get list of enabled external services."""
        services = []
        if self.is_twilio_enabled():
            services.append("twilio")
        if self.is_slack_alerting_enabled():
            services.append("slack_alerts")
        if self.is_sms_alerting_enabled():
            services.append("sms_alerts")
        return services


@lru_cache
def get_settings() -> Settings:
    """Settings are read once per process; see reload_settings()."""
    return Settings()


def reload_settings() -> Settings:
    """Drop the cached settings and read the environment again."""
    get_settings.cache_clear()
    return get_settings()
