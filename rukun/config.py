"""Application configuration from environment variables."""

import logging
from decimal import Decimal
from typing import Optional

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Pydantic loads values from OS environment variables first, then from the
    .env file in the working directory.
    """

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./rukun.db", description="SQLAlchemy connection string"
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Auth
    secret_key: str = Field(default="dev-secret", description="Access token signing key")
    token_ttl_seconds: int = Field(default=3600, description="Access token lifetime")
    bcrypt_rounds: int = Field(default=12, description="bcrypt cost factor for password hashes")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/server.log", description="Server log file")

    # Uploads
    upload_dir: str = Field(default="uploads", description="Directory for uploaded files")

    # Dues
    dues_amount: Decimal = Field(
        default=Decimal("50000"), description="Fixed amount of a regular monthly iuran"
    )
    dues_unique_regular_period: bool = Field(
        default=True,
        description="Reject a second regular iuran for the same resident and period",
    )
    generation_include_inactive: bool = Field(
        default=False,
        description="Generate dues for inactive/away residents as well",
    )

    # Locale
    locale: str = Field(default="id_ID", description="Locale for amounts and dates")

    # Push notifications
    expo_push_url: str = Field(
        default="https://exp.host/--/api/v2/push/send", description="Expo push endpoint"
    )
    push_enabled: bool = Field(default=True, description="Deliver push notifications")
    push_timeout_seconds: int = Field(default=10, description="Push HTTP timeout")

    # Scheduler
    celery_broker_url: str = Field(
        default="redis://localhost:6379/0", description="Celery broker for beat jobs"
    )
    monthly_generation_day: int = Field(
        default=28, description="Day of month when the next iuran is generated"
    )
    reminder_day: int = Field(default=10, description="Day of month for jatuh tempo reminders")

    # Spreadsheet import
    import_default_password: str = Field(
        default="password123", description="Password for residents created by import"
    )
    import_email_domain: str = Field(
        default="warga.rt", description="Email domain for residents created by import"
    )

    # API
    api_title: str = Field(default="Rukun API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")
    api_host: str = Field(default="0.0.0.0", description="Bind host for the API server")
    api_port: int = Field(default=8000, description="Bind port for the API server")


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the settings instance.

    Lazy so that tests and the CLI can adjust the environment before the
    first access.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
        logger.debug("Settings loaded: database_url=%s", _settings_instance.database_url)
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings_instance
    _settings_instance = None


__all__ = ["Settings", "get_settings", "reset_settings"]
