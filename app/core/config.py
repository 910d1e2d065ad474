# app/core/config.py
from functools import lru_cache

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global application configuration.

    Values are loaded from environment variables at runtime.

    These settings are used for:
    - DB connection
    - Recurrence expansion (series time zone, safety cap, horizons)
    - Search index hook credentials
    - Notification e-mail transport
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Tutorbook Scheduling"
    APP_ENV: str = Field("local", description="Environment name: local/dev/stage/prod/test")

    DB_URL: str = Field(
        "sqlite+aiosqlite:///./tutorbook.db",
        description="SQLAlchemy-compatible database URL",
    )

    # --- Recurrence engine ---
    SERIES_TIMEZONE: str = Field(
        "UTC",
        description=(
            "IANA time zone in which recurrence rules are interpreted as "
            "wall-clock recurrences (e.g. 'every Tuesday 3-4pm')."
        ),
    )
    MAX_OCCURRENCES: int = Field(
        10_000,
        description="Hard cap on occurrences generated by a single expansion.",
        ge=1,
    )
    AVAILABILITY_HORIZON_DAYS: int = Field(
        56,
        description=(
            "How many days of an unbounded recurring candidate are checked "
            "against a person's availability."
        ),
        ge=1,
    )

    # --- Search index hook ---
    SEARCH_BASE_URL: AnyHttpUrl | None = None
    SEARCH_APP_ID: str | None = None
    SEARCH_API_KEY: str | None = None
    SEARCH_INDEX: str = Field(
        "meetings",
        description="Name of the search index that mirrors meeting documents.",
    )

    # --- SMTP / Email configuration ---
    SMTP_HOST: str | None = Field(
        default=None,
        description="SMTP server hostname for sending notification emails.",
    )
    SMTP_PORT: int = Field(
        default=587,
        description="SMTP server port (usually 587 for TLS).",
    )
    SMTP_USERNAME: str | None = Field(
        default=None,
        description="SMTP username (if authentication is required).",
    )
    SMTP_PASSWORD: str | None = Field(
        default=None,
        description="SMTP password (if authentication is required).",
    )
    SMTP_USE_TLS: bool = Field(
        default=True,
        description="Whether to use STARTTLS when connecting to SMTP.",
    )
    SMTP_FROM_ADDRESS: str | None = Field(
        default=None,
        description="From address used in meeting notification emails.",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Using LRU cache ensures settings are read and validated only once,
    while still being easily importable across the app.
    """
    return Settings()
