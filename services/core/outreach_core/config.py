"""Configuration management for Outreach Core."""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="OUTREACH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database (job ledger and the default document store)
    database_url: str = Field(
        default="sqlite+pysqlite:////var/lib/outreach/outreach.db",
        description="SQLAlchemy connection URL",
    )

    # Celery
    celery_broker_url: str = Field(default="redis://outreach-redis:6379/1")
    celery_result_backend: str = Field(default="redis://outreach-redis:6379/2")

    # Document store
    document_store_backend: str = Field(default="sql", description="'sql' or 'firestore'")
    firestore_credentials_path: Optional[str] = None
    firestore_emulator_host: Optional[str] = None

    # Operator account
    account_email: str = Field(default="")
    account_secret: str = Field(default="")
    campaign_id: Optional[str] = None

    # Platform
    platform_base_url: str = Field(default="https://www.linkedin.com")
    headless: bool = Field(default=True)
    viewport_width: int = Field(default=1280)
    viewport_height: int = Field(default=800)
    record_video: bool = Field(default=False)

    # Storage paths
    cookies_dir: str = Field(default="/var/lib/outreach/cookies")
    artifacts_dir: str = Field(default="/var/lib/outreach/artifacts")

    # Security
    encryption_key: str = Field(
        default="",
        description="Fernet key for encrypting credential bundles at rest (empty = plaintext)",
    )

    # Credential bundle validation
    critical_cookies: list[str] = Field(default_factory=lambda: ["li_at", "li_rm", "JSESSIONID"])
    cookie_warn_horizon_seconds: int = Field(default=3600)

    # Pacing (seconds)
    connect_pre_delay: tuple[float, float] = (30.0, 120.0)
    reply_pre_delay: tuple[float, float] = (10.0, 60.0)
    status_check_gap: tuple[float, float] = (3.0, 8.0)
    extract_gap: tuple[float, float] = (2.0, 4.0)
    typing_wpm: int = Field(default=67)

    # Bulk admission stagger (seconds)
    connect_stagger_seconds: float = Field(default=30.0)
    reply_stagger_seconds: float = Field(default=15.0)
    status_check_stagger_seconds: float = Field(default=30.0)

    # Job retention
    keep_completed_jobs: int = Field(default=10)
    keep_failed_jobs: int = Field(default=50)

    # Scheduler
    status_check_enabled: bool = Field(default=False)
    status_check_interval: float = Field(default=3600.0)
    inbox_poll_enabled: bool = Field(default=True)
    inbox_poll_interval: float = Field(default=3600.0)
    schedule_jitter_seconds: float = Field(default=300.0)

    # Inbox enumeration cap
    inbox_max_threads: int = Field(default=200)

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v:
            raise ValueError("OUTREACH_DATABASE_URL is required")
        return v

    @field_validator("document_store_backend")
    @classmethod
    def validate_document_store_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in {"sql", "firestore"}:
            raise ValueError(f"Unknown document store backend: {v}")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
