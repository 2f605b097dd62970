from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "Flowsmith"
    app_env: str = "development"  # development, testing, production
    debug: bool = False
    enable_openapi: bool = True
    log_user_emails: bool = False  # Keep off in production (GDPR)

    # Database
    database_url: str = "sqlite+aiosqlite:///./flowsmith.db"
    database_migrations_url: str | None = None  # Defaults to database_url
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Automation document
    fence_retry_attempts: int = 3  # Internal transitions re-read and retry on stale doc_version
    default_runtime_environment: str = "dev"

    # Execution
    execution_poll_interval_seconds: float = 1.0
    execution_poll_min_interval_seconds: float = 0.2
    stop_grace_period_seconds: float = 30.0
    runner_command: list[str] = ["node"]
    runner_heartbeat_seconds: int = 10
    runner_timeout_minutes: int = 60
    runner_secret_prefix: str = "FLOWSMITH_SECRET_"
    checkpoint_marker: str = "::checkpoint::"
    log_tail_on_notification: int = 20

    # Scheduler
    scheduler_enabled: bool = True
    scheduler_batch_size: int = 50
    scheduler_cron: str = "* * * * *"  # Temporal schedule for the tick workflow
    default_timezone: str = "UTC"

    # History
    history_page_size: int = 50
    history_max_page_size: int = 200

    # Version control sync
    github_api_url: str = "https://api.github.com"
    github_timeout_seconds: float = 15.0
    vcs_path_prefix: str = "automations"

    # Temporal
    temporal_host: str = "localhost:7233"
    temporal_namespace: str = "default"
    temporal_task_queue: str = "flowsmith-queue"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Metrics
    metrics_api_key: str | None = None  # If set, /metrics requires this key

    # Email (Resend)
    resend_api_key: str | None = None  # If not set, emails are logged but not sent
    email_from: str = "noreply@example.com"
    email_send_timeout_seconds: int = 10
    app_url: str = "http://localhost:3000"

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: list[str]) -> list[str]:
        """Validate CORS origins - reject wildcards when credentials are used."""
        for origin in v:
            if origin == "*":
                raise ValueError(
                    "CORS wildcard '*' is not allowed when allow_credentials=True. "
                    "Specify explicit origins instead."
                )
        return v

    @field_validator("default_timezone")
    @classmethod
    def validate_default_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone '{v}'") from e
        return v

    @field_validator("stop_grace_period_seconds", "execution_poll_interval_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Interval must be positive")
        return v

    @field_validator("scheduler_batch_size", "history_page_size", "fence_retry_attempts")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
