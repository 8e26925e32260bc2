"""Application configuration from environment variables."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field, field_validator

from app.core.errors import ConfigurationError


def _clean_str(value: str | None) -> str | None:
    if value is None:
        return None
    # Replace non-breaking spaces with normal spaces
    return value.replace("\u00a0", " ").strip()



class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    PROJECT_NAME: str = "OurSpace Notification Dispatcher"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database Settings
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "ourspace"
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: str | None = None

    # Push provider (OneSignal)
    ONESIGNAL_REST_API_KEY: str | None = None
    ONESIGNAL_APP_ID: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ONESIGNAL_APP_ID", "EXPO_PUBLIC_ONESIGNAL_APP_ID"),
    )
    ONESIGNAL_API_URL: str = "https://api.onesignal.com/notifications"
    PUSH_TIMEOUT_SECONDS: float = 10.0

    # Dispatch loop
    DISPATCH_DEFAULT_BATCH_SIZE: int = 20
    DISPATCH_RETRY_BASE_SECONDS: int = 60
    DISPATCH_RETRY_MAX_SECONDS: int = 60
    DISPATCH_MAX_ATTEMPTS: int = 0  # 0 = retry forever
    DISPATCH_RUN_BUDGET_SECONDS: float = 50.0
    PROCESSING_LEASE_SECONDS: int = 300
    NOTIFICATIONS_POLL_SECONDS: float = 5.0

    # Health thresholds
    HEALTH_PENDING_AGE_WARN_SECONDS: int = 300
    HEALTH_FAILED_WARN_COUNT: int = 20
    HEALTH_QUEUED_WARN_COUNT: int = 100

    @field_validator(
        "ONESIGNAL_REST_API_KEY",
        "ONESIGNAL_APP_ID",
        "DATABASE_URL",
        mode="before",
    )
    @classmethod
    def clean_strings(cls, v):
        v = _clean_str(v)
        return v or None

    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def require_push_credentials(self) -> None:
        """Fail fast when the push provider is not configured."""
        missing = [
            name
            for name, value in (
                ("ONESIGNAL_REST_API_KEY", self.ONESIGNAL_REST_API_KEY),
                ("ONESIGNAL_APP_ID", self.ONESIGNAL_APP_ID),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing required env: {', '.join(missing)}")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        populate_by_name=True,
        extra="ignore",
    )


settings = Settings()
