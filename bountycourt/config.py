from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://bountycourt:bountycourt_dev@db:5432/bountycourt"

    # Redis (Celery broker / result backend)
    REDIS_URL: str = "redis://redis:6379/0"

    # Dispute windows
    DISPUTE_INACTIVITY_DAYS: int = 14
    DISPUTE_ESCALATION_DAYS: int = 14
    APPEAL_WINDOW_DAYS: int = 7

    # Input limits
    MIN_DISPUTE_REASON_LENGTH: int = 20
    MIN_RESOLUTION_RATIONALE_LENGTH: int = 50
    RESOLUTION_SUMMARY_LENGTH: int = 100

    # Settlement rails
    SETTLEMENT_API_URL: str = "https://payments.internal/v1"
    SETTLEMENT_API_KEY: str = "mock_settlement_key"
    SETTLEMENT_MAX_RETRIES: int = 5
    SETTLEMENT_RETRY_BASE_SECONDS: int = 30

    # Notifications
    NOTIFICATION_WEBHOOK_URL: str = "https://notify.internal/v1/events"
    NOTIFICATION_API_KEY: str = "mock_notification_key"
    ADMIN_NOTIFY_IDS: str = ""

    # App
    APP_ENV: str = "development"
    ALLOWED_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def admin_notify_ids(self) -> list[str]:
        return [part.strip() for part in self.ADMIN_NOTIFY_IDS.split(",") if part.strip()]


settings = Settings()
