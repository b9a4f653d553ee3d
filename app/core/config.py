from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="essaybot", alias="MONGODB_DB_NAME")

    # Redis (arq worker)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Chat connector
    chat_webhook_secret: str = Field(default="", alias="CHAT_WEBHOOK_SECRET")
    bot_username: str = Field(default="essay_originality_bot", alias="BOT_USERNAME")
    download_timeout_seconds: float = Field(default=30.0, alias="DOWNLOAD_TIMEOUT_SECONDS")

    # Admin
    admin_api_key: str = Field(default="", alias="ADMIN_API_KEY")

    # Scoring API
    originality_api_key: str = Field(default="", alias="ORIGINALITY_API_KEY")
    originality_api_url: str = Field(
        default="https://api.originality.ai/api/v3/scan",
        alias="ORIGINALITY_API_URL",
    )
    originality_model_version: str = Field(default="lite-102", alias="ORIGINALITY_MODEL_VERSION")
    scoring_timeout_seconds: float = Field(default=30.0, alias="SCORING_TIMEOUT_SECONDS")
    refund_on_scoring_failure: bool = Field(default=False, alias="REFUND_ON_SCORING_FAILURE")

    # Busy lock lease
    busy_lock_max_seconds: int = Field(default=600, alias="BUSY_LOCK_MAX_SECONDS")

    # Maintenance health check
    maintenance_status_url: str = Field(
        default="https://production.turnitindetect.org/maintenance-status",
        alias="MAINTENANCE_STATUS_URL",
    )
    maintenance_timeout_seconds: float = Field(default=10.0, alias="MAINTENANCE_TIMEOUT_SECONDS")
    maintenance_service_name: str = Field(default="turnitin", alias="MAINTENANCE_SERVICE_NAME")

    # Razorpay
    razorpay_key_id: str = Field(default="", alias="RAZORPAY_KEY_ID")
    razorpay_key_secret: str = Field(default="", alias="RAZORPAY_KEY_SECRET")
    razorpay_webhook_secret: str = Field(default="", alias="RAZORPAY_WEBHOOK_SECRET")
    credit_currency: str = Field(default="HKD", alias="CREDIT_CURRENCY")

    # Storage
    storage_backend: str = Field(default="local", alias="STORAGE_BACKEND")
    storage_local_path: str = Field(default="./uploads", alias="STORAGE_LOCAL_PATH")
    gcs_bucket_prefix: str = Field(default="", alias="GCS_BUCKET_PREFIX")
    essays_bucket: str = Field(default="essays", alias="ESSAYS_BUCKET")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")


@lru_cache
def get_settings() -> Settings:
    return Settings()
