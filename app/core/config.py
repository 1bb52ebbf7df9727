from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings with environment-based configuration"""

    # Application
    app_name: str = "Zensync"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # API
    api_v1_prefix: str = "/api/v1"
    secret_key: str = "your-secret-key-change-in-production"
    encryption_salt: str = "zensync-connection-credentials"

    # Database
    database_url: Optional[str] = None

    # SQLite for development
    sqlite_db_name: str = "zensync.db"

    # PostgreSQL for production
    postgres_server: Optional[str] = None
    postgres_user: Optional[str] = None
    postgres_password: Optional[str] = None
    postgres_db: Optional[str] = None
    postgres_port: int = 5432

    # Celery
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"
    task_max_retries: int = 5
    task_retry_backoff_max: int = 600

    # Slack
    slack_signing_secret: Optional[str] = None
    slack_rate_limit_per_minute: int = 50

    # Zendesk
    zendesk_request_timeout: int = 30
    zendesk_max_retries: int = 3
    zendesk_rate_limit_per_minute: int = 700

    # Subscriptions
    subscription_expiration_buffer_hours: int = 48

    # Logging
    log_level: str = "INFO"

    @property
    def database_url_complete(self) -> str:
        """Get complete database URL based on environment"""
        if self.database_url:
            return self.database_url

        if self.environment == "production" and all(
            [
                self.postgres_server,
                self.postgres_user,
                self.postgres_password,
                self.postgres_db,
            ]
        ):
            return f"postgresql://{self.postgres_user}:{self.postgres_password}@{self.postgres_server}:{self.postgres_port}/{self.postgres_db}"

        # Default to SQLite for development
        return f"sqlite:///./{self.sqlite_db_name}"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_parse_none_str="None"
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
