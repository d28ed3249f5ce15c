from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_LOGO_URL = (
    "https://res.cloudinary.com/dy2fjgt46/image/upload/v1770094547/rguktongole_logo_tzdkrc.jpg"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="uniz-notification-service", alias="APP_NAME")
    app_env: str = Field(default="local", alias="APP_ENV")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Queue
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    queue_name: str = Field(default="notification-queue", alias="QUEUE_NAME")
    queue_prefix: str = Field(default="notifications", alias="QUEUE_PREFIX")
    queue_max_attempts: int = Field(default=3, alias="QUEUE_MAX_ATTEMPTS")
    queue_backoff_seconds: float = Field(default=5.0, alias="QUEUE_BACKOFF_SECONDS")
    queue_stall_timeout_seconds: float = Field(default=300.0, alias="QUEUE_STALL_TIMEOUT_SECONDS")
    worker_concurrency: int = Field(default=5, alias="WORKER_CONCURRENCY")

    # Mail
    smtp_host: str = Field(default="smtp.gmail.com", alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_user: str = Field(default="", alias="EMAIL_USER")
    smtp_password: str = Field(default="", alias="EMAIL_PASS")
    smtp_use_tls: bool = Field(default=True, alias="SMTP_USE_TLS")
    smtp_timeout_seconds: float = Field(default=30.0, alias="SMTP_TIMEOUT_SECONDS")
    mail_from_address: str = Field(default="", alias="MAIL_FROM_ADDRESS")
    mail_from_name: str = Field(default="UniZ Campus", alias="MAIL_FROM_NAME")
    academics_from_name: str = Field(default="UniZ Academics", alias="ACADEMICS_FROM_NAME")

    # Rendering
    browser_executable_path: str | None = Field(default=None, alias="BROWSER_EXECUTABLE_PATH")
    browser_launch_attempts: int = Field(default=3, alias="BROWSER_LAUNCH_ATTEMPTS")
    report_logo_url: str = Field(default=DEFAULT_LOGO_URL, alias="REPORT_LOGO_URL")

    # Health server (not started in production)
    health_host: str = Field(default="0.0.0.0", alias="HEALTH_HOST")
    health_port: int = Field(default=3007, alias="HEALTH_PORT")

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def sender_address(self) -> str:
        return self.mail_from_address or self.smtp_user or "noreply@localhost"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
