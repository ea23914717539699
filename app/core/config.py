from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAIL_FROM = "no-reply@example.com"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="ORD_", extra="ignore")

    app_name: str = "Order Management API"
    env: str = "dev"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    database_url: str = "sqlite+pysqlite:///./orders.db"
    test_database_url: str = "sqlite+pysqlite:///:memory:"

    # Mail backend: smtp | memory
    mail_backend: str = "smtp"
    mail_from: str = DEFAULT_MAIL_FROM
    smtp_host: str = "mailer"
    smtp_port: int = 1025
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_start_tls: bool = False
    smtp_timeout_seconds: int = Field(default=10, ge=1)

    worker_poll_interval_seconds: float = Field(default=2.0, gt=0)
    worker_batch_size: int = Field(default=10, ge=1, le=500)
    worker_concurrency: int = Field(default=1, ge=1, le=32)
    worker_lease_seconds: int = Field(
        default=60,
        ge=1,
        description="How long a claimed message stays invisible before it is redelivered",
    )
    notification_max_attempts: int = Field(default=5, ge=1)
    notification_retry_delay_seconds: int = Field(default=30, ge=0)

    def model_post_init(self, __context) -> None:
        if self.env.lower() == "dev":
            return

        if self.mail_backend == "memory":
            raise ValueError("mail_backend=memory is not allowed outside dev mode; set ORD_MAIL_BACKEND=smtp")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
