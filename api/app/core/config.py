"""Application configuration from environment variables."""

from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "CoachBook"
    debug: bool = True
    secret_key: str = "dev-secret-change-in-production"
    api_prefix: str = "/api/v1"

    # Database
    database_url: str = "postgresql+asyncpg://coachbook:coachbook@db:5432/coachbook"
    database_echo: bool = False

    # Auth (tokens are issued upstream; we only verify them)
    access_token_expire_minutes: int = 60
    jwt_algorithm: str = "HS256"

    # Email / SMTP
    smtp_host: str = "localhost"
    smtp_port: int = 1025
    smtp_from: str = "noreply@coachbook.io"
    email_notifications: bool = False
    frontend_url: str = "http://localhost:5173"

    # Scheduling
    timezone: str = "UTC"  # IANA name; booking dates/times are wall-clock in this zone
    slot_lock_timeout_seconds: float = 10.0

    model_config = {"env_prefix": "CB_", "env_file": ".env", "extra": "ignore"}

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


settings = Settings()
