from typing import List, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./schooldesk.db"

    # Sessions
    secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    reset_token_expire_minutes: int = 60
    invitation_expire_hours: int = 48

    # Outbound mail
    email_from: str = "noreply@example.com"
    email_backend: Literal["smtp", "sendgrid", "outbox"] = "smtp"
    smtp_server: Optional[str] = None
    smtp_port: int = 25
    sendgrid_api_key: Optional[str] = None
    email_send_timeout: float = 10.0
    operating_mode: Literal["normal", "degraded"] = "normal"
    frontend_url: str = "http://localhost:3000"

    # App
    app_name: str = "SchoolDesk API"
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173"
    rate_limit_login: str = "10/minute"
    sentry_dsn: Optional[str] = None
    testing: bool = False

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",
        extra="ignore",
    )


settings = Settings()
