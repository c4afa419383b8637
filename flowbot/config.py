from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./flowbot.db"
    debug: bool = False
    log_level: str = "INFO"
    admin_token: Optional[str] = None
    cors_allow_origins: str = "*"

    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    ai_timeout_seconds: float = 60.0
    ai_max_tokens: int = 1000

    telegram_api_base: str = "https://api.telegram.org"
    telegram_request_timeout: float = 30.0

    poll_interval_seconds: float = 10.0
    poll_limit: int = 100
    watchdog_interval_seconds: float = 30.0
    poll_failure_threshold: int = 3
    restart_backoff_seconds: float = 2.0
    restart_retry_seconds: float = 10.0
    update_timeout_seconds: float = 120.0
    max_update_attempts: int = 3

    notification_roles: str = "admin,finance"
    notification_preview_chars: int = 60

    alert_bot_token: Optional[str] = None
    alert_chat_id: Optional[str] = None

    engine_autostart: bool = True

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def notification_role_set(self) -> set[str]:
        return {role.strip().lower() for role in self.notification_roles.split(",") if role.strip()}


settings = Settings()
