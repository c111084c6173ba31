import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.
    Uses pydantic for validation and type safety.
    """
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    database_url: str = "sqlite:///./huechat.db"
    db_echo: bool = False

    # Sessions slide forward on every authorised call
    session_expire_days: int = 30
    session_cookie_name: str = "hue-session"

    # Cookie security settings
    # secure=True enforces HTTPS only - must be True in production
    cookie_secure: bool = False
    cookie_domain: str = "localhost"
    cookie_httponly: bool = True
    cookie_samesite: str = "lax"

    # Message lifecycle
    edit_window_seconds: int = 60
    retention_hours: int = 48
    retention_sweep_interval_seconds: int = 300
    max_message_length: int = 500
    max_emoji_length: int = 16

    # Presence and typing
    typing_idle_seconds: float = 5.0
    active_window_seconds: int = 60

    # Read limits
    feed_limit: int = 100
    search_limit: int = 50

    max_nickname_length: int = 32

    # Link preview fetches must never stall a request
    link_preview_timeout_seconds: float = 3.0
    link_preview_max_bytes: int = 65536

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance. Load once, reuse throughout application lifecycle.
    """
    return Settings()


def setup_logging() -> None:
    """
    Configure the root logger once at startup.
    """
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
