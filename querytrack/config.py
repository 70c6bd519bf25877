import logging
from datetime import tzinfo
from functools import lru_cache
from typing import ClassVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # Supabase project (REST, auth and edge functions share the base URL)
    supabase_url: str
    supabase_anon_key: str

    # Edge function that turns a title/description pair into a summary
    summary_function_name: str = "generate-summary"

    request_timeout_seconds: float = 15.0

    # IANA zone for report date keys; empty means the server's local timezone
    report_timezone: str = ""

    log_level: str = "INFO"

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Lazily load and cache settings. Fails at first call, not at import time."""
    return Settings()  # type: ignore[call-arg]  # pyright: ignore[reportCallIssue]: fields loaded from env


def report_timezone() -> tzinfo | None:
    """Timezone used for report date keys; None means the local timezone."""
    name = get_settings().report_timezone
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown REPORT_TIMEZONE %r, using local time", name)
        return None
