import logging
from functools import lru_cache
from typing import FrozenSet, Optional

from pydantic_settings import BaseSettings


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    flights_host: str = "www.google.com"

    headless: bool = True
    navigation_timeout_ms: int = 30000
    locale: str = "en-US"

    settle_seconds: float = 2.0
    poll_interval_seconds: float = 1.0
    max_poll_attempts: int = 10
    min_content_lines: int = 100

    # Optional pacing between leg fetches; no effect on results
    leg_pause_seconds: float = 0.0

    # Codes Google Flights does not serve (seaplane terminals etc.)
    excluded_codes: FrozenSet[str] = frozenset({"CXH"})

    log_level: str = "INFO"

    def model_post_init(self, __context):
        for name in (
            "navigation_timeout_ms",
            "settle_seconds",
            "poll_interval_seconds",
            "min_content_lines",
            "leg_pause_seconds",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if self.max_poll_attempts < 1:
            raise ValueError("max_poll_attempts must be at least 1")

    class Config:
        env_prefix = "FARESCOPE_"
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging the same way for scripts and notebooks."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format=LOG_FORMAT,
    )
