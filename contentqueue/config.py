"""
Runtime configuration read from environment variables.

Every knob has a default so the worker can start against a local SQLite
file with no configuration at all.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

DEFAULT_DATABASE_URL = "sqlite:///data/queue.db"
DEFAULT_AI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_AI_MODEL = "gpt-4-turbo-preview"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    value = os.getenv(name, "")
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class RetryConfig:
    """Backoff policy. Delays are in milliseconds."""

    max_retries: int = 3
    initial_delay: int = 1000
    max_delay: int = 10000
    backoff_multiplier: float = 2.0


@dataclass(frozen=True)
class BreakerConfig:
    """Circuit breaker thresholds. reset_timeout is in seconds."""

    failure_threshold: int = 5
    success_threshold: int = 2
    reset_timeout: float = 60.0


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    poll_interval: float = 5.0

    ai_api_key: Optional[str] = None
    ai_base_url: str = DEFAULT_AI_BASE_URL
    ai_model: str = DEFAULT_AI_MODEL
    ai_timeout: float = 30.0
    retry: RetryConfig = field(default_factory=RetryConfig)
    breaker: BreakerConfig = field(default_factory=BreakerConfig)

    distribution_channels: Tuple[str, ...] = ()
    distribution_webhooks: Dict[str, str] = field(default_factory=dict)

    log_level: str = "INFO"
    log_dir: str = "logs"
    log_to_file: bool = True

    @property
    def ai_mock_mode(self) -> bool:
        return not self.ai_api_key or self.ai_api_key == "mock"


def _webhooks_from_env(channels: List[str]) -> Dict[str, str]:
    hooks = {}
    for channel in channels:
        url = os.getenv(f"DISTRIBUTION_WEBHOOK_{channel.upper()}")
        if url:
            hooks[channel] = url
    return hooks


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    channels = _env_list("DISTRIBUTION_CHANNELS")
    return Settings(
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        poll_interval=_env_float("WORKER_POLL_INTERVAL", 5.0),
        ai_api_key=os.getenv("AI_API_KEY") or None,
        ai_base_url=os.getenv("AI_BASE_URL", DEFAULT_AI_BASE_URL).rstrip("/"),
        ai_model=os.getenv("AI_MODEL", DEFAULT_AI_MODEL),
        ai_timeout=_env_float("AI_TIMEOUT", 30.0),
        retry=RetryConfig(
            max_retries=_env_int("AI_MAX_RETRIES", 3),
            initial_delay=_env_int("AI_INITIAL_DELAY_MS", 1000),
            max_delay=_env_int("AI_MAX_DELAY_MS", 10000),
            backoff_multiplier=_env_float("AI_BACKOFF_MULTIPLIER", 2.0),
        ),
        breaker=BreakerConfig(
            failure_threshold=_env_int("AI_FAILURE_THRESHOLD", 5),
            success_threshold=_env_int("AI_SUCCESS_THRESHOLD", 2),
            reset_timeout=_env_float("AI_RESET_TIMEOUT", 60.0),
        ),
        distribution_channels=tuple(channels),
        distribution_webhooks=_webhooks_from_env(channels),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_dir=os.getenv("LOG_DIR", "logs"),
        log_to_file=_env_bool("LOG_TO_FILE", True),
    )
