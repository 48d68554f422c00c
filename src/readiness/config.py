"""Runtime configuration for the readiness service.

All settings come from environment variables and are parsed once into
immutable dataclasses. Invalid values fail loudly with ConfigError; a
missing optional variable falls back to its documented default.

Environment Variables:
    READINESS_APP_ENV: Deployment environment name (required by the HTTP API)
    READINESS_DATABASE_URL: Postgres URL; in-memory repositories when unset
    READINESS_AUDIT_LOG_PATH: JSONL audit trail path when Postgres is not used
    READINESS_RESCORE_MAX_WORKERS: Re-score worker pool size (default 4)
    READINESS_RESCORE_ITEM_TIMEOUT_SECONDS: Per persistence call timeout (default 10)
    READINESS_RESCORE_EPSILON: Total-score change tolerance (default 0)
    READINESS_RESCORE_RETRY_BACKOFF_SECONDS: Delay before the single retry (default 0.5)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Final

from readiness.errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_APP_ENV: Final[str] = "READINESS_APP_ENV"
ENV_RESCORE_MAX_WORKERS: Final[str] = "READINESS_RESCORE_MAX_WORKERS"
ENV_RESCORE_ITEM_TIMEOUT_SECONDS: Final[str] = "READINESS_RESCORE_ITEM_TIMEOUT_SECONDS"
ENV_RESCORE_EPSILON: Final[str] = "READINESS_RESCORE_EPSILON"
ENV_RESCORE_RETRY_BACKOFF_SECONDS: Final[str] = "READINESS_RESCORE_RETRY_BACKOFF_SECONDS"

DEFAULT_MAX_WORKERS: Final[int] = 4
DEFAULT_ITEM_TIMEOUT_SECONDS: Final[float] = 10.0
DEFAULT_EPSILON: Final[int] = 0
DEFAULT_RETRY_BACKOFF_SECONDS: Final[float] = 0.5

REQUIRED_API_ENV: Final[tuple[str, ...]] = (ENV_APP_ENV,)


class ConfigError(ConfigurationError):
    """Raised when an environment variable holds an invalid value."""


@dataclass(frozen=True)
class RescoreConfig:
    """Re-score job tuning (immutable).

    Attributes:
        max_workers: Upper bound on concurrently processed assessments.
        item_timeout_seconds: Timeout for each persistence call of one item.
        epsilon: Total-score differences at or below this are "unchanged".
        retry_backoff_seconds: Delay before retrying a failed persistence call once.
    """

    max_workers: int = DEFAULT_MAX_WORKERS
    item_timeout_seconds: float = DEFAULT_ITEM_TIMEOUT_SECONDS
    epsilon: int = DEFAULT_EPSILON
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_workers <= 0:
            raise ConfigError(f"max_workers must be a positive integer, got {self.max_workers}")
        if self.item_timeout_seconds <= 0:
            raise ConfigError(
                f"item_timeout_seconds must be positive, got {self.item_timeout_seconds}"
            )
        if self.epsilon < 0:
            raise ConfigError(f"epsilon must be non-negative, got {self.epsilon}")
        if self.retry_backoff_seconds < 0:
            raise ConfigError(
                f"retry_backoff_seconds must be non-negative, got {self.retry_backoff_seconds}"
            )


def _raw(env_var: str) -> str | None:
    raw = os.environ.get(env_var)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _parse_positive_int(env_var: str, default: int) -> int:
    """Parse a positive integer from environment variable.

    Raises:
        ConfigError: If value is set but not a positive integer.
    """
    raw = _raw(env_var)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{env_var} must be a positive integer, got '{raw}'") from e
    if value <= 0:
        raise ConfigError(f"{env_var} must be a positive integer, got {value}")
    return value


def _parse_non_negative_int(env_var: str, default: int) -> int:
    raw = _raw(env_var)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{env_var} must be a non-negative integer, got '{raw}'") from e
    if value < 0:
        raise ConfigError(f"{env_var} must be a non-negative integer, got {value}")
    return value


def _parse_seconds(env_var: str, default: float, *, allow_zero: bool) -> float:
    raw = _raw(env_var)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{env_var} must be a number of seconds, got '{raw}'") from e
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{env_var} must be {'>= 0' if allow_zero else '> 0'}, got {value}")
    return value


def load_rescore_config() -> RescoreConfig:
    """Load re-score configuration from environment variables.

    Raises:
        ConfigError: If any value is invalid.
    """
    config = RescoreConfig(
        max_workers=_parse_positive_int(ENV_RESCORE_MAX_WORKERS, DEFAULT_MAX_WORKERS),
        item_timeout_seconds=_parse_seconds(
            ENV_RESCORE_ITEM_TIMEOUT_SECONDS, DEFAULT_ITEM_TIMEOUT_SECONDS, allow_zero=False
        ),
        epsilon=_parse_non_negative_int(ENV_RESCORE_EPSILON, DEFAULT_EPSILON),
        retry_backoff_seconds=_parse_seconds(
            ENV_RESCORE_RETRY_BACKOFF_SECONDS, DEFAULT_RETRY_BACKOFF_SECONDS, allow_zero=True
        ),
    )
    logger.debug(
        "Rescore config: workers=%d timeout=%.1fs epsilon=%d backoff=%.2fs",
        config.max_workers,
        config.item_timeout_seconds,
        config.epsilon,
        config.retry_backoff_seconds,
    )
    return config


def required_configuration_missing() -> list[str]:
    """Names of required environment variables that are unset or blank."""
    return [name for name in REQUIRED_API_ENV if _raw(name) is None]
