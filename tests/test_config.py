"""Tests for environment-driven configuration."""

from __future__ import annotations

import pytest

from readiness.config import (
    DEFAULT_EPSILON,
    DEFAULT_ITEM_TIMEOUT_SECONDS,
    DEFAULT_MAX_WORKERS,
    ENV_APP_ENV,
    ENV_RESCORE_EPSILON,
    ENV_RESCORE_ITEM_TIMEOUT_SECONDS,
    ENV_RESCORE_MAX_WORKERS,
    ENV_RESCORE_RETRY_BACKOFF_SECONDS,
    ConfigError,
    RescoreConfig,
    load_rescore_config,
    required_configuration_missing,
)
from readiness.errors import ConfigurationError


class TestRescoreConfigDefaults:
    """Unset variables fall back to documented defaults."""

    def test_defaults(self) -> None:
        config = load_rescore_config()

        assert config.max_workers == DEFAULT_MAX_WORKERS == 4
        assert config.item_timeout_seconds == DEFAULT_ITEM_TIMEOUT_SECONDS == 10.0
        assert config.epsilon == DEFAULT_EPSILON == 0
        assert config.retry_backoff_seconds == 0.5

    def test_blank_value_uses_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_RESCORE_MAX_WORKERS, "  ")
        assert load_rescore_config().max_workers == DEFAULT_MAX_WORKERS


class TestRescoreConfigParsing:
    """Valid overrides are applied; invalid ones fail loudly."""

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_RESCORE_MAX_WORKERS, "8")
        monkeypatch.setenv(ENV_RESCORE_ITEM_TIMEOUT_SECONDS, "2.5")
        monkeypatch.setenv(ENV_RESCORE_EPSILON, "1")
        monkeypatch.setenv(ENV_RESCORE_RETRY_BACKOFF_SECONDS, "0")

        config = load_rescore_config()

        assert config == RescoreConfig(
            max_workers=8, item_timeout_seconds=2.5, epsilon=1, retry_backoff_seconds=0.0
        )

    @pytest.mark.parametrize("value", ["0", "-2", "four"])
    def test_invalid_worker_count(self, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        monkeypatch.setenv(ENV_RESCORE_MAX_WORKERS, value)

        with pytest.raises(ConfigError):
            load_rescore_config()

    def test_zero_timeout_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_RESCORE_ITEM_TIMEOUT_SECONDS, "0")

        with pytest.raises(ConfigError):
            load_rescore_config()

    def test_negative_epsilon_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_RESCORE_EPSILON, "-1")

        with pytest.raises(ConfigError):
            load_rescore_config()

    def test_direct_construction_is_validated(self) -> None:
        with pytest.raises(ConfigError):
            RescoreConfig(max_workers=0)

    def test_config_error_is_configuration_error(self) -> None:
        assert issubclass(ConfigError, ConfigurationError)


class TestRequiredConfiguration:
    """The API refuses to serve without required settings."""

    def test_nothing_missing_in_test_env(self) -> None:
        assert required_configuration_missing() == []

    def test_missing_app_env_reported(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(ENV_APP_ENV)

        assert required_configuration_missing() == [ENV_APP_ENV]
