"""Tests for tracing configuration and scoring spans."""

from __future__ import annotations

import pytest

from readiness.errors import ConfigurationError
from readiness.observability.tracing import (
    TracingSettings,
    captured_spans,
    clear_captured_spans,
    configure_tracing,
    traced_span,
)
from readiness.scoring.engine import ScoringEngine
from tests.fixtures.builders import make_answers


class TestSettings:
    """Environment parsing."""

    def test_disabled_by_default(self) -> None:
        settings = TracingSettings.from_env()

        assert not settings.enabled
        assert settings.exporter == "otlp-grpc"
        assert settings.service_name == "readiness"

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("READINESS_OTEL_ENABLED", "true")
        monkeypatch.setenv("READINESS_OTEL_EXPORTER", "Console")
        monkeypatch.setenv("READINESS_OTEL_ENDPOINT", "http://collector:4317")

        settings = TracingSettings.from_env()

        assert settings.enabled
        assert settings.exporter == "console"
        assert settings.endpoint == "http://collector:4317"

    def test_disabled_configuration_is_a_no_op(self) -> None:
        assert configure_tracing(TracingSettings(enabled=False)) is False


class TestSpans:
    """Spans around scoring carry identifiers, never answers."""

    def test_noop_span_without_provider(self) -> None:
        with traced_span("readiness.test", {"a": 1, "b": None}) as span:
            assert span is not None

    def test_exceptions_propagate(self) -> None:
        with pytest.raises(ConfigurationError), traced_span("readiness.test"):
            raise ConfigurationError("boom")

    def test_engine_span_captured(self, engine: ScoringEngine) -> None:
        assert configure_tracing(TracingSettings(enabled=True, exporter="memory"))
        clear_captured_spans()

        engine.score(make_answers(), assessment_id="a-1")

        spans = captured_spans()
        if not spans:
            pytest.skip("another tracer provider was installed first in this process")
        attributes = dict(spans[-1].attributes or {})
        assert attributes.get("readiness.rule_set_version") == "0.1.0"
        assert "hasPrototype" not in str(attributes)
