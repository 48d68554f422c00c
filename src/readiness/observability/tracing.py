"""OpenTelemetry tracing for the readiness service.

Tracing is off unless READINESS_OTEL_ENABLED=1. Spans cover engine scoring,
each re-score item and inbound HTTP requests; attributes carry identifiers
and versions only, never raw answers.

Environment Variables:
    READINESS_OTEL_ENABLED: "1" to enable tracing (default: disabled)
    READINESS_OTEL_REQUIRED: "1" to fail startup if tracing cannot initialize
    READINESS_OTEL_SERVICE_NAME: resource service.name (default: "readiness")
    READINESS_OTEL_EXPORTER: "otlp-grpc", "otlp-http", "console" or "memory"
        (default: "otlp-grpc"; "memory" keeps spans for tests)
    READINESS_OTEL_ENDPOINT: OTLP collector endpoint (optional)
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from opentelemetry import trace

from readiness.errors import ConfigurationError

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan
    from opentelemetry.sdk.trace.export import SpanExporter

logger = logging.getLogger(__name__)

TRACER_NAME = "readiness"
EXPORTERS = ("otlp-grpc", "otlp-http", "console", "memory")

_lock = threading.Lock()
_provider_installed = False
_memory_exporter: Any = None


@dataclass(frozen=True)
class TracingSettings:
    enabled: bool = False
    required: bool = False
    service_name: str = "readiness"
    exporter: str = "otlp-grpc"
    endpoint: str | None = None

    @classmethod
    def from_env(cls) -> TracingSettings:
        def flag(name: str) -> bool:
            return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")

        return cls(
            enabled=flag("READINESS_OTEL_ENABLED"),
            required=flag("READINESS_OTEL_REQUIRED"),
            service_name=os.environ.get("READINESS_OTEL_SERVICE_NAME", "").strip() or "readiness",
            exporter=os.environ.get("READINESS_OTEL_EXPORTER", "").strip().lower() or "otlp-grpc",
            endpoint=os.environ.get("READINESS_OTEL_ENDPOINT", "").strip() or None,
        )


class TracingConfigError(ConfigurationError):
    """Raised when tracing is required but cannot be initialized."""


def _build_exporter(settings: TracingSettings) -> SpanExporter:
    kwargs: dict[str, Any] = {"endpoint": settings.endpoint} if settings.endpoint else {}
    if settings.exporter == "otlp-http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

        return OTLPSpanExporter(**kwargs)
    if settings.exporter == "otlp-grpc":
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter as GrpcSpanExporter,
        )

        return GrpcSpanExporter(**kwargs)
    raise ConfigurationError(
        f"Unknown READINESS_OTEL_EXPORTER {settings.exporter!r}; expected one of {EXPORTERS}"
    )


def configure_tracing(settings: TracingSettings | None = None) -> bool:
    """Install the global TracerProvider once per process.

    Returns:
        True if tracing is active after the call.

    Raises:
        TracingConfigError: If tracing is required and setup fails.
    """
    global _provider_installed, _memory_exporter

    settings = settings or TracingSettings.from_env()
    if not settings.enabled:
        return False

    with _lock:
        if _provider_installed:
            return True
        try:
            from opentelemetry.sdk.resources import Resource
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.trace.export import (
                BatchSpanProcessor,
                ConsoleSpanExporter,
                SimpleSpanProcessor,
            )
            from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
                InMemorySpanExporter,
            )

            provider = TracerProvider(
                resource=Resource.create({"service.name": settings.service_name})
            )
            if settings.exporter == "memory":
                _memory_exporter = InMemorySpanExporter()
                provider.add_span_processor(SimpleSpanProcessor(_memory_exporter))
            elif settings.exporter == "console":
                provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
            else:
                provider.add_span_processor(BatchSpanProcessor(_build_exporter(settings)))

            trace.set_tracer_provider(provider)
            _provider_installed = True
        except Exception as e:
            logger.error("Tracing setup failed (exporter=%s): %s", settings.exporter, e)
            if settings.required:
                raise TracingConfigError(f"Tracing required but setup failed: {e}") from e
            return False

    logger.info(
        "Tracing enabled: service=%s exporter=%s", settings.service_name, settings.exporter
    )
    return True


def instrument_fastapi(app: Any, settings: TracingSettings | None = None) -> None:
    """Attach request spans to a FastAPI app; /health is excluded."""
    settings = settings or TracingSettings.from_env()
    if not settings.enabled:
        return

    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

    FastAPIInstrumentor.instrument_app(app, excluded_urls="health")


@contextmanager
def traced_span(name: str, attributes: dict[str, Any] | None = None) -> Iterator[Any]:
    """Open a span on the readiness tracer.

    Without an installed provider the span is a no-op. None-valued
    attributes are dropped; everything else is stringified.
    """
    tracer = trace.get_tracer(TRACER_NAME)
    safe = {k: str(v) for k, v in (attributes or {}).items() if v is not None}
    with tracer.start_as_current_span(name, attributes=safe) as span:
        try:
            yield span
        except Exception as e:
            span.set_attribute("error.type", type(e).__name__)
            raise


def captured_spans() -> list[ReadableSpan]:
    """Spans kept by the "memory" exporter, oldest first."""
    if _memory_exporter is None:
        return []
    return list(_memory_exporter.get_finished_spans())


def clear_captured_spans() -> None:
    if _memory_exporter is not None:
        _memory_exporter.clear()
