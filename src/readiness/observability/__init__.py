"""Readiness observability module: OpenTelemetry tracing."""

from readiness.observability.tracing import TracingSettings, configure_tracing, traced_span

__all__ = ["TracingSettings", "configure_tracing", "traced_span"]
