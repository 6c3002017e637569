"""Tracing spans for handoff pack build and verify outcomes."""

from __future__ import annotations

import os
from typing import Final

from opentelemetry import trace

DISABLE_ENV: Final[str] = "HANDOFF_DISABLE_TRACING"
TRACER_NAME: Final[str] = "handoffpack.observability"


def _as_bool(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def tracing_disabled() -> bool:
    return _as_bool(os.environ.get(DISABLE_ENV))


def record_build_outcome(
    archive_path: str, message_count: int, capture_errors: list[str] | None = None
) -> None:
    """Emit a span describing a finished archive build."""
    if tracing_disabled():
        return
    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span("handoff.build") as span:
        span.set_attribute("handoff.archive", archive_path)
        span.set_attribute("handoff.message_count", message_count)
        span.set_attribute("handoff.capture_errors", len(capture_errors or []))
        if capture_errors:
            span.set_attribute("handoff.failed_captures", list(capture_errors))


def record_verification_outcome(
    archive_path: str, ok: bool, failure_count: int
) -> None:
    """Emit a span for a verification run."""
    if tracing_disabled():
        return
    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span("handoff.verify") as span:
        span.set_attribute("handoff.archive", archive_path)
        span.set_attribute("handoff.verified", ok)
        span.set_attribute("handoff.failures", failure_count)
