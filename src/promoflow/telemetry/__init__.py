"""Logging and tracing for promoflow.

Example:
    >>> from promoflow.telemetry import configure_logging, controller_span, get_tracer
"""

from __future__ import annotations

from promoflow.telemetry.logging import add_trace_context, configure_logging
from promoflow.telemetry.sanitization import sanitize_error_message
from promoflow.telemetry.tracing import (
    controller_span,
    get_tracer,
    reset_tracer,
    set_tracer,
)

__all__ = [
    "add_trace_context",
    "configure_logging",
    "controller_span",
    "get_tracer",
    "reset_tracer",
    "sanitize_error_message",
    "set_tracer",
]
