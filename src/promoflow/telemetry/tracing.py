"""OpenTelemetry tracing helpers for the promotion controller.

Provides a thread-safe tracer factory and the ``controller_span`` context
manager. Decision passes, promotion calls, batch runs and target resolution
each emit a ``promoflow.<operation>`` span.

The controller only depends on ``opentelemetry-api``. Without a configured
SDK the spans are no-ops.

Example:
    >>> from promoflow.telemetry.tracing import controller_span, get_tracer
    >>> tracer = get_tracer()
    >>> with controller_span(tracer, "decide", namespace="jx", activity="acme-api-master-3"):
    ...     pass
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from promoflow.telemetry.sanitization import sanitize_error_message

if TYPE_CHECKING:
    from collections.abc import Iterator

    from opentelemetry.trace import Tracer

TRACER_NAME = "promoflow"

ATTR_OPERATION = "promoflow.operation"
ATTR_NAMESPACE = "promoflow.namespace"
ATTR_ACTIVITY = "promoflow.activity"
ATTR_ENVIRONMENT = "promoflow.environment"

_tracers: dict[str, Tracer] = {}
_tracer_init_failed: bool = False
_lock = threading.Lock()


def get_tracer(name: str = TRACER_NAME) -> Tracer:
    """Get or create a thread-safe tracer instance.

    Uses double-checked locking for lazy initialization. Returns a
    NoOpTracer if OpenTelemetry initialization fails.

    Args:
        name: The tracer name. Each unique name gets its own tracer.

    Returns:
        OpenTelemetry Tracer instance for the given name.
    """
    global _tracer_init_failed

    if name in _tracers:
        return _tracers[name]

    if _tracer_init_failed:
        return trace.NoOpTracer()

    with _lock:
        if name in _tracers:
            return _tracers[name]

        if _tracer_init_failed:
            return trace.NoOpTracer()

        try:
            tracer = trace.get_tracer(name)
        except Exception:
            # OTel global state corrupted or misconfigured
            _tracer_init_failed = True
            return trace.NoOpTracer()
        _tracers[name] = tracer
        return tracer


def set_tracer(name: str, tracer: Tracer | None) -> None:
    """Set or clear the cached tracer for ``name`` (for testing)."""
    with _lock:
        if tracer is None:
            _tracers.pop(name, None)
        else:
            _tracers[name] = tracer


def reset_tracer() -> None:
    """Clear cached tracers and the failure flag (for test isolation)."""
    global _tracer_init_failed
    with _lock:
        _tracers.clear()
        _tracer_init_failed = False


@contextmanager
def controller_span(
    tracer: Tracer,
    operation: str,
    *,
    namespace: str | None = None,
    activity: str | None = None,
    environment: str | None = None,
    extra_attributes: dict[str, Any] | None = None,
) -> Iterator[trace.Span]:
    """Context manager for controller operation spans.

    The span records OK on normal exit. On exception it records ERROR with
    the exception type and a sanitized message, then re-raises.

    Args:
        tracer: OpenTelemetry tracer instance.
        operation: Operation name (e.g. "decide", "promote").
        namespace: Team namespace.
        activity: PipelineActivity name.
        environment: Target Environment name.
        extra_attributes: Additional span attributes.

    Yields:
        The active span for adding custom attributes.
    """
    attributes: dict[str, Any] = {ATTR_OPERATION: operation}
    if namespace is not None:
        attributes[ATTR_NAMESPACE] = namespace
    if activity is not None:
        attributes[ATTR_ACTIVITY] = activity
    if environment is not None:
        attributes[ATTR_ENVIRONMENT] = environment
    if extra_attributes:
        attributes.update(extra_attributes)

    # Exceptions are recorded below with a sanitized message only
    with tracer.start_as_current_span(
        f"promoflow.{operation}",
        attributes=attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
            span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, type(e).__name__))
            span.set_attribute("exception.type", type(e).__name__)
            span.set_attribute("exception.message", sanitize_error_message(str(e)))
            raise


__all__ = [
    "ATTR_ACTIVITY",
    "ATTR_ENVIRONMENT",
    "ATTR_NAMESPACE",
    "ATTR_OPERATION",
    "TRACER_NAME",
    "controller_span",
    "get_tracer",
    "reset_tracer",
    "set_tracer",
]
