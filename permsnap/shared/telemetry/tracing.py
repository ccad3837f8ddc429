"""Span helpers for snapshot runs.

Every attribute is written under the ``permsnap.`` namespace so run spans
can be filtered next to the instrumented SQLAlchemy and Redis spans.
"""

import inspect
from collections.abc import Callable, Mapping
from functools import wraps
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

TRACER_NAME = "permsnap"
ATTRIBUTE_PREFIX = "permsnap."

AttributeValue = str | int | float | bool


def _namespaced(attributes: Mapping[str, AttributeValue]) -> dict[str, AttributeValue]:
    return {f"{ATTRIBUTE_PREFIX}{key}": value for key, value in attributes.items()}


def traced(
    operation_name: str,
    span_attributes: Callable[..., Mapping[str, AttributeValue]] | None = None,
) -> Callable:
    """Run an async callable inside a span named operation_name.

    Args:
        operation_name: Span name.
        span_attributes: Called with the decorated function's arguments
            before it runs; the returned mapping is set on the span.

    Raises:
        TypeError: The decorated function is not a coroutine function.
    """

    def decorator(func: Callable) -> Callable:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"traced() needs an async function, got {func.__qualname__}")

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            tracer = trace.get_tracer(TRACER_NAME)
            with tracer.start_as_current_span(operation_name) as span:
                if span_attributes is not None:
                    span.set_attributes(_namespaced(span_attributes(*args, **kwargs)))
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        return wrapper

    return decorator


def add_span_attributes(**attributes: AttributeValue) -> None:
    """Add namespaced attributes to the current span."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attributes(_namespaced(attributes))


def add_span_event(name: str, attributes: Mapping[str, AttributeValue] | None = None) -> None:
    """Add an event to the current span."""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes=_namespaced(attributes or {}))
