"""OpenTelemetry span helper shared by the dispatcher and retry controller."""

import contextlib
from collections.abc import Generator
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import StatusCode

TRACER_NAME = "dta4hana"


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME)


@contextlib.contextmanager
def span(
    name: str, attributes: dict[str, Any] | None = None
) -> Generator[trace.Span, None, None]:
    """Run the block inside a named span.

    Unhandled exceptions are recorded with ERROR status and re-raised.
    No-op when no SDK is configured.
    """
    with get_tracer().start_as_current_span(name, attributes=attributes) as current:
        try:
            yield current
        except Exception as exc:
            current.record_exception(exc)
            current.set_status(StatusCode.ERROR, str(exc))
            raise


def mark_failed(current: trace.Span, description: str) -> None:
    """Flag a span whose attempt ended in a returned (not raised) failure."""
    current.set_status(StatusCode.ERROR, description)
