from collections.abc import Iterator
from contextlib import contextmanager

import structlog


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation ID for current context."""
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def get_correlation_id() -> str | None:
    """Get correlation ID from current context."""
    return structlog.contextvars.get_contextvars().get("correlation_id")


@contextmanager
def bound_context(**values: object) -> Iterator[None]:
    """Bind values to every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(**values):
        yield
