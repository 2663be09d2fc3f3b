"""Trace identifiers carried through structlog contextvars.

Every HTTP request and every import batch runs inside a trace context so
that all log lines it produces can be correlated by ``trace_id``.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator
from contextlib import contextmanager

import structlog.contextvars as contextvars


def generate_trace_id() -> str:
    """Return a new 32 character hex trace ID."""
    return uuid.uuid4().hex


def get_trace_id() -> str | None:
    """Return the trace ID bound to the current context, if any."""
    return contextvars.get_contextvars().get("trace_id")


@contextmanager
def trace_context(trace_id: str | None = None, **extra: str) -> Generator[str]:
    """Bind a trace ID (and optional extra fields) for the duration of a block.

    Previously bound context is restored on exit, so contexts nest.

    Args:
        trace_id: Trace ID to use. A new one is generated when omitted.
        **extra: Additional context fields such as ``import_id``.

    Yields:
        The trace ID in effect inside the block.
    """
    previous = dict(contextvars.get_contextvars())
    trace_id = trace_id or generate_trace_id()

    contextvars.clear_contextvars()
    contextvars.bind_contextvars(**{**previous, **extra, "trace_id": trace_id})
    try:
        yield trace_id
    finally:
        contextvars.clear_contextvars()
        if previous:
            contextvars.bind_contextvars(**previous)
