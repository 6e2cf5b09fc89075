"""Request-scoped trace identifiers used to correlate log lines.

The values live in a ``ContextVar``. Starlette copies the context into the
worker thread for ``run_in_threadpool``, so engine log records written
while serving a request carry that request's ids.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from uuid import uuid4


trace_context: ContextVar[dict[str, str] | None] = ContextVar("trace_context", default=None)


def new_trace_id() -> str:
    return uuid4().hex


def new_span_id() -> str:
    return uuid4().hex[:16]


def get_trace_context() -> dict[str, str]:
    """Return the current ids, starting a fresh trace when none is bound."""
    ctx = trace_context.get()
    if not ctx or not ctx.get("trace_id"):
        ctx = {"trace_id": new_trace_id(), "span_id": new_span_id()}
        trace_context.set(ctx)
    return ctx


def set_trace_context(trace_id: str, span_id: str, **extra: str) -> None:
    trace_context.set({"trace_id": trace_id, "span_id": span_id, **extra})


def update_span_id(span_id: str) -> None:
    ctx = trace_context.get() or {}
    trace_context.set({**ctx, "span_id": span_id})


@contextmanager
def bound_trace_context(trace_id: str | None = None, **extra: str) -> Iterator[dict[str, str]]:
    """Bind ids for the duration of a block and restore the previous ones afterwards."""
    token = trace_context.set({"trace_id": trace_id or new_trace_id(), "span_id": new_span_id(), **extra})
    try:
        yield trace_context.get() or {}
    finally:
        trace_context.reset(token)
