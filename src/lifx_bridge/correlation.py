"""Correlation ids for tying log lines to one sweep or one inbound message.

The id lives in a context variable, so every task spawned while a context is
active inherits it and concurrent sweeps/messages never see each other's id.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "get_correlation_id",
    "new_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "lifx_bridge_correlation_id",
    default=None,
)


def new_correlation_id(kind: str | None = None) -> str:
    """Return a fresh id, optionally tagged with the kind of work (``sweep``, ``msg``)."""
    token = uuid.uuid4().hex[:12]
    return f"{kind}-{token}" if kind else token


def get_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def correlation_context(kind: str | None = None, correlation_id: str | None = None) -> Generator[str]:
    """Run a block under a correlation id, restoring the outer id on exit.

    Example:
        with correlation_context("sweep") as corr_id:
            logger.info("starting sweep")  # tagged with corr_id

    """
    cid = correlation_id or new_correlation_id(kind)
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)
