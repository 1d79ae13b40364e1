from __future__ import annotations

import contextvars
import uuid

# Task-local correlation id for logging
_cid = contextvars.ContextVar("correlation_id", default="")


def set_correlation_id(value: str | None = None) -> str:
    """Set a correlation id for the current task (generate if not provided)."""
    cid = value or uuid.uuid4().hex
    _cid.set(cid)
    return cid


def get_correlation_id() -> str:
    return _cid.get("")


def clear_correlation_id() -> None:
    _cid.set("")
