"""
Action ids and the per-task correlation scope.

An action id is written into the ``actionid`` header of every outbound action
and echoed by the server on each reply that belongs to it. While a reply is
routed, that id is the "current correlation id", so log records produced by
handlers further down the call chain can be matched to the action.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import cast

from uuid_extensions import uuid7

__all__ = [
    "correlation_context",
    "generate_action_id",
    "get_correlation_id",
    "set_correlation_id",
]

_current: ContextVar[str | None] = ContextVar("ami_correlation_id", default=None)


def generate_action_id() -> str:
    """
    Return a fresh action id.

    Returns:
        32-character UUIDv7 hex; ids sort by creation time
    """
    return cast(uuid.UUID, uuid7()).hex


def get_correlation_id() -> str | None:
    return _current.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Replace the id for the running task; None clears it."""
    _current.set(correlation_id)


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
    auto_generate: bool = True,
) -> Generator[str | None]:
    """
    Scope a correlation id to a block.

    Args:
        correlation_id: Id to bind; when None a new one is generated unless
            auto_generate is False, in which case the block runs unbound
        auto_generate: Whether a missing id is generated

    Yields:
        The id bound inside the block

    Example:
        with correlation_context(message.action_id, auto_generate=False):
            logger.debug("Routing message")
    """
    if correlation_id is None and auto_generate:
        correlation_id = generate_action_id()

    token = _current.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _current.reset(token)
