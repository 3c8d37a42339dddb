"""Notification dispatch for session and protocol events.

Notifications are identified by name:

- ``connect`` / ``reconnect``: a session cycle authenticated
- ``disconnect``: an authenticated session ended
- ``error``: a fatal error; no automatic retry follows
- ``event``: every protocol event message
- ``<EventName>``: protocol events by their ``Event`` header
- ``UserEvent-<name>``: user-defined events by their ``UserEvent`` header
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable

from ami_client.logging_abstraction import get_logger

__all__ = [
    "CONNECT",
    "DISCONNECT",
    "ERROR",
    "EVENT",
    "RECONNECT",
    "EventEmitter",
    "Handler",
    "user_event_name",
]

logger = get_logger(__name__)

CONNECT = "connect"
RECONNECT = "reconnect"
DISCONNECT = "disconnect"
ERROR = "error"
EVENT = "event"

Handler = Callable[..., object]


def user_event_name(sub_name: str) -> str:
    return f"UserEvent-{sub_name}"


class EventEmitter:
    """Subscriber registry keyed by notification name.

    Handlers run synchronously in subscription order. A handler that returns
    a coroutine has it scheduled as a task on the running loop. Exceptions
    from handlers are logged and do not stop delivery to the remaining
    handlers.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._once: set[tuple[str, int]] = set()
        self._tasks: set[asyncio.Task[object]] = set()

    def on(self, name: str, handler: Handler) -> Callable[[], None]:
        """Subscribe to a notification.

        Returns:
            Unsubscribe function
        """
        self._handlers.setdefault(name, []).append(handler)

        def unsubscribe() -> None:
            self.off(name, handler)

        return unsubscribe

    def once(self, name: str, handler: Handler) -> Callable[[], None]:
        """Subscribe for a single delivery."""
        self._once.add((name, id(handler)))
        return self.on(name, handler)

    def off(self, name: str, handler: Handler | None = None) -> None:
        """Unsubscribe one handler, or every handler for name if None."""
        if handler is None:
            for registered in self._handlers.pop(name, []):
                self._once.discard((name, id(registered)))
            return
        handlers = self._handlers.get(name)
        if not handlers or handler not in handlers:
            return
        # Equal is not identical (bound methods): the once key uses the stored object
        removed = handlers.pop(handlers.index(handler))
        self._once.discard((name, id(removed)))
        if not handlers:
            del self._handlers[name]

    def listener_count(self, name: str) -> int:
        return len(self._handlers.get(name, []))

    def emit(self, name: str, *args: object) -> bool:
        """Deliver a notification to its subscribers.

        Returns:
            True if at least one handler was subscribed
        """
        handlers = list(self._handlers.get(name, []))
        if not handlers:
            return False

        for handler in handlers:
            if (name, id(handler)) in self._once:
                self.off(name, handler)
            try:
                result = handler(*args)
            except Exception:
                logger.exception(
                    "Handler for '%s' raised",
                    name,
                    extra={"notification": name, "handler": getattr(handler, "__qualname__", repr(handler))},
                )
                continue
            if inspect.isawaitable(result):
                self._schedule(name, result)
        return True

    def _schedule(self, name: str, awaitable: object) -> None:
        task = asyncio.ensure_future(awaitable)  # type: ignore[arg-type]
        self._tasks.add(task)

        def _done(finished: asyncio.Task[object]) -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                logger.error(
                    "Async handler for '%s' raised: %s",
                    name,
                    error,
                    extra={"notification": name, "error_type": type(error).__name__},
                )

        task.add_done_callback(_done)
