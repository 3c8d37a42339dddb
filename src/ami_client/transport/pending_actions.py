"""Pending action registry and response correlator.

Maps action ids to the callers waiting on them and decides, per incoming
message, whether it completes an action, opens or extends an event list, or
is unsolicited.
"""

from __future__ import annotations

import asyncio
import time

from ami_client.const import EVENTLIST_FIELD
from ami_client.logging_abstraction import get_logger
from ami_client.metrics import registry
from ami_client.protocol.exceptions import DuplicateActionError
from ami_client.protocol.message import AmiMessage, ends_event_list, starts_event_list
from ami_client.protocol.version import SessionQuirks

from .exceptions import ActionTimeoutError
from .types import PendingAction, SendCallback

logger = get_logger(__name__)


class PendingActionRegistry:
    """In-flight actions keyed by action id.

    Every entry settles exactly once: settling removes it from the map before
    the future is completed, and a future that is already done (for example
    cancelled by its awaiting task) is never touched again.

    Usage:
        >>> pending = registry.register("42", action="Ping")
        >>> registry.correlate(AmiMessage(actionid="42", response="Success"), quirks)
        True
        >>> pending.future.result()["response"]
        'Success'
    """

    def __init__(self) -> None:
        self._pending: dict[str, PendingAction] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._pending

    def get(self, action_id: str) -> PendingAction | None:
        return self._pending.get(action_id)

    def register(
        self,
        action_id: str,
        *,
        action: str = "",
        callback: SendCallback | None = None,
    ) -> PendingAction:
        """Register an action before it is written.

        Raises:
            DuplicateActionError: If action_id is already pending

        """
        if action_id in self._pending:
            raise DuplicateActionError(action_id)

        loop = asyncio.get_running_loop()
        pending = PendingAction(
            action_id=action_id,
            future=loop.create_future(),
            sent_at=time.monotonic(),
            action=action,
            callback=callback,
        )
        self._pending[action_id] = pending
        registry.record_pending_actions(len(self._pending))
        return pending

    def resolve(self, action_id: str, message: AmiMessage) -> bool:
        """Complete an action with its response. Returns False if unknown."""
        pending = self._pending.pop(action_id, None)
        if pending is None:
            return False
        registry.record_pending_actions(len(self._pending))
        return self._settle(pending, result=message)

    def fail(self, action_id: str, error: BaseException) -> bool:
        """Fail one action. Returns False if unknown."""
        pending = self._pending.pop(action_id, None)
        if pending is None:
            return False
        registry.record_pending_actions(len(self._pending))
        return self._settle(pending, error=error)

    def fail_all(self, error: BaseException) -> int:
        """Fail every pending action with the same error.

        The map is swapped out before any future or callback runs, so a
        callback that registers a new action never sees a stale entry.

        Returns:
            Number of actions failed

        """
        pending_actions = list(self._pending.values())
        self._pending = {}
        registry.record_pending_actions(0)

        failed = sum(1 for pending in pending_actions if self._settle(pending, error=error))
        if pending_actions:
            logger.info(
                "Failed pending actions",
                extra={"count": failed, "error": str(error)},
            )
        return failed

    def expire(self, ttl_seconds: float) -> int:
        """Fail actions registered more than ttl_seconds ago.

        Returns:
            Number of actions expired

        """
        cutoff = time.monotonic() - ttl_seconds
        expired = [action_id for action_id, pending in self._pending.items() if pending.sent_at <= cutoff]
        for action_id in expired:
            logger.warning(
                "Action expired without response",
                extra={"action_id": action_id, "ttl_seconds": ttl_seconds},
            )
            _ = self.fail(action_id, ActionTimeoutError(action_id, ttl_seconds))
        return len(expired)

    def correlate(self, message: AmiMessage, quirks: SessionQuirks) -> bool:
        """Route a message to its pending action.

        Returns:
            True if the message belonged to a pending action, False if it is
            unsolicited (no action id, or no matching entry)

        """
        action_id = message.action_id
        if action_id is None:
            return False
        pending = self._pending.get(action_id)
        if pending is None:
            return False

        legacy = quirks.legacy_event_list

        if pending.header is None:
            if starts_event_list(message, legacy_event_list=legacy):
                message[EVENTLIST_FIELD] = []
                pending.header = message
                logger.debug(
                    "→ Event list started",
                    extra={"action_id": action_id, "action": pending.action},
                )
                return True
            _ = self.resolve(action_id, message)
            return True

        if ends_event_list(message, legacy_event_list=legacy):
            header = pending.header
            logger.debug(
                "✓ Event list complete",
                extra={"action_id": action_id, "items": len(header.events)},
            )
            _ = self.resolve(action_id, header)
            return True

        pending.header.events.append(message)
        return True

    def _settle(
        self,
        pending: PendingAction,
        result: AmiMessage | None = None,
        error: BaseException | None = None,
    ) -> bool:
        if pending.future.done():
            return False

        if error is not None:
            pending.future.set_exception(error)
            registry.record_action_result("timeout" if isinstance(error, ActionTimeoutError) else "failed")
        else:
            pending.future.set_result(result)  # type: ignore[arg-type]
            registry.record_action_result("resolved")

        if pending.callback is not None:
            try:
                _ = pending.callback(error, result)
            except Exception:
                logger.exception(
                    "Send callback raised",
                    extra={"action_id": pending.action_id, "action": pending.action},
                )
        return True
