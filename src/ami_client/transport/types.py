"""Core dataclasses for the AMI session engine.

This module defines the data structures used to track actions that are
awaiting their response.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

from ami_client.protocol.message import AmiMessage

SendCallback = Callable[[BaseException | None, AmiMessage | None], object]


@dataclass
class PendingAction:
    """Tracks an action awaiting its response.

    Attributes:
        action_id: Correlation id echoed by the server on every response
        future: Resolved exactly once with the response (or failed)
        sent_at: Timestamp when the action was registered (time.monotonic())
        action: Action name, for logs and metrics
        callback: Optional callback invoked as callback(error, message) on settle
        header: Provisional result while an event list is being aggregated;
            None for one-shot responses
    """

    action_id: str
    future: asyncio.Future[AmiMessage]
    sent_at: float
    action: str = ""
    callback: SendCallback | None = None
    header: AmiMessage | None = None

    @property
    def accumulating(self) -> bool:
        return self.header is not None
