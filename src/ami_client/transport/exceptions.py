"""Custom exception types for transport and session errors.

This module extends the protocol exception hierarchy with errors raised by
the session engine while connecting, authenticating and sending actions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ami_client.protocol.exceptions import AmiProtocolError

if TYPE_CHECKING:
    from ami_client.protocol.message import AmiMessage


class AmiConnectionError(AmiProtocolError):
    """Connection state error (not connected, connection lost, write failed).

    Raised when:
    - The TCP connection cannot be opened
    - The connection closes or errors while actions are pending
    - A write to the connection fails

    Note: Named AmiConnectionError to avoid shadowing Python's built-in ConnectionError.

    Attributes:
        reason: Specific failure reason
        state: Connection state when error occurred
    """

    def __init__(self, reason: str, state: str = "unknown"):
        self.reason = reason
        self.state = state
        super().__init__(f"Connection error: {reason} (state: {state})")


class NotAuthenticatedError(AmiConnectionError):
    """Action rejected because the session is not authenticated.

    Raised synchronously by send(); nothing is written or queued.
    """

    def __init__(self, state: str = "unknown"):
        super().__init__("not_authenticated", state=state)


class LoginError(AmiProtocolError):
    """Server rejected the Login action.

    Attributes:
        reason: Server message (e.g., "Authentication failed")
        response: Full login response
    """

    def __init__(self, reason: str, response: AmiMessage | None = None):
        self.reason = reason
        self.response = response
        super().__init__(f"Login failed: {reason}")


class ActionTimeoutError(AmiProtocolError):
    """No response arrived within the pending-action time-to-live.

    Attributes:
        action_id: Action id that expired
        ttl_seconds: Time-to-live that was exceeded
    """

    def __init__(self, action_id: str, ttl_seconds: float):
        self.action_id = action_id
        self.ttl_seconds = ttl_seconds
        super().__init__(f"Action {action_id} timed out after {ttl_seconds}s")
