"""Custom exception types for AMI protocol errors.

This module defines the root of the exception hierarchy. Transport and
session errors in ``ami_client.transport.exceptions`` extend it, so callers
can catch ``AmiProtocolError`` to handle every failure this package raises.
"""

from __future__ import annotations


class AmiProtocolError(Exception):
    """Base exception for all AMI client errors."""


class HandshakeError(AmiProtocolError):
    """Server greeting did not carry the expected product signature.

    This is a protocol incompatibility, not a transient fault: the session
    engine never schedules a reconnect after it.

    Attributes:
        reason: Specific failure reason (e.g., "unknown_signature")
        signature: First line received from the server (truncated)
    """

    def __init__(self, reason: str, signature: str = ""):
        self.reason = reason
        self.signature = signature[:80]
        super().__init__(f"Handshake failed: {reason} (signature: {self.signature!r})")


class DuplicateActionError(AmiProtocolError):
    """An action id is already in use by an open pending action.

    Attributes:
        action_id: The conflicting action id
    """

    def __init__(self, action_id: str):
        self.action_id = action_id
        super().__init__(f"Duplicate action id: {action_id}")
