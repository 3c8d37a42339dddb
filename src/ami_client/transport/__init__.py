"""Transport layer: TCP connection, session engine and action bookkeeping."""

from ami_client.transport.connection_manager import ConnectionManager, ConnectionState
from ami_client.transport.exceptions import (
    ActionTimeoutError,
    AmiConnectionError,
    LoginError,
    NotAuthenticatedError,
)
from ami_client.transport.pending_actions import PendingActionRegistry
from ami_client.transport.retry_policy import ReconnectBackoff
from ami_client.transport.socket_abstraction import TCPConnection
from ami_client.transport.types import PendingAction, SendCallback

__all__ = [
    "ActionTimeoutError",
    "AmiConnectionError",
    "ConnectionManager",
    "ConnectionState",
    "LoginError",
    "NotAuthenticatedError",
    "PendingAction",
    "PendingActionRegistry",
    "ReconnectBackoff",
    "SendCallback",
    "TCPConnection",
]
