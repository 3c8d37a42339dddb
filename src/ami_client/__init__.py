"""Persistent asyncio client for the Asterisk Manager Interface (AMI)."""

__version__ = "0.4.0"

from ami_client.client import AmiClient
from ami_client.protocol.exceptions import AmiProtocolError, HandshakeError
from ami_client.protocol.message import AmiMessage
from ami_client.transport.connection_manager import ConnectionManager, ConnectionState
from ami_client.transport.exceptions import (
    ActionTimeoutError,
    AmiConnectionError,
    LoginError,
    NotAuthenticatedError,
)

__all__ = [
    "ActionTimeoutError",
    "AmiClient",
    "AmiConnectionError",
    "AmiMessage",
    "AmiProtocolError",
    "ConnectionManager",
    "ConnectionState",
    "HandshakeError",
    "LoginError",
    "NotAuthenticatedError",
    "__version__",
]
