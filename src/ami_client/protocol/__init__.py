"""AMI protocol package - line framing, message parsing and serialization.

Public API:
- LineFramer: bytes → CRLF-delimited lines
- MessageAssembler / parse_message: line runs → AmiMessage
- build_action: action fields → wire text with correlation id
- ProtocolVersion / SessionQuirks: greeting parsing and legacy switches
"""

from ami_client.protocol.exceptions import AmiProtocolError, DuplicateActionError, HandshakeError
from ami_client.protocol.line_framer import LineFramer
from ami_client.protocol.message import (
    AmiMessage,
    MessageAssembler,
    build_action,
    ends_event_list,
    is_success,
    normalize_events_flag,
    parse_message,
    starts_event_list,
)
from ami_client.protocol.version import ProtocolVersion, SessionQuirks

__all__ = [
    "AmiMessage",
    "AmiProtocolError",
    "DuplicateActionError",
    "HandshakeError",
    "LineFramer",
    "MessageAssembler",
    "ProtocolVersion",
    "SessionQuirks",
    "build_action",
    "ends_event_list",
    "is_success",
    "normalize_events_flag",
    "parse_message",
    "starts_event_list",
]
