"""Server version detection from the AMI greeting line."""

from __future__ import annotations

from dataclasses import dataclass

from ami_client.const import (
    LEGACY_COMMAND_OUTPUT_BEFORE,
    LEGACY_EVENT_LIST_BEFORE,
    SIGNATURE_PATTERN,
)

from .exceptions import HandshakeError


@dataclass(frozen=True)
class SessionQuirks:
    """Parser compatibility switches, derived once per handshake.

    Attributes:
        legacy_event_list: Server omits ``EventList: start``; detect list start
            from "will follow" in the message and list end from an event name
            ending in "Complete"
        legacy_command_output: Server returns command output as one field
            terminated by ``--END COMMAND--``
    """

    legacy_event_list: bool = False
    legacy_command_output: bool = False


@dataclass(frozen=True)
class ProtocolVersion:
    """AMI protocol version announced in the greeting line.

    Attributes:
        raw: Version string as received (e.g., "2.10.4")
        parts: Numeric components (e.g., (2, 10, 4))
    """

    raw: str
    parts: tuple[int, ...]

    @classmethod
    def from_signature(cls, line: str) -> ProtocolVersion:
        """Parse ``Asterisk Call Manager/<version>``.

        Raises:
            HandshakeError: If the line is not an AMI greeting

        """
        match = SIGNATURE_PATTERN.match(line.strip())
        if match is None:
            raise HandshakeError("unknown_signature", line)
        raw = match.group(1)
        return cls(raw=raw, parts=tuple(int(part) for part in raw.split(".")))

    def quirks(self) -> SessionQuirks:
        return SessionQuirks(
            legacy_event_list=self.parts < LEGACY_EVENT_LIST_BEFORE,
            legacy_command_output=self.parts < LEGACY_COMMAND_OUTPUT_BEFORE,
        )

    def __str__(self) -> str:
        return self.raw
