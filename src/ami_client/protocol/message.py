"""AMI message model, parser and action serializer.

Wire format: a message is a run of ``Name: value`` lines terminated by an
empty line. Field names are case-insensitive on the wire and are stored
lowercased here. Repeated names collect into a list in encounter order.
"""

from __future__ import annotations

from collections.abc import Mapping

from ami_client.const import (
    ACTION_ID_FIELD,
    CRLF,
    END_COMMAND_SENTINEL,
    EVENTLIST_FIELD,
    EVENTLIST_START,
    LIST_COMPLETE_SUFFIX,
    LIST_START_PHRASE,
    OUTPUT_FIELD,
)
from ami_client.correlation import generate_action_id
from ami_client.logging_abstraction import get_logger
from ami_client.metrics import registry

__all__ = [
    "AmiMessage",
    "MessageAssembler",
    "build_action",
    "ends_event_list",
    "is_success",
    "normalize_events_flag",
    "parse_message",
    "starts_event_list",
]

logger = get_logger(__name__)

FieldValue = str | list[str]


class AmiMessage(dict[str, object]):
    """Parsed AMI message.

    Maps lowercased field names to a string, or to a list of strings when the
    field repeated. Two structured fields may also appear:

    - ``output``: list of command output lines (legacy ``--END COMMAND--``
      framing)
    - ``eventlist``: list of AmiMessage, set on the header message of an
      event-list response once the list is being aggregated
    """

    def first(self, name: str, default: str = "") -> str:
        """Return the first value of a field, or default if absent."""
        value = self.get(name.lower())
        if isinstance(value, list):
            return str(value[0]) if value else default
        if value is None:
            return default
        return str(value)

    @property
    def action_id(self) -> str | None:
        value = self.first(ACTION_ID_FIELD)
        return value or None

    @property
    def event(self) -> str | None:
        value = self.first("event")
        return value or None

    @property
    def response(self) -> str | None:
        value = self.first("response")
        return value or None

    @property
    def events(self) -> list[AmiMessage]:
        """Aggregated event list (empty for one-shot responses)."""
        value = self.get(EVENTLIST_FIELD)
        return value if isinstance(value, list) else []  # type: ignore[return-value]


class MessageAssembler:
    """Group lines into raw messages bounded by a blank line."""

    def __init__(self) -> None:
        self._lines: list[str] = []

    def feed(self, line: str) -> list[str] | None:
        """Add a line; return the completed line run on a blank line.

        Blank lines with nothing buffered are ignored.
        """
        if line:
            self._lines.append(line)
            return None
        if not self._lines:
            return None
        run = self._lines
        self._lines = []
        return run

    @property
    def pending_lines(self) -> int:
        return len(self._lines)


def parse_message(lines: list[str], *, legacy_command_output: bool = False) -> AmiMessage:
    """Parse one raw message into an AmiMessage.

    Args:
        lines: Header lines of one message (no terminating blank line)
        legacy_command_output: Treat a line ending in ``--END COMMAND--`` as
            multi-line command output instead of a header

    Returns:
        Parsed message. Lines without a colon are skipped.

    """
    message = AmiMessage()
    for line in lines:
        if legacy_command_output and line.endswith(END_COMMAND_SENTINEL):
            # Output arrives as one field with embedded newlines; the last
            # segment is the sentinel itself
            message[OUTPUT_FIELD] = line.split("\n")[:-1]
            continue

        name, sep, value = line.partition(":")
        if not sep:
            logger.debug(
                "Skipping header line without colon",
                extra={"line": line[:80]},
            )
            registry.record_malformed_line()
            continue

        name = name.lower()
        value = value.lstrip()
        current = message.get(name)
        if current is None:
            message[name] = value
        elif isinstance(current, list):
            current.append(value)
        else:
            message[name] = [current, value]

    return message


def normalize_events_flag(events: bool | str) -> str:
    """Normalize the Login ``events`` flag.

    True/False map to "on"/"off"; any string (including "on"/"off") is sent
    as given.
    """
    if events is True:
        return "on"
    if events is False:
        return "off"
    return str(events)


def build_action(fields: Mapping[str, object]) -> tuple[str, str]:
    """Serialize an action and attach its correlation id.

    Fields are written in insertion order. List and tuple values emit one line
    per element under the same name; None values are omitted. A field named
    ``actionid`` (any case) supplies the correlation id, otherwise a new one
    is generated and appended.

    Args:
        fields: Action fields, e.g. {"action": "Ping"}

    Returns:
        Tuple of (action_id, wire text including the terminating blank line)

    """
    action_id: str | None = None
    parts: list[str] = []
    for name, value in fields.items():
        if value is None:
            continue
        if name.lower() == ACTION_ID_FIELD:
            action_id = str(value)
        if isinstance(value, (list, tuple)):
            parts.extend(f"{name}: {item}{CRLF}" for item in value)
        else:
            parts.append(f"{name}: {value}{CRLF}")

    if action_id is None:
        action_id = generate_action_id()
        parts.append(f"{ACTION_ID_FIELD}: {action_id}{CRLF}")

    parts.append(CRLF)
    return action_id, "".join(parts)


def is_success(message: AmiMessage) -> bool:
    return message.first("response").lower() == "success"


def starts_event_list(message: AmiMessage, *, legacy_event_list: bool = False) -> bool:
    """Check whether a response opens an event list."""
    if not is_success(message):
        return False
    if message.first(EVENTLIST_FIELD).lower() == EVENTLIST_START:
        return True
    return legacy_event_list and LIST_START_PHRASE in message.first("message").lower()


def ends_event_list(message: AmiMessage, *, legacy_event_list: bool = False) -> bool:
    """Check whether a message terminates an event list.

    Modern servers mark the final event with an ``EventList`` header
    (``Complete`` or ``Cancelled``); older ones only name it ``...Complete``.
    """
    if EVENTLIST_FIELD in message:
        return True
    event = message.event
    return legacy_event_list and event is not None and event.endswith(LIST_COMPLETE_SUFFIX)
