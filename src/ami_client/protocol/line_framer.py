"""TCP stream line framing with buffer overflow protection.

This module provides LineFramer for splitting an AMI byte stream into
CRLF-delimited lines, handling partial lines, multi-line reads, and
protecting against buffer exhaustion.
"""

from ami_client.logging_abstraction import get_logger

logger = get_logger(__name__)

_DELIMITER = b"\r\n"


class LineFramer:
    r"""Extract complete lines from a TCP byte stream.

    TCP reads may end in the middle of a line, carry several lines, or stop
    exactly on a delimiter. LineFramer buffers incoming bytes and emits one
    string per CRLF-terminated segment with the delimiter stripped.

    A line does not imply a complete protocol message; message boundaries
    (blank lines) are handled by ``MessageAssembler``.

    Legacy command output embeds bare ``\n`` inside a single line. Only CRLF
    splits, so such output stays in one line for the parser.

    Security: a segment growing past MAX_LINE_LENGTH without a delimiter is
    discarded to bound memory use.

    Example:
        framer = LineFramer()
        assert framer.feed(b"Response: Succ") == []
        assert framer.feed(b"ess\r\n\r\n") == ["Response: Success", ""]
        assert framer.flush() == []

    """

    MAX_LINE_LENGTH: int = 1024 * 1024  # 1 MiB (large "core show" outputs)

    def __init__(self, encoding: str = "utf-8") -> None:
        """Initialize line framer with empty buffer."""
        self.buffer: bytearray = bytearray()
        self.encoding: str = encoding

    def feed(self, data: bytes) -> list[str]:
        """Add data to buffer and return list of complete lines.

        Args:
            data: Incoming bytes from TCP read

        Returns:
            List of complete lines (may be empty if no delimiter was seen yet)

        """
        self.buffer.extend(data)
        lines: list[str] = []

        start = 0
        while True:
            index = self.buffer.find(_DELIMITER, start)
            if index < 0:
                break
            lines.append(self._decode(self.buffer[start:index]))
            start = index + len(_DELIMITER)

        if start:
            del self.buffer[:start]

        if len(self.buffer) > self.MAX_LINE_LENGTH:
            logger.warning(
                "Line exceeds %d bytes without delimiter, buffer cleared",
                self.MAX_LINE_LENGTH,
                extra={"buffer_size": len(self.buffer)},
            )
            self.buffer = bytearray()

        return lines

    def flush(self) -> list[str]:
        """Return the trailing partial line (if any) at end of stream."""
        if not self.buffer:
            return []
        line = self._decode(self.buffer)
        self.buffer = bytearray()
        return [line]

    def _decode(self, raw: bytes | bytearray) -> str:
        return bytes(raw).decode(self.encoding, errors="replace")
