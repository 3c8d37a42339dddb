"""Unit tests for LineFramer."""

from __future__ import annotations

import pytest

from ami_client.protocol.line_framer import LineFramer


class TestLineFramer:
    """Tests for CRLF line extraction."""

    def test_single_line(self):
        framer = LineFramer()

        assert framer.feed(b"Response: Success\r\n") == ["Response: Success"]
        assert framer.buffer == bytearray()

    def test_partial_line_is_buffered(self):
        framer = LineFramer()

        assert framer.feed(b"Response: Succ") == []
        assert framer.feed(b"ess\r\n\r\n") == ["Response: Success", ""]

    def test_multiple_lines_in_one_read(self):
        framer = LineFramer()

        lines = framer.feed(b"Event: Hangup\r\nChannel: SIP/100\r\n\r\nEvent: Ne")

        assert lines == ["Event: Hangup", "Channel: SIP/100", ""]
        assert framer.buffer == bytearray(b"Event: Ne")

    def test_delimiter_split_across_reads(self):
        framer = LineFramer()

        assert framer.feed(b"Ping: Pong\r") == []
        assert framer.feed(b"\n") == ["Ping: Pong"]

    def test_bare_newline_does_not_split(self):
        """Legacy command output keeps embedded LF inside one line."""
        framer = LineFramer()

        lines = framer.feed(b"hello\nworld\n--END COMMAND--\r\n")

        assert lines == ["hello\nworld\n--END COMMAND--"]

    def test_invalid_utf8_is_replaced(self):
        framer = LineFramer()

        lines = framer.feed(b"CallerIDName: \xff\xfe\r\n")

        assert lines[0].startswith("CallerIDName: ")
        assert "�" in lines[0]

    def test_flush_returns_trailing_partial_line(self):
        framer = LineFramer()
        _ = framer.feed(b"Asterisk Call Manager/2.10.4")

        assert framer.flush() == ["Asterisk Call Manager/2.10.4"]
        assert framer.flush() == []

    def test_oversized_line_is_discarded(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(LineFramer, "MAX_LINE_LENGTH", 16)
        framer = LineFramer()

        assert framer.feed(b"x" * 32) == []
        assert framer.buffer == bytearray()
        assert framer.feed(b"Ping: Pong\r\n") == ["Ping: Pong"]
