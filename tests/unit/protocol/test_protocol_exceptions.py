"""Unit tests for protocol exceptions."""

from __future__ import annotations

from ami_client.protocol.exceptions import AmiProtocolError, DuplicateActionError, HandshakeError


class TestHandshakeError:
    """Tests for HandshakeError."""

    def test_attributes_and_message(self):
        error = HandshakeError("unknown_signature", "SSH-2.0-OpenSSH_9.6")

        assert isinstance(error, AmiProtocolError)
        assert error.reason == "unknown_signature"
        assert error.signature == "SSH-2.0-OpenSSH_9.6"
        assert "unknown_signature" in str(error)

    def test_signature_truncated(self):
        error = HandshakeError("unknown_signature", "x" * 200)

        assert len(error.signature) == 80


class TestDuplicateActionError:
    """Tests for DuplicateActionError."""

    def test_attributes(self):
        error = DuplicateActionError("42")

        assert isinstance(error, AmiProtocolError)
        assert error.action_id == "42"
        assert str(error) == "Duplicate action id: 42"
