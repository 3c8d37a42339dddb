"""Unit tests for the logging abstraction."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from ami_client.correlation import correlation_context
from ami_client.logging_abstraction import AmiLogger, HumanReadableFormatter, JSONFormatter, get_logger


def _record(message: str = "→ Sending action", **extra_data: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="ami_client.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    if extra_data:
        record.extra_data = extra_data
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_structured_output(self):
        with correlation_context("0190abcdef0123456789"):
            payload = json.loads(JSONFormatter().format(_record(action="Ping", action_id="42")))

        assert payload["message"] == "→ Sending action"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "ami_client.test"
        assert payload["correlation_id"] == "0190abcdef0123456789"
        assert payload["context"] == {"action": "Ping", "action_id": "42"}

    def test_without_context(self):
        with correlation_context(None, auto_generate=False):
            payload = json.loads(JSONFormatter().format(_record()))

        assert "context" not in payload
        assert payload["correlation_id"] is None


class TestHumanReadableFormatter:
    """Tests for HumanReadableFormatter."""

    def test_shows_correlation_suffix_and_context(self):
        with correlation_context("0190abcdef0123456789"):
            line = HumanReadableFormatter().format(_record(server="pbx:5038"))

        assert "[23456789]" in line
        assert line.endswith("→ Sending action | server=pbx:5038")

    def test_placeholder_without_correlation(self):
        with correlation_context(None, auto_generate=False):
            line = HumanReadableFormatter().format(_record())

        assert "[--------]" in line


class TestAmiLogger:
    """Tests for AmiLogger."""

    def test_extra_carried_on_record(self, caplog):
        logger = AmiLogger("ami_client.tests.extra")

        with caplog.at_level(logging.INFO, logger="ami_client.tests.extra"):
            logger.info("✓ Authenticated", extra={"username": "admin"})

        record = caplog.records[-1]
        assert record.getMessage() == "✓ Authenticated"
        assert record.extra_data == {"username": "admin"}  # type: ignore[attr-defined]

    def test_set_level_updates_handlers(self):
        logger = AmiLogger("ami_client.tests.level")

        logger.set_level(logging.DEBUG)

        assert logger.logger.level == logging.DEBUG
        assert all(handler.level == logging.DEBUG for handler in logger.handlers)

    def test_handlers_not_duplicated(self):
        first = get_logger("ami_client.tests.dup")
        second = get_logger("ami_client.tests.dup")

        assert first.logger is second.logger
        assert len(second.handlers) == 1

    def test_json_file_output(self, tmp_path: Path):
        json_file = tmp_path / "logs" / "ami.jsonl"
        logger = AmiLogger("ami_client.tests.json", log_format="json", json_file=json_file)

        logger.warning("✗ Connection lost", extra={"reason": "connection_closed"})
        for handler in logger.handlers:
            handler.flush()

        payload = json.loads(json_file.read_text().splitlines()[-1])
        assert payload["message"] == "✗ Connection lost"
        assert payload["context"] == {"reason": "connection_closed"}
