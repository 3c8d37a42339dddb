"""Unit tests for the notification emitter."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import MagicMock

import pytest

from ami_client.events import EventEmitter, user_event_name


class EventEmitterTestHarness(EventEmitter):
    """Expose once bookkeeping for testing."""

    @property
    def once_keys(self) -> set[tuple[str, int]]:
        return self._once


class TestSubscriptions:
    """Tests for on/once/off."""

    def test_emit_calls_handlers_in_order(self):
        emitter = EventEmitter()
        calls: list[str] = []
        _ = emitter.on("Hangup", lambda event: calls.append(f"first:{event}"))
        _ = emitter.on("Hangup", lambda event: calls.append(f"second:{event}"))

        assert emitter.emit("Hangup", "e1") is True

        assert calls == ["first:e1", "second:e1"]

    def test_emit_without_subscribers(self):
        assert EventEmitter().emit("Hangup") is False

    def test_unsubscribe_function(self):
        emitter = EventEmitter()
        handler = MagicMock()
        unsubscribe = emitter.on("connect", handler)

        unsubscribe()
        _ = emitter.emit("connect")

        handler.assert_not_called()
        assert emitter.listener_count("connect") == 0

    def test_once_delivers_single_time(self):
        emitter = EventEmitter()
        handler = MagicMock()
        _ = emitter.once("reconnect", handler)

        _ = emitter.emit("reconnect")
        _ = emitter.emit("reconnect")

        handler.assert_called_once_with()

    def test_off_all_handlers(self):
        emitter = EventEmitter()
        _ = emitter.on("event", MagicMock())
        _ = emitter.once("event", MagicMock())

        emitter.off("event")

        assert emitter.listener_count("event") == 0
        assert emitter.emit("event") is False

    def test_off_once_with_equal_bound_method(self):
        """Test that removing a once-handler via a fresh bound method clears its once marker."""

        class Listener:
            def __init__(self) -> None:
                self.calls = 0

            def handle(self) -> None:
                self.calls += 1

        listener = Listener()
        emitter = EventEmitterTestHarness()
        _ = emitter.once("connect", listener.handle)

        # Each attribute access builds a new bound method: equal, not identical
        emitter.off("connect", listener.handle)

        assert emitter.listener_count("connect") == 0
        assert emitter.once_keys == set()

    def test_off_unknown_handler_is_noop(self):
        emitter = EventEmitter()
        emitter.off("event", MagicMock())

        assert emitter.listener_count("event") == 0

    def test_handler_exception_does_not_stop_dispatch(self, caplog: pytest.LogCaptureFixture):
        emitter = EventEmitter()
        after = MagicMock()
        _ = emitter.on("Hangup", MagicMock(side_effect=RuntimeError("boom")))
        _ = emitter.on("Hangup", after)

        with caplog.at_level(logging.ERROR):
            _ = emitter.emit("Hangup", {"channel": "SIP/1"})

        after.assert_called_once_with({"channel": "SIP/1"})
        assert "Handler for 'Hangup' raised" in caplog.text

    def test_user_event_name(self):
        assert user_event_name("Doorbell") == "UserEvent-Doorbell"


class TestCoroutineHandlers:
    """Tests for async handlers."""

    @pytest.mark.asyncio
    async def test_coroutine_handler_scheduled(self):
        emitter = EventEmitter()
        received = asyncio.Event()

        async def handler(value: str) -> None:
            assert value == "payload"
            received.set()

        _ = emitter.on("event", handler)
        _ = emitter.emit("event", "payload")

        _ = await asyncio.wait_for(received.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_coroutine_handler_error_logged(self, caplog: pytest.LogCaptureFixture):
        emitter = EventEmitter()

        async def handler() -> None:
            raise ValueError("bad event")

        _ = emitter.on("connect", handler)

        with caplog.at_level(logging.ERROR):
            _ = emitter.emit("connect")
            await asyncio.sleep(0.01)

        assert "Async handler for 'connect' raised: bad event" in caplog.text
