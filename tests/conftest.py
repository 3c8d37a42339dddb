"""
Shared fixtures for unit tests.

This module provides a scripted manager endpoint and a factory for session
engines wired to it.
"""

from __future__ import annotations

import contextlib
from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio

from ami_client.protocol.exceptions import AmiProtocolError
from ami_client.transport.connection_manager import ConnectionManager
from ami_client.transport.retry_policy import ReconnectBackoff
from tests.helpers.fake_ami import FakeAmiServer

ManagerFactory = Callable[..., ConnectionManager]


@pytest.fixture
def ami_server() -> FakeAmiServer:
    """Manager endpoint announcing ``Asterisk Call Manager/1.2.3``."""
    return FakeAmiServer()


@pytest_asyncio.fixture
async def make_manager(ami_server: FakeAmiServer) -> AsyncGenerator[ManagerFactory, None]:
    """
    Build ConnectionManager instances bound to ami_server (or a given connection_factory).

    Reconnect delays are scaled down to milliseconds. Every manager is
    disconnected at teardown so no timer or task outlives the test.
    """
    managers: list[ConnectionManager] = []

    def _make(**kwargs: object) -> ConnectionManager:
        kwargs.setdefault("backoff", ReconnectBackoff(base_delay_seconds=0.01, factor=2.0, max_delay_seconds=0.05))
        kwargs.setdefault("handshake_timeout", 1.0)
        kwargs.setdefault("connection_factory", ami_server.factory)
        manager = ConnectionManager(
            "pbx.test",
            5038,
            "admin",
            "secret",
            **kwargs,  # type: ignore[arg-type]
        )
        managers.append(manager)
        return manager

    yield _make

    for manager in managers:
        with contextlib.suppress(AmiProtocolError):
            await manager.disconnect()
