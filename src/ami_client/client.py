"""Public client facade for the Asterisk Manager Interface."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path

from ami_client import const
from ami_client.events import EventEmitter, Handler
from ami_client.logging_abstraction import get_logger
from ami_client.metrics import start_metrics_server
from ami_client.protocol.message import AmiMessage
from ami_client.protocol.version import ProtocolVersion
from ami_client.settings import AmiSettings, load_settings
from ami_client.transport.connection_manager import (
    ConnectCallback,
    ConnectionFactory,
    ConnectionManager,
    ConnectionState,
)
from ami_client.transport.retry_policy import ReconnectBackoff
from ami_client.transport.socket_abstraction import TCPConnection
from ami_client.transport.types import SendCallback

logger = get_logger(__name__)


class AmiClient:
    """Persistent manager session with automatic reconnection.

    Usage:
        client = AmiClient("pbx.local", 5038, "admin", "secret")
        client.on("Hangup", lambda event: print(event["channel"]))
        await client.connect()
        response = await client.send({"action": "Ping"})
        await client.disconnect()
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        secret: str,
        *,
        events: bool | str = True,
        reconnect: bool = True,
        backoff: ReconnectBackoff | None = None,
        connect_timeout: float = const.DEFAULT_CONNECT_TIMEOUT,
        handshake_timeout: float = const.DEFAULT_HANDSHAKE_TIMEOUT,
        action_ttl_seconds: float | None = None,
        connection_factory: ConnectionFactory = TCPConnection,
    ) -> None:
        self.emitter = EventEmitter()
        self.manager = ConnectionManager(
            host,
            port,
            username,
            secret,
            events=events,
            reconnect=reconnect,
            backoff=backoff,
            connect_timeout=connect_timeout,
            handshake_timeout=handshake_timeout,
            action_ttl_seconds=action_ttl_seconds,
            emitter=self.emitter,
            connection_factory=connection_factory,
        )

    @classmethod
    def from_settings(
        cls,
        settings: AmiSettings,
        connection_factory: ConnectionFactory = TCPConnection,
    ) -> AmiClient:
        """Build a client from settings; starts the metrics exporter if configured."""
        if settings.metrics_port is not None:
            start_metrics_server(settings.metrics_port)
            logger.info("Metrics exporter started", extra={"port": settings.metrics_port})

        return cls(
            settings.host,
            settings.port,
            settings.username,
            settings.secret,
            events=settings.events,
            reconnect=settings.reconnect,
            backoff=ReconnectBackoff(
                base_delay_seconds=settings.reconnect_base_delay,
                factor=settings.reconnect_factor,
                max_delay_seconds=settings.reconnect_max_delay,
            ),
            connect_timeout=settings.connect_timeout,
            handshake_timeout=settings.handshake_timeout,
            action_ttl_seconds=settings.action_ttl,
            connection_factory=connection_factory,
        )

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> AmiClient:
        """Build a client from ``AMI_*`` environment variables."""
        return cls.from_settings(load_settings(env_file))

    @property
    def state(self) -> ConnectionState:
        return self.manager.state

    @property
    def version(self) -> ProtocolVersion | None:
        """Protocol version announced by the server in the current cycle."""
        return self.manager.version

    @property
    def is_connected(self) -> bool:
        return self.manager.is_connected

    async def connect(self, callback: ConnectCallback | None = None) -> None:
        await self.manager.connect(callback)

    async def send(
        self,
        fields: Mapping[str, object],
        callback: SendCallback | None = None,
    ) -> AmiMessage:
        return await self.manager.send(fields, callback)

    async def disconnect(self, callback: ConnectCallback | None = None) -> None:
        await self.manager.disconnect(callback)

    def on(self, name: str, handler: Handler) -> Callable[[], None]:
        return self.emitter.on(name, handler)

    def once(self, name: str, handler: Handler) -> Callable[[], None]:
        return self.emitter.once(name, handler)

    def off(self, name: str, handler: Handler | None = None) -> None:
        self.emitter.off(name, handler)
