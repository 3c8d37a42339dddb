"""Asyncio TCP transport for the manager connection."""

from __future__ import annotations

import asyncio
import time

from ami_client.logging_abstraction import get_logger

logger = get_logger(__name__)


class TCPConnection:
    """Stream connection to a manager port.

    Operations never raise for network faults: connect() and send() return
    False, recv() returns None, and the fault is kept in ``last_error`` so the
    session engine can word its own error. recv() also returns None on a
    clean close by the server, with ``last_error`` left untouched.
    """

    def __init__(
        self,
        host: str,
        port: int,
        connect_timeout: float = 5.0,
        io_timeout: float = 5.0,
        read_timeout: float | None = None,
        max_read_size: int = 65536,
    ):
        """
        Args:
            host: Manager host
            port: Manager port
            connect_timeout: Limit for the TCP handshake (seconds)
            io_timeout: Limit for flushing one write (seconds)
            read_timeout: Limit for one read; None because a quiet manager
                connection is normal between events
            max_read_size: Upper bound for one read
        """
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.io_timeout = io_timeout
        self.read_timeout = read_timeout
        self.max_read_size = max_read_size
        self.reader: asyncio.StreamReader | None = None
        self.writer: asyncio.StreamWriter | None = None
        self.last_error: BaseException | None = None
        self._connected = False

    @property
    def peer(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _record_failure(self, operation: str, error: BaseException, *, lost: bool = False) -> None:
        self.last_error = error
        if lost:
            self._connected = False
        logger.warning(
            "✗ %s %s failed: %s",
            operation,
            self.peer,
            "timeout" if isinstance(error, TimeoutError) else error,
            extra={"peer": self.peer, "operation": operation, "error_type": type(error).__name__},
        )

    async def connect(self) -> bool:
        """Open the stream. Returns True on success."""
        logger.info("→ Connecting to %s", self.peer, extra={"timeout": self.connect_timeout})
        started = time.perf_counter()
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
        except (TimeoutError, OSError) as e:
            self._record_failure("connect", e)
            return False

        self._connected = True
        self.last_error = None
        logger.info(
            "✓ Connected to %s",
            self.peer,
            extra={"elapsed_ms": round((time.perf_counter() - started) * 1000, 1)},
        )
        return True

    async def send(self, data: bytes) -> bool:
        """Write and drain one payload. Returns True once flushed."""
        writer = self.writer
        if not self._connected or writer is None:
            logger.error("Cannot send to %s: not connected", self.peer)
            return False

        try:
            writer.write(data)
            await asyncio.wait_for(writer.drain(), timeout=self.io_timeout)
        except (TimeoutError, OSError) as e:
            self._record_failure("send", e)
            return False
        return True

    async def recv(self, max_bytes: int | None = None) -> bytes | None:
        """Read what is available; None on EOF, fault or read timeout."""
        reader = self.reader
        if not self._connected or reader is None:
            logger.error("Cannot receive from %s: not connected", self.peer)
            return None

        read = reader.read(max_bytes or self.max_read_size)
        try:
            if self.read_timeout is None:
                data = await read
            else:
                data = await asyncio.wait_for(read, timeout=self.read_timeout)
        except TimeoutError as e:
            self._record_failure("recv", e)
            return None
        except OSError as e:
            self._record_failure("recv", e, lost=True)
            return None

        if not data:
            logger.info("Connection closed by %s", self.peer)
            self._connected = False
            return None
        return data

    async def close(self) -> None:
        """Close the stream; safe to call more than once."""
        writer, self.writer, self.reader = self.writer, None, None
        self._connected = False
        if writer is None:
            return

        logger.info("Closing connection to %s", self.peer)
        try:
            writer.close()
            await writer.wait_closed()
        except OSError as e:
            logger.warning(
                "Error while closing %s: %s",
                self.peer,
                e,
                extra={"error_type": type(e).__name__},
            )

    def __repr__(self) -> str:
        return f"TCPConnection({self.peer}, {'connected' if self._connected else 'disconnected'})"
