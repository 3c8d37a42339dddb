"""Scripted in-memory manager endpoint for session engine tests.

Each connection cycle asks ``FakeAmiServer.factory`` for a new
``FakeConnection``. Requests written by the client are matched against
regex responders; every scripted reply is prefixed with the request's
``ActionID`` and terminated by a blank line, the way a real server echoes it.
"""

from __future__ import annotations

import asyncio
import re

ACTION_ID_PATTERN = re.compile(r"actionid: (\S+)", re.IGNORECASE)

LOGIN_OK = "Response: Success\r\nMessage: Authentication accepted"
LOGIN_FAILED = "Response: Error\r\nMessage: Authentication failed"
GOODBYE = "Response: Goodbye\r\nMessage: Thanks for all the fish."


def _action_id(request: str) -> str:
    match = ACTION_ID_PATTERN.search(request)
    return match.group(1) if match else ""


class FakeConnection:
    """Transport double with the TCPConnection contract."""

    def __init__(self, server: FakeAmiServer, host: str, port: int) -> None:
        self.server = server
        self.host = host
        self.port = port
        self.last_error: BaseException | None = None
        self.connected = False
        self.closed = False
        self.writes: list[str] = []
        self._incoming: asyncio.Queue[bytes | None] = asyncio.Queue()

    async def connect(self) -> bool:
        if self.server.refuse_connect:
            self.last_error = ConnectionRefusedError(111, "Connection refused")
            return False
        self.connected = True
        self.server.greet(self)
        return True

    async def send(self, data: bytes) -> bool:
        if not self.connected:
            self.last_error = BrokenPipeError(32, "Broken pipe")
            return False
        text = data.decode()
        self.writes.append(text)
        self.server.requests.append(text)
        self.server.answer(self, text)
        return True

    async def recv(self, max_bytes: int | None = None) -> bytes | None:
        return await self._incoming.get()

    async def close(self) -> None:
        self.connected = False
        self.closed = True
        self._incoming.put_nowait(None)

    def feed(self, text: str) -> None:
        """Queue raw text for the client to read."""
        self._incoming.put_nowait(text.encode())

    def push_message(self, text: str) -> None:
        """Queue one message (header lines joined by CRLF)."""
        self.feed(f"{text}\r\n\r\n")

    def drop(self) -> None:
        """Simulate the server closing the connection."""
        self.connected = False
        self._incoming.put_nowait(None)


class FakeAmiServer:
    """Answers actions by regex and records every request."""

    def __init__(self, signature: str = "Asterisk Call Manager/1.2.3") -> None:
        self.signature = signature
        self.refuse_connect = False
        self.login_replies: list[str] = [LOGIN_OK]
        self.connections: list[FakeConnection] = []
        self.requests: list[str] = []
        self._responders: list[tuple[re.Pattern[str], list[str]]] = []

    def factory(self, host: str, port: int, **_kwargs: object) -> FakeConnection:
        conn = FakeConnection(self, host, port)
        self.connections.append(conn)
        return conn

    @property
    def current(self) -> FakeConnection:
        return self.connections[-1]

    def respond(self, pattern: str, replies: list[str]) -> None:
        """Answer requests matching pattern with the given replies, in order."""
        self._responders.append((re.compile(pattern, re.IGNORECASE), replies))

    def greet(self, conn: FakeConnection) -> None:
        conn.feed(f"{self.signature}\r\n")

    def answer(self, conn: FakeConnection, request: str) -> None:
        action_id = _action_id(request)
        lowered = request.lower()

        if "action: login" in lowered:
            reply = self.login_replies.pop(0) if len(self.login_replies) > 1 else self.login_replies[0]
            self._reply(conn, action_id, [reply])
            return
        if "action: logoff" in lowered:
            self._reply(conn, action_id, [GOODBYE])
            conn.drop()
            return

        for pattern, replies in self._responders:
            if pattern.search(request):
                self._reply(conn, action_id, replies)
                return

    @staticmethod
    def _reply(conn: FakeConnection, action_id: str, replies: list[str]) -> None:
        for reply in replies:
            conn.push_message(f"ActionID: {action_id}\r\n{reply}")


class SilentGreetingServer(FakeAmiServer):
    """Accepts the TCP connection but never sends a greeting."""

    def greet(self, conn: FakeConnection) -> None:
        pass


class HangupOnGreetingServer(FakeAmiServer):
    """Closes the connection before the greeting."""

    def greet(self, conn: FakeConnection) -> None:
        conn.drop()


class SilentLoginServer(FakeAmiServer):
    """Greets, then never answers Login."""

    def answer(self, conn: FakeConnection, request: str) -> None:
        if "action: login" in request.lower():
            return
        super().answer(conn, request)


class DropOnLoginServer(FakeAmiServer):
    """Drops the first connection at Login; later connections behave normally.

    With ``reply_first`` the Login reply is sent before the drop.
    """

    def __init__(self, *, reply_first: bool = False) -> None:
        super().__init__()
        self.reply_first = reply_first

    def answer(self, conn: FakeConnection, request: str) -> None:
        if "action: login" in request.lower() and conn is self.connections[0]:
            if self.reply_first:
                conn.push_message(f"ActionID: {_action_id(request)}\r\n{LOGIN_OK}")
            conn.drop()
            return
        super().answer(conn, request)


class HangupOnLogoffServer(FakeAmiServer):
    """Closes the connection on Logoff without replying."""

    def answer(self, conn: FakeConnection, request: str) -> None:
        if "action: logoff" in request.lower():
            conn.drop()
            return
        super().answer(conn, request)
