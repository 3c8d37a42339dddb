"""Session engine: connection state machine, handshake, login and reconnection.

This module implements the ConnectionManager class which owns one manager
connection at a time, authenticates it, routes every incoming message to
event subscribers and pending actions, and rebuilds the connection with
exponential backoff when it drops.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Protocol

from ami_client import const
from ami_client.correlation import correlation_context
from ami_client.events import CONNECT, DISCONNECT, ERROR, EVENT, RECONNECT, EventEmitter, user_event_name
from ami_client.logging_abstraction import get_logger
from ami_client.metrics import registry
from ami_client.protocol.exceptions import AmiProtocolError, DuplicateActionError, HandshakeError
from ami_client.protocol.line_framer import LineFramer
from ami_client.protocol.message import (
    AmiMessage,
    MessageAssembler,
    build_action,
    is_success,
    normalize_events_flag,
    parse_message,
)
from ami_client.protocol.version import ProtocolVersion, SessionQuirks

from .exceptions import AmiConnectionError, LoginError, NotAuthenticatedError
from .pending_actions import PendingActionRegistry
from .retry_policy import ReconnectBackoff
from .socket_abstraction import TCPConnection
from .types import SendCallback

logger = get_logger(__name__)

ConnectCallback = Callable[[BaseException | None], object]


class Connection(Protocol):
    """Transport contract used by the engine (TCPConnection or a test double)."""

    last_error: BaseException | None

    async def connect(self) -> bool: ...

    async def send(self, data: bytes) -> bool: ...

    async def recv(self, max_bytes: int | None = None) -> bytes | None: ...

    async def close(self) -> None: ...


ConnectionFactory = Callable[..., Connection]


class ConnectionState(Enum):
    """Connection state enumeration.

    NEW → CONNECTED → AUTHENTICATED → DISCONNECTING → DISCONNECTED within one
    cycle; a reconnect starts a fresh cycle at NEW.
    """

    NEW = "new"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    DISCONNECTING = "disconnecting"
    DISCONNECTED = "disconnected"


def _describe(error: BaseException | None, default: str) -> str:
    return f"{default}: {error}" if error is not None else default


def _action_name(fields: Mapping[str, object]) -> str:
    for name, value in fields.items():
        if name.lower() == "action":
            return str(value)
    return "unknown"


def _notify(callback: ConnectCallback | None, error: BaseException | None) -> None:
    if callback is None:
        return
    try:
        _ = callback(error)
    except Exception:
        logger.exception("Completion callback raised")


def _notify_send(callback: SendCallback | None, error: BaseException) -> None:
    if callback is None:
        return
    try:
        _ = callback(error, None)
    except Exception:
        logger.exception("Send callback raised")


class ConnectionManager:
    """Manages the AMI session lifecycle.

    **Cycle**: open a fresh transport, read the ``Asterisk Call Manager/<v>``
    greeting, derive the legacy parsing switches from the version, start the
    line reader, log in. Success emits ``connect`` (first cycle after
    ``connect()``) or ``reconnect``.

    **Failures**:
    - Unknown greeting: fatal, transport closed, ``error`` emitted, never retried
    - Login rejected, transport error or close: pending actions fail with the
      triggering error, then a reconnect is scheduled if enabled; otherwise
      ``error`` is emitted and the engine stays inert until ``connect()``

    **Reconnection**: the delay comes from ReconnectBackoff and is reset when
    an authenticated session drops. The wait is a loop timer that
    ``disconnect()`` cancels.

    **Concurrency**: everything runs on one event loop. Incoming lines are
    handled by a single reader task per cycle, in arrival order, so no locks
    are needed.
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
        emitter: EventEmitter | None = None,
        connection_factory: ConnectionFactory = TCPConnection,
    ) -> None:
        """Initialize connection manager.

        Args:
            host: Manager host
            port: Manager port
            username: Login username
            secret: Login secret
            events: Login events flag (True/False, "on"/"off", or an event mask)
            reconnect: Reconnect automatically after transport failures
            backoff: Reconnection backoff (const defaults when None)
            connect_timeout: TCP connect timeout in seconds
            handshake_timeout: Limit for greeting, login and logoff replies
            action_ttl_seconds: Fail actions unanswered for this long (None disables)
            emitter: Notification registry (a new one if None)
            connection_factory: Builds the transport for each cycle

        """
        self.host: str = host
        self.port: int = port
        self.username: str = username
        self.secret: str = secret
        self.events: bool | str = events
        self.reconnect: bool = reconnect
        self.backoff: ReconnectBackoff = backoff or ReconnectBackoff()
        self.connect_timeout: float = connect_timeout
        self.handshake_timeout: float = handshake_timeout
        self.action_ttl_seconds: float | None = action_ttl_seconds
        self.emitter: EventEmitter = emitter or EventEmitter()
        self._connection_factory: ConnectionFactory = connection_factory

        self.state: ConnectionState = ConnectionState.NEW
        self.conn: Connection | None = None
        self.version: ProtocolVersion | None = None
        self.quirks: SessionQuirks = SessionQuirks()
        self.registry: PendingActionRegistry = PendingActionRegistry()

        # One framer/assembler per cycle
        self.framer: LineFramer = LineFramer()
        self.assembler: MessageAssembler = MessageAssembler()
        self._backlog: list[str] = []

        self.reader_task: asyncio.Task[None] | None = None
        self.cycle_task: asyncio.Task[None] | None = None
        self.sweep_task: asyncio.Task[None] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._connect_waiter: asyncio.Future[None] | None = None
        self._closing: bool = False
        self._has_connected: bool = False

    @property
    def server(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def is_connected(self) -> bool:
        """True while the session is authenticated."""
        return self.state == ConnectionState.AUTHENTICATED

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def _retry_in_progress(self) -> bool:
        """An automatic reconnect is waiting on its timer or running its cycle."""
        if self._closing:
            return False
        cycle_running = self.cycle_task is not None and not self.cycle_task.done()
        return self._reconnect_handle is not None or cycle_running

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        logger.debug(
            "State %s → %s",
            self.state.value,
            state.value,
            extra={"server": self.server},
        )
        self.state = state
        registry.record_connection_state(self.server, state.value)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def connect(self, callback: ConnectCallback | None = None) -> None:
        """Connect and authenticate.

        With reconnection enabled this keeps waiting across failed cycles
        until a session authenticates, the greeting is rejected, or
        ``disconnect()`` is called.

        Raises:
            HandshakeError: Server greeting is not an AMI signature
            LoginError: Login rejected (reconnection disabled)
            AmiConnectionError: Transport failure (reconnection disabled) or
                disconnect() called while connecting

        """
        if self.state is ConnectionState.AUTHENTICATED:
            _notify(callback, None)
            return

        if self._connect_waiter is None or self._connect_waiter.done():
            self._connect_waiter = asyncio.get_running_loop().create_future()
            if self._retry_in_progress:
                # Join the automatic reconnect; it keeps its backoff and reports "reconnect"
                logger.info("→ Waiting for reconnection", extra={"server": self.server})
            else:
                logger.info(
                    "→ Starting manager session",
                    extra={"server": self.server, "reconnect": self.reconnect},
                )
                self._closing = False
                self._has_connected = False
                self.backoff.reset()
                self._start_cycle()

        try:
            await asyncio.shield(self._connect_waiter)
        except AmiProtocolError as e:
            _notify(callback, e)
            raise
        _notify(callback, None)

    async def send(
        self,
        fields: Mapping[str, object],
        callback: SendCallback | None = None,
    ) -> AmiMessage:
        """Send an action and wait for its response.

        The state check happens before anything is registered or written: an
        unauthenticated session rejects the action immediately.

        Args:
            fields: Action fields, e.g. {"action": "Ping"}; list values emit
                one header per element
            callback: Optional callback(error, message) invoked on settle

        Returns:
            The response; for event-list actions the header response with
            ``eventlist`` holding the collected events

        Raises:
            NotAuthenticatedError: Session not authenticated
            DuplicateActionError: Caller-supplied actionid already pending
            AmiConnectionError: Connection lost before the response arrived

        """
        if self.state is not ConnectionState.AUTHENTICATED or self.conn is None:
            error = NotAuthenticatedError(state=self.state.value)
            registry.record_action_sent(self.server, _action_name(fields), "rejected")
            _notify_send(callback, error)
            raise error

        try:
            future, _ = await self._write_action(fields, callback)
        except DuplicateActionError as e:
            _notify_send(callback, e)
            raise
        return await future

    async def disconnect(self, callback: ConnectCallback | None = None) -> None:
        """Log off and close the connection; cancels any pending reconnect.

        Raises:
            AmiConnectionError: If no session was ever established

        """
        logger.info("Disconnecting...", extra={"server": self.server, "state": self.state.value})
        self._closing = True
        self._cancel_reconnect()
        self._stop_sweep()

        if self.state is ConnectionState.AUTHENTICATED:
            await self._logoff()
            _notify(callback, None)
            return

        # No live session: stop whatever cycle is in flight
        had_session = self._has_connected
        previous = self.state
        await self._cancel_cycle()
        await self._detach_connection()
        self._set_state(ConnectionState.DISCONNECTED)

        error = AmiConnectionError("disconnect_requested", state=previous.value)
        _ = self.registry.fail_all(error)
        if self._connect_waiter is not None and not self._connect_waiter.done():
            self._connect_waiter.set_exception(error)

        if had_session:
            logger.info("Disconnect complete", extra={"server": self.server})
            _notify(callback, None)
            return

        not_connected = AmiConnectionError("not_connected", state=previous.value)
        _notify(callback, not_connected)
        raise not_connected

    # ------------------------------------------------------------------
    # Connection cycle
    # ------------------------------------------------------------------

    def _start_cycle(self) -> None:
        self._reconnect_handle = None
        if self._closing:
            return
        self.cycle_task = asyncio.create_task(self._run_cycle_guarded())

    async def _run_cycle_guarded(self) -> None:
        """Run one cycle and route its failure to the retry decision."""
        try:
            await self._run_cycle()
        except asyncio.CancelledError:
            logger.debug("Connection cycle cancelled")
            raise
        except HandshakeError as e:
            registry.record_handshake(self.server, "signature_mismatch")
            logger.error(
                "✗ Server is not an Asterisk manager, giving up",
                extra={"server": self.server, "signature": e.signature},
            )
            await self._teardown(e)
            self._give_up(e)
        except LoginError as e:
            registry.record_handshake(self.server, "login_rejected")
            logger.error(
                "✗ Login rejected",
                extra={"server": self.server, "reason": e.reason},
            )
            await self._teardown(e)
            self._after_failure(e, "login_rejected")
        except AmiProtocolError as e:
            registry.record_handshake(self.server, "failed")
            logger.warning(
                "✗ Connection cycle failed",
                extra={"server": self.server, "error": str(e)},
            )
            await self._teardown(e)
            self._after_failure(e, "connect_failed")
        except Exception as e:
            logger.exception(
                "Unexpected connection cycle error",
                extra={"server": self.server, "error_type": type(e).__name__},
            )
            failure = AmiConnectionError(_describe(e, "unexpected_error"), state=self.state.value)
            await self._teardown(failure)
            self._give_up(failure)

    async def _run_cycle(self) -> None:
        await self._detach_connection()
        self._set_state(ConnectionState.NEW)
        self.framer = LineFramer()
        self.assembler = MessageAssembler()
        self._backlog = []
        self.version = None
        self.quirks = SessionQuirks()

        conn = self._connection_factory(self.host, self.port, connect_timeout=self.connect_timeout)
        self.conn = conn
        if not await conn.connect():
            raise AmiConnectionError(_describe(conn.last_error, "connect_failed"), state=self.state.value)

        try:
            signature = await asyncio.wait_for(self._read_signature(conn), timeout=self.handshake_timeout)
        except TimeoutError as e:
            raise AmiConnectionError("handshake_timeout", state=self.state.value) from e

        self.version = ProtocolVersion.from_signature(signature)
        self.quirks = self.version.quirks()
        self._set_state(ConnectionState.CONNECTED)
        logger.info(
            "✓ Manager greeting received",
            extra={
                "server": self.server,
                "version": str(self.version),
                "legacy_event_list": self.quirks.legacy_event_list,
                "legacy_command_output": self.quirks.legacy_command_output,
            },
        )

        self.reader_task = asyncio.create_task(self._line_reader(conn))
        await self._login()

        # The reader may have seen the connection drop right after the reply
        if self.state is not ConnectionState.CONNECTED:
            raise AmiConnectionError("connection_lost_during_login", state=self.state.value)
        self._on_authenticated()

    async def _read_signature(self, conn: Connection) -> str:
        while True:
            data = await conn.recv()
            if data is None:
                raise AmiConnectionError(
                    _describe(conn.last_error, "closed_during_handshake"),
                    state=self.state.value,
                )
            lines = self.framer.feed(data)
            if lines:
                self._backlog = lines[1:]
                return lines[0]

    async def _login(self) -> None:
        fields: dict[str, object] = {
            "action": "Login",
            "username": self.username,
            "secret": self.secret,
            "events": normalize_events_flag(self.events),
        }
        future, action_id = await self._write_action(fields)
        try:
            response = await asyncio.wait_for(future, timeout=self.handshake_timeout)
        except TimeoutError as e:
            _ = self.registry.fail(action_id, AmiConnectionError("login_timeout", state=self.state.value))
            raise AmiConnectionError("login_timeout", state=self.state.value) from e

        if not is_success(response):
            raise LoginError(response.first("message", "login rejected"), response)

    def _on_authenticated(self) -> None:
        self._set_state(ConnectionState.AUTHENTICATED)
        registry.record_handshake(self.server, "success")
        notification = RECONNECT if self._has_connected else CONNECT
        self._has_connected = True
        self._start_sweep()
        logger.info(
            "✓ Authenticated",
            extra={"server": self.server, "username": self.username, "notification": notification},
        )
        if self._connect_waiter is not None and not self._connect_waiter.done():
            self._connect_waiter.set_result(None)
        _ = self.emitter.emit(notification)

    async def _logoff(self) -> None:
        # Logoff is the transition action: user sends are already refused
        self._set_state(ConnectionState.DISCONNECTING)
        logger.info("→ Logging off", extra={"server": self.server})
        try:
            future, _ = await self._write_action({"action": "Logoff"})
            response = await asyncio.wait_for(future, timeout=self.handshake_timeout)
            logger.debug("✓ Logoff acknowledged", extra={"response": response.response})
        except TimeoutError:
            logger.warning("Logoff not acknowledged, closing anyway", extra={"server": self.server})
        except AmiProtocolError as e:
            logger.warning(
                "Logoff failed, closing anyway",
                extra={"server": self.server, "error": str(e)},
            )

        await self._detach_connection()
        self._set_state(ConnectionState.DISCONNECTED)
        _ = self.registry.fail_all(AmiConnectionError("disconnected", state=ConnectionState.DISCONNECTING.value))
        logger.info("Disconnect complete", extra={"server": self.server})
        _ = self.emitter.emit(DISCONNECT, None)

    # ------------------------------------------------------------------
    # Failure handling and reconnection
    # ------------------------------------------------------------------

    async def _teardown(self, error: BaseException) -> None:
        """Close a failed cycle and fail whatever it left pending."""
        self._set_state(ConnectionState.DISCONNECTED)
        self._stop_sweep()
        _ = self.registry.fail_all(error)
        await self._detach_connection()

    def _after_failure(self, error: AmiProtocolError, reason: str) -> None:
        if self._closing:
            return
        if not self.reconnect:
            self._give_up(error)
            return
        self._schedule_reconnect(reason)

    def _give_up(self, error: AmiProtocolError) -> None:
        logger.error(
            "✗ Session failed, not retrying",
            extra={"server": self.server, "error": str(error)},
        )
        if self._connect_waiter is not None and not self._connect_waiter.done():
            self._connect_waiter.set_exception(error)
        _ = self.emitter.emit(ERROR, error)

    def _schedule_reconnect(self, reason: str) -> None:
        if self._reconnect_handle is not None:
            logger.debug("Reconnection already scheduled", extra={"reason": reason})
            return
        delay = self.backoff.next_delay()
        registry.record_reconnection(self.server, reason, delay)
        logger.info(
            "Reconnecting in %.2fs",
            delay,
            extra={"server": self.server, "reason": reason, "attempt": self.backoff.attempts},
        )
        self._reconnect_handle = asyncio.get_running_loop().call_later(delay, self._start_cycle)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
            logger.debug("Pending reconnection cancelled", extra={"server": self.server})

    async def _cancel_cycle(self) -> None:
        task = self.cycle_task
        self.cycle_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        _ = task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _stop_reader(self) -> None:
        task = self.reader_task
        self.reader_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        _ = task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _detach_connection(self) -> None:
        """Stop the reader first so no line from the old cycle leaks into the next."""
        await self._stop_reader()
        if self.conn is not None:
            conn, self.conn = self.conn, None
            await conn.close()

    # ------------------------------------------------------------------
    # Incoming traffic
    # ------------------------------------------------------------------

    async def _line_reader(self, conn: Connection) -> None:
        """Feed lines to the assembler until the connection ends.

        **Task Lifecycle**:
        - **Start**: created by the cycle once the greeting is accepted
        - **Stop**: cancelled by disconnect() or the next cycle
        - **EOF / read error**: reports the loss to _on_connection_lost()
        """
        error: BaseException | None = None
        try:
            backlog, self._backlog = self._backlog, []
            for line in backlog:
                self._handle_line(line)

            while True:
                data = await conn.recv()
                if data is None:
                    break
                for line in self.framer.feed(data):
                    self._handle_line(line)

            for line in self.framer.flush():
                self._handle_line(line)
            error = conn.last_error
        except asyncio.CancelledError:
            logger.debug("Line reader cancelled (clean shutdown)")
            raise
        except Exception as e:
            logger.exception(
                "Line reader crashed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            error = e

        await self._on_connection_lost(error)

    async def _on_connection_lost(self, error: BaseException | None) -> None:
        # _teardown() owns cleanup once the cycle has failed
        if self.state is ConnectionState.DISCONNECTED:
            return

        previous = self.state
        failure = AmiConnectionError(_describe(error, "connection_closed"), state=previous.value)
        if previous is ConnectionState.DISCONNECTING:
            # Unblocks the Logoff wait in _logoff(), which finishes the close
            failed = self.registry.fail_all(failure)
            logger.debug(
                "Connection closed while logging off",
                extra={"server": self.server, "failed_actions": failed},
            )
            return

        logger.warning(
            "✗ Connection lost",
            extra={"server": self.server, "state": previous.value, "reason": failure.reason},
        )
        self._set_state(ConnectionState.DISCONNECTED)
        self._stop_sweep()
        _ = self.registry.fail_all(failure)
        await self._detach_connection()

        if previous is not ConnectionState.AUTHENTICATED:
            # The cycle task sees the failure through its pending login
            return

        self.backoff.reset()
        _ = self.emitter.emit(DISCONNECT, failure)
        self._after_failure(failure, "connection_lost")

    def _handle_line(self, line: str) -> None:
        run = self.assembler.feed(line)
        if run is None:
            return
        message = parse_message(run, legacy_command_output=self.quirks.legacy_command_output)
        self._route_message(message)

    def _route_message(self, message: AmiMessage) -> None:
        """Dispatch events, then resolve the pending action it belongs to."""
        with correlation_context(message.action_id, auto_generate=False):
            event = message.event
            if event is not None:
                registry.record_event_received(self.server, event)
                _ = self.emitter.emit(EVENT, message)
                _ = self.emitter.emit(event, message)
                if event == const.USER_EVENT:
                    sub_name = message.first("userevent")
                    if sub_name:
                        _ = self.emitter.emit(user_event_name(sub_name), message)

            if not self.registry.correlate(message, self.quirks) and event is None:
                logger.debug(
                    "Dropping response without pending action",
                    extra={"action_id": message.action_id},
                )

    # ------------------------------------------------------------------
    # Outgoing actions
    # ------------------------------------------------------------------

    async def _write_action(
        self,
        fields: Mapping[str, object],
        callback: SendCallback | None = None,
    ) -> tuple[asyncio.Future[AmiMessage], str]:
        """Register, then write an action.

        Registration happens first so a fast reply cannot arrive before its
        pending entry exists.
        """
        conn = self.conn
        action = _action_name(fields)
        if conn is None:
            raise AmiConnectionError("not_connected", state=self.state.value)

        action_id, payload = build_action(fields)
        pending = self.registry.register(action_id, action=action, callback=callback)
        logger.debug(
            "→ Sending action",
            extra={"action": action, "action_id": action_id},
        )

        if await conn.send(payload.encode()):
            registry.record_action_sent(self.server, action, "sent")
        else:
            registry.record_action_sent(self.server, action, "send_failed")
            _ = self.registry.fail(
                action_id,
                AmiConnectionError(_describe(conn.last_error, "send_failed"), state=self.state.value),
            )
        return pending.future, action_id

    # ------------------------------------------------------------------
    # Optional time-to-live sweep
    # ------------------------------------------------------------------

    def _start_sweep(self) -> None:
        if self.action_ttl_seconds is None:
            return
        self._stop_sweep()
        self.sweep_task = asyncio.create_task(self._sweep_expired(self.action_ttl_seconds))

    def _stop_sweep(self) -> None:
        if self.sweep_task is not None and not self.sweep_task.done():
            _ = self.sweep_task.cancel()
        self.sweep_task = None

    async def _sweep_expired(self, ttl_seconds: float) -> None:
        interval = ttl_seconds / 2
        while True:
            await asyncio.sleep(interval)
            expired = self.registry.expire(ttl_seconds)
            if expired:
                logger.debug("Expired unanswered actions", extra={"count": expired})
