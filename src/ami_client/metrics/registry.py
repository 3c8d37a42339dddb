"""Prometheus metrics registry for the AMI session engine."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

CONNECTION_STATES: Final = ("new", "connected", "authenticated", "disconnecting", "disconnected")

# Action metrics
ami_actions_sent_total: Final = Counter(  # type: ignore[assignment]
    "ami_actions_sent_total",
    "Total actions written to the manager connection",
    ["server", "action", "outcome"],
)

ami_action_results_total: Final = Counter(  # type: ignore[assignment]
    "ami_action_results_total",
    "Total pending actions settled",
    ["outcome"],
)

ami_pending_actions: Final = Gauge(  # type: ignore[assignment]
    "ami_pending_actions",
    "Actions currently awaiting a response",
)

# Message metrics
ami_events_received_total: Final = Counter(  # type: ignore[assignment]
    "ami_events_received_total",
    "Total events received",
    ["server", "event"],
)

ami_malformed_lines_total: Final = Counter(  # type: ignore[assignment]
    "ami_malformed_lines_total",
    "Total header lines skipped because they carried no colon",
)

# Connection metrics
ami_connection_state: Final = Gauge(  # type: ignore[assignment]
    "ami_connection_state",
    "Current connection state",
    ["server", "state"],
)

ami_handshake_total: Final = Counter(  # type: ignore[assignment]
    "ami_handshake_total",
    "Total handshake and login attempts",
    ["server", "outcome"],
)

ami_reconnection_total: Final = Counter(  # type: ignore[assignment]
    "ami_reconnection_total",
    "Total reconnection attempts scheduled",
    ["server", "reason"],
)

ami_reconnect_delay_seconds: Final = Histogram(  # type: ignore[assignment]
    "ami_reconnect_delay_seconds",
    "Delay before a scheduled reconnection attempt",
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9400) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_action_sent(server: str, action: str, outcome: str) -> None:
    """Record an action write attempt."""
    ami_actions_sent_total.labels(server=server, action=action, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_action_result(outcome: str) -> None:
    """Record a pending action settling (resolved, failed, timeout)."""
    ami_action_results_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_pending_actions(count: int) -> None:
    """Record number of open pending actions."""
    ami_pending_actions.set(count)  # type: ignore[no-untyped-call]


def record_event_received(server: str, event: str) -> None:
    """Record an event message."""
    ami_events_received_total.labels(server=server, event=event).inc()  # type: ignore[no-untyped-call]


def record_malformed_line() -> None:
    """Record a header line without a colon."""
    ami_malformed_lines_total.inc()  # type: ignore[no-untyped-call]


def record_connection_state(server: str, state: str) -> None:
    """Record connection state change."""
    # Set gauge to 1 for current state, 0 for all others
    for s in CONNECTION_STATES:
        value = 1 if s == state else 0
        ami_connection_state.labels(server=server, state=s).set(value)  # type: ignore[no-untyped-call]


def record_handshake(server: str, outcome: str) -> None:
    """Record a handshake outcome."""
    ami_handshake_total.labels(server=server, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_reconnection(server: str, reason: str, delay_seconds: float) -> None:
    """Record a scheduled reconnection and its delay."""
    ami_reconnection_total.labels(server=server, reason=reason).inc()  # type: ignore[no-untyped-call]
    ami_reconnect_delay_seconds.observe(delay_seconds)  # type: ignore[no-untyped-call]
