"""Runtime settings for an AMI session, read from the environment.

Defaults live in ``const``; ``load_settings`` reads the environment at call
time, optionally after loading a ``.env`` file, so a process can pick up
values that were set after the package was imported.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import dotenv

from ami_client import const
from ami_client.logging_abstraction import get_logger

logger = get_logger(__name__)


@dataclass
class AmiSettings:
    """Connection, reconnection and observability settings.

    Attributes:
        host: Manager host
        port: Manager port
        username: Login username
        secret: Login secret
        events: Login events flag ("on", "off" or an event mask)
        reconnect: Reconnect automatically after transport failures
        reconnect_base_delay: First reconnection delay (seconds)
        reconnect_factor: Delay multiplier per failed attempt
        reconnect_max_delay: Reconnection delay cap (seconds)
        connect_timeout: TCP connect timeout (seconds)
        handshake_timeout: Limit for greeting, login and logoff replies (seconds)
        action_ttl: Fail actions unanswered for this long; None disables
        metrics_port: Prometheus exporter port; None disables
    """

    host: str = const.DEFAULT_HOST
    port: int = const.DEFAULT_AMI_PORT
    username: str = ""
    secret: str = ""
    events: bool | str = const.DEFAULT_EVENTS
    reconnect: bool = True
    reconnect_base_delay: float = const.DEFAULT_RECONNECT_BASE_DELAY
    reconnect_factor: float = const.DEFAULT_RECONNECT_FACTOR
    reconnect_max_delay: float = const.DEFAULT_RECONNECT_MAX_DELAY
    connect_timeout: float = const.DEFAULT_CONNECT_TIMEOUT
    handshake_timeout: float = const.DEFAULT_HANDSHAKE_TIMEOUT
    action_ttl: float | None = None
    metrics_port: int | None = None

    def __repr__(self) -> str:
        """String representation (secret masked)."""
        return (
            f"AmiSettings(host={self.host!r}, port={self.port}, username={self.username!r}, "
            f"secret='***', events={self.events!r}, reconnect={self.reconnect})"
        )


def load_env_file(env_file: str | Path) -> bool:
    """Load a ``.env`` file into the process environment.

    Returns:
        True if at least one variable was loaded
    """
    env_path = Path(env_file).expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return False

    loaded_any = dotenv.load_dotenv(env_path, override=True)
    if loaded_any:
        logger.info("Environment variables loaded", extra={"source": str(env_path)})
    else:
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})
    return loaded_any


def load_settings(env_file: str | Path | None = None) -> AmiSettings:
    """Build settings from ``AMI_*`` environment variables.

    Args:
        env_file: Optional ``.env`` file loaded (overriding) before reading

    """
    if env_file is not None:
        _ = load_env_file(env_file)

    action_ttl = const.env_float("AMI_ACTION_TTL", 0.0)
    settings = AmiSettings(
        host=os.environ.get("AMI_HOST", const.DEFAULT_HOST),
        port=const.env_int("AMI_PORT", const.DEFAULT_AMI_PORT) or const.DEFAULT_AMI_PORT,
        username=os.environ.get("AMI_USERNAME", ""),
        secret=os.environ.get("AMI_SECRET", ""),
        events=os.environ.get("AMI_EVENTS", const.DEFAULT_EVENTS),
        reconnect=const.env_flag("AMI_RECONNECT", "1"),
        reconnect_base_delay=const.env_float("AMI_RECONNECT_BASE_DELAY", const.DEFAULT_RECONNECT_BASE_DELAY),
        reconnect_factor=const.env_float("AMI_RECONNECT_FACTOR", const.DEFAULT_RECONNECT_FACTOR),
        reconnect_max_delay=const.env_float("AMI_RECONNECT_MAX_DELAY", const.DEFAULT_RECONNECT_MAX_DELAY),
        connect_timeout=const.env_float("AMI_CONNECT_TIMEOUT", const.DEFAULT_CONNECT_TIMEOUT),
        handshake_timeout=const.env_float("AMI_HANDSHAKE_TIMEOUT", const.DEFAULT_HANDSHAKE_TIMEOUT),
        action_ttl=action_ttl if action_ttl > 0 else None,
        metrics_port=const.env_int("AMI_METRICS_PORT", None),
    )
    logger.debug("Settings loaded", extra={"host": settings.host, "port": settings.port})
    return settings
