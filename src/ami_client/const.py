import os
import re

__all__ = [
    "ACTION_ID_FIELD",
    "AMI_DEBUG",
    "AMI_LOG_FORMAT",
    "AMI_LOG_HUMAN_OUTPUT",
    "AMI_LOG_JSON_FILE",
    "CRLF",
    "DEFAULT_AMI_PORT",
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_EVENTS",
    "DEFAULT_HANDSHAKE_TIMEOUT",
    "DEFAULT_HOST",
    "DEFAULT_RECONNECT_BASE_DELAY",
    "DEFAULT_RECONNECT_FACTOR",
    "DEFAULT_RECONNECT_MAX_DELAY",
    "END_COMMAND_SENTINEL",
    "EVENTLIST_FIELD",
    "EVENTLIST_START",
    "LEGACY_COMMAND_OUTPUT_BEFORE",
    "LEGACY_EVENT_LIST_BEFORE",
    "LIST_COMPLETE_SUFFIX",
    "LIST_START_PHRASE",
    "OUTPUT_FIELD",
    "SIGNATURE_PATTERN",
    "USER_EVENT",
    "YES_ANSWER",
    "env_flag",
    "env_float",
    "env_int",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", "on", "o")

# Wire format
CRLF = "\r\n"
SIGNATURE_PATTERN = re.compile(r"^Asterisk Call Manager/(\d+(?:\.\d+)*)")
ACTION_ID_FIELD = "actionid"
EVENTLIST_FIELD = "eventlist"
EVENTLIST_START = "start"
OUTPUT_FIELD = "output"
USER_EVENT = "UserEvent"

# Compatibility sentinels for older servers
END_COMMAND_SENTINEL = "--END COMMAND--"
LIST_START_PHRASE = "will follow"
LIST_COMPLETE_SUFFIX = "Complete"
# AMI 1.1 (Asterisk 1.6) introduced "EventList: start"
LEGACY_EVENT_LIST_BEFORE: tuple[int, ...] = (1, 1)
# AMI 3.0 (Asterisk 14) moved command output into "Output:" headers
LEGACY_COMMAND_OUTPUT_BEFORE: tuple[int, ...] = (3, 0)

DEFAULT_AMI_PORT = 5038
DEFAULT_HOST = "127.0.0.1"
DEFAULT_EVENTS = "on"
DEFAULT_RECONNECT_BASE_DELAY = 1.0
DEFAULT_RECONNECT_FACTOR = 2.0
DEFAULT_RECONNECT_MAX_DELAY = 30.0
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_HANDSHAKE_TIMEOUT = 10.0


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).casefold() in YES_ANSWER


# Logging reads the import-time environment; session values come from
# settings.load_settings()
AMI_DEBUG: bool = env_flag("AMI_DEBUG", "0")
AMI_LOG_FORMAT: str = os.environ.get("AMI_LOG_FORMAT", "human")
_json_file = os.environ.get("AMI_LOG_JSON_FILE")
AMI_LOG_JSON_FILE: str | None = _json_file if _json_file else None
AMI_LOG_HUMAN_OUTPUT: str = os.environ.get("AMI_LOG_HUMAN_OUTPUT", "stdout")
