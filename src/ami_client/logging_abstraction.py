"""Logging layer for the AMI client.

Every record can carry a structured ``extra`` mapping and is stamped with the
correlation id of the action being processed. Two renderings are available:
a human-readable line for consoles and JSON lines for log shippers.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast

from typing_extensions import override

from ami_client.correlation import get_correlation_id

__all__ = [
    "AmiLogger",
    "HumanReadableFormatter",
    "JSONFormatter",
    "get_logger",
]

_CONTEXT_ATTR = "extra_data"


def _context_of(record: logging.LogRecord) -> Mapping[str, object]:
    context = getattr(record, _CONTEXT_ATTR, None)
    if isinstance(context, Mapping):
        return cast("Mapping[str, object]", context)
    return {}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        context = _context_of(record)
        if context:
            entry["context"] = dict(context)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``time LEVEL [module:line] [corr-id] > message | key=value ...``"""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[-8:]}]" if correlation_id else "[--------]"
        line = super().format(record)
        context = _context_of(record)
        if not context:
            return line
        return line + " | " + " | ".join(f"{key}={value}" for key, value in context.items())


def _open_stream(target: str) -> logging.Handler:
    if target == "stdout":
        return logging.StreamHandler(sys.stdout)
    if target == "stderr":
        return logging.StreamHandler(sys.stderr)
    path = Path(target)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(path, mode="a")
    except OSError as e:
        print(f"Warning: cannot open log file {target}: {e}; using stdout", file=sys.stderr)
        return logging.StreamHandler(sys.stdout)


class AmiLogger:
    """Thin wrapper over a stdlib logger.

    Call sites pass structured context as ``extra={...}``; it travels on the
    record as ``extra_data`` for the formatters above.

    Args:
        name: Logger name (usually ``__name__``)
        log_format: "human", "json" or "both"
        json_file: Destination of JSON lines (JSON output is off without it)
        human_output: "stdout", "stderr" or a file path
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stdout",
    ) -> None:
        from ami_client.const import AMI_DEBUG

        self.name: str = name
        self.log_format: str = log_format
        self.logger: logging.Logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if AMI_DEBUG else logging.INFO)

        # Modules share loggers by name; configure each one once
        if not self.logger.handlers:
            if log_format in ("json", "both") and json_file:
                self._attach(_open_stream(str(json_file)), JSONFormatter())
            if log_format in ("human", "both"):
                self._attach(_open_stream(human_output or "stdout"), HumanReadableFormatter())

    def _attach(self, handler: logging.Handler, formatter: logging.Formatter) -> None:
        handler.setFormatter(formatter)
        handler.setLevel(self.logger.level)
        self.logger.addHandler(handler)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        payload = {_CONTEXT_ATTR: dict(extra)} if extra else None
        # stacklevel=3: skip _log and debug()/info()/... to reach the caller
        self.logger.log(level, msg, *args, extra=payload, stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR with the active exception's traceback."""
        payload = {_CONTEXT_ATTR: dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=payload, stacklevel=2)

    def set_level(self, level: int) -> None:
        """Change the level of the logger and all of its handlers."""
        self.logger.setLevel(level)
        for handler in self.logger.handlers:
            handler.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> AmiLogger:
    """Return an AmiLogger configured from the ``AMI_LOG_*`` environment.

    Explicit arguments override the environment defaults.
    """
    from ami_client.const import AMI_LOG_FORMAT, AMI_LOG_HUMAN_OUTPUT, AMI_LOG_JSON_FILE

    return AmiLogger(
        name=name,
        log_format=log_format or AMI_LOG_FORMAT,
        json_file=json_file or AMI_LOG_JSON_FILE,
        human_output=human_output or AMI_LOG_HUMAN_OUTPUT,
    )
