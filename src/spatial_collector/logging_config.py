"""Log output for spatial-collector.

Every line passes through secret redaction before it is emitted, so logins in
URLs, Basic auth headers or login mappings never reach the terminal. Fields
bound with ``LogContext`` (record id, product group, download pair) are added
to each line written inside the block.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import time
from collections.abc import Mapping
from types import MappingProxyType
from typing import IO, Any

from spatial_collector.secrets import redact_string, redact_structure

PACKAGE_LOGGER = "spatial_collector"
LOG_FORMATS = ("text", "json")

_fields: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar(
    "spatial_collector_log_fields", default=MappingProxyType({})
)
_handler: logging.Handler | None = None


def log_fields() -> dict[str, Any]:
    """Fields bound to log lines in the current context."""
    return dict(_fields.get())


class LogContext:
    """Bind fields to every log line written inside a ``with`` block.

    Blocks nest; inner fields win and the outer ones are restored on exit.
    Fields given as None are not bound.
    """

    def __init__(self, **fields: Any):
        self.fields = {key: value for key, value in fields.items() if value is not None}
        self._token: contextvars.Token | None = None

    def __enter__(self) -> LogContext:
        self._token = _fields.set(MappingProxyType({**_fields.get(), **self.fields}))
        return self

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _fields.reset(self._token)
            self._token = None


class _RedactingFormatter(logging.Formatter):
    converter = time.gmtime

    def render_message(self, record: logging.LogRecord) -> str:
        msg = redact_structure(record.msg)
        args = redact_structure(record.args)
        try:
            text = str(msg) % args if args else str(msg)
        except (TypeError, ValueError):
            text = str(msg)
        return redact_string(text)


class TextFormatter(_RedactingFormatter):
    """``time level logger: message [key=value ...]``"""

    def format(self, record: logging.LogRecord) -> str:
        line = "%s %-8s %s: %s" % (
            self.formatTime(record, "%Y-%m-%d %H:%M:%S"),
            record.levelname,
            record.name,
            self.render_message(record),
        )
        fields = redact_structure(log_fields())
        if fields:
            line += " [" + " ".join(f"{key}={fields[key]}" for key in sorted(fields)) + "]"
        if record.exc_info:
            line += "\n" + redact_string(self.formatException(record.exc_info))
        return line


class JsonFormatter(_RedactingFormatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": self.render_message(record),
        }
        fields = log_fields()
        if fields:
            payload["context"] = redact_structure(fields)
        if record.exc_info:
            payload["exc_info"] = redact_string(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def _level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level or "INFO").upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    *, level: str | int | None = None, fmt: str = "text", stream: IO[str] | None = None
) -> logging.Handler:
    """Send the package's log lines to ``stream`` (stderr by default).

    Calling it again replaces the handler installed by the previous call.
    """
    global _handler
    if fmt not in LOG_FORMATS:
        raise ValueError(f"Unknown log format '{fmt}'. Use one of: {', '.join(LOG_FORMATS)}")
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if _handler is not None:
        package_logger.removeHandler(_handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if fmt == "json" else TextFormatter())
    package_logger.addHandler(handler)
    package_logger.setLevel(_level(level))
    _handler = handler
    return handler


def add_logging_args(parser: Any) -> None:
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument(
        "--log-format",
        default="text",
        choices=LOG_FORMATS,
        help="Logging format (default: text)",
    )
