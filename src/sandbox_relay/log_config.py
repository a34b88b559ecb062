"""
Structured logging for sandbox components.

Every call emits a single JSON line describing one event:

    {"event": "reporter.retry", "level": "warn", "logger": "reporter",
     "service": "sandbox", "session_id": "...", "attempt": 1, ...}

Loggers carry bound context (service, session id, ...) so call sites only pass
what is specific to the event. Exceptions are passed as ``exc=`` and rendered
as ``exc_type`` / ``exc_message``.
"""

import json
import logging
import os
import sys
import time
from typing import Any

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_configured = False


def configure_logging() -> None:
    """Install a stdout handler on the package logger. Safe to call repeatedly."""
    global _configured
    if _configured:
        return

    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger("sandbox_relay")
    root.addHandler(handler)
    root.setLevel(level)
    _configured = True


def _render_value(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_render_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _render_value(v) for k, v in value.items()}
    return str(value)


class StructuredLogger:
    """Logger that renders keyword fields into one JSON line per event."""

    def __init__(self, name: str, context: dict[str, Any]):
        self.name = name
        self.context = context
        self._logger = logging.getLogger(f"sandbox_relay.{name}")

    def bind(self, **context: Any) -> "StructuredLogger":
        """Return a child logger with additional bound context."""
        return StructuredLogger(self.name, {**self.context, **context})

    def debug(self, event: str, **fields: Any) -> None:
        self._emit("debug", event, fields)

    def info(self, event: str, **fields: Any) -> None:
        self._emit("info", event, fields)

    def warn(self, event: str, **fields: Any) -> None:
        self._emit("warn", event, fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit("error", event, fields)

    def _emit(self, level: str, event: str, fields: dict[str, Any]) -> None:
        log_level = _LEVELS[level]
        if not self._logger.isEnabledFor(log_level):
            return

        payload: dict[str, Any] = {
            "event": event,
            "level": level,
            "logger": self.name,
            "timestamp": round(time.time(), 3),
        }
        payload.update(self.context)

        exc = fields.pop("exc", None)
        for key, value in fields.items():
            payload[key] = _render_value(value)
        if exc is not None:
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)

        self._logger.log(log_level, json.dumps(payload, default=str))


def get_logger(name: str, **context: Any) -> StructuredLogger:
    """Create a structured logger with bound context fields."""
    return StructuredLogger(name, context)
