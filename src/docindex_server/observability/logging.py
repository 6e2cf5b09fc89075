"""Structured JSON logging with trace correlation."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
import logging
import sys
from typing import Any

import orjson

from docindex_server.observability.context import get_trace_context


# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, tagged with the current trace ids.

    Values passed through ``extra=`` are copied into the entry; keys that
    may carry personal data or credentials are redacted.
    """

    REDACT_KEYS = frozenset({"password", "token", "api_key", "secret", "authorization", "email"})
    MAX_MESSAGE_LEN = 2000
    MAX_VALUE_LEN = 500

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_trace_context()
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self._truncate(record.getMessage()),
            "trace_id": ctx.get("trace_id", ""),
            "span_id": ctx.get("span_id", ""),
        }
        if route := ctx.get("route"):
            entry["route"] = route
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            entry[key] = self._redact(key, value)

        return orjson.dumps(entry, default=self._json_default).decode("utf-8")

    def _truncate(self, message: str) -> str:
        if len(message) > self.MAX_MESSAGE_LEN:
            return message[: self.MAX_MESSAGE_LEN] + "..."
        return message

    def _redact(self, key: str, value: Any) -> Any:
        if key.lower() in self.REDACT_KEYS:
            return "[REDACTED]"
        if isinstance(value, str) and len(value) > self.MAX_VALUE_LEN:
            return value[: self.MAX_VALUE_LEN] + "..."
        return value

    def _json_default(self, value: Any) -> Any:
        if isinstance(value, (set, frozenset, tuple)):
            return list(value)
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, (bytes, bytearray)):
            return value.decode("utf-8", errors="replace")
        if isinstance(value, Exception):
            return f"{type(value).__name__}: {value}"
        return repr(value)


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    *,
    logger_levels: dict[str, str] | None = None,
    access_log: bool = False,
) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        level: Root log level name
        json_output: Emit JSON lines when True, plain text otherwise
        logger_levels: Per-logger overrides (logger name -> level name)
        access_log: Keep uvicorn's per-request access log at INFO
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    root.addHandler(handler)

    if not access_log:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    for logger_name, logger_level in (logger_levels or {}).items():
        logging.getLogger(logger_name).setLevel(getattr(logging, logger_level.upper(), logging.INFO))
