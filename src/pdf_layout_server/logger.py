"""Structured JSON logger for the layout analysis server.

Every record is emitted as one JSON object per line:
{"time":"2026-02-03T14:06:20.829529-05:00","level":"INFO","source":{"function":"analyze","file":"analyzer.py","line":88},"msg":"layout analysis completed","duration_ms":812.4}
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

# Fields attached to every record emitted in the current context
_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})

DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


class StructuredFormatter(logging.Formatter):
    """Formats log records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc).astimezone()

        log_entry: dict[str, Any] = {
            "time": now.isoformat(),
            "level": record.levelname,
            "source": {
                "function": record.funcName,
                "file": os.path.basename(record.pathname),
                "line": record.lineno,
            },
            "msg": record.getMessage(),
        }

        ctx_fields = _log_context.get()
        if ctx_fields:
            log_entry.update(ctx_fields)

        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # default=str keeps UUIDs, paths and enums serializable
        return json.dumps(log_entry, default=str)


class StructuredLogger:
    """Logger that writes structured JSON records with context support."""

    def __init__(self, name: str = "app", level: str = DEFAULT_LEVEL):
        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level, logging.INFO))

        self._logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        self._logger.addHandler(handler)

        self._logger.propagate = False

    def set_level(self, level: str) -> None:
        """Change the minimum level, e.g. "DEBUG"."""
        self._logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    def _log(
        self,
        level: int,
        msg: str,
        exc_info: bool = False,
        stacklevel: int = 3,
        **fields: Any,
    ) -> None:
        extra = {"extra_fields": fields} if fields else {}
        self._logger.log(
            level, msg, exc_info=exc_info, stacklevel=stacklevel, extra=extra
        )

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, **fields)

    def warn(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, **fields)

    def error(self, msg: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, msg, exc_info=exc_info, **fields)


def set_context(**fields: Any) -> None:
    """Attach fields to every subsequent record in the current context.

    Example:
        set_context(fingerprint="9f2c...", file_name="resume.pdf")
        logger.info("layout analysis started")  # includes both fields
    """
    current = _log_context.get()
    _log_context.set({**current, **fields})


def clear_context() -> None:
    """Drop all context fields."""
    _log_context.set({})


def get_context() -> dict[str, Any]:
    """Return a copy of the current context fields."""
    return _log_context.get().copy()


logger = StructuredLogger("pdf_layout_server")
