"""
Logging setup for hyperharness.

Library modules log through ``logging.getLogger(__name__)`` (or get_logger()
when they want structured fields) and never install handlers. Applications,
the CLI included, call configure_logging() once.

Every record picks up the fields of the enclosing LogContext. The context is
task-local, and each HarnessExecution and HyperPlan step runs in its own
asyncio task, so concurrent steps never see each other's ids.

Usage:
    from hyperharness.logging_config import LogContext, configure_logging, get_logger

    configure_logging(level="DEBUG", json_output=True)

    log = get_logger(__name__)
    with LogContext(execution_id=execution.id, harness_id="codex"):
        log.info("Spawned backend", pid=proc.pid)
"""

from __future__ import annotations

import functools
import json
import logging
import logging.handlers
import os
import sys
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

_log_context: ContextVar[dict[str, Any]] = ContextVar("hyperharness_log_context", default={})

# Ids shown in their own slot; every other context key is a plain field
ID_KEYS = ("trace_id", "step_id", "execution_id")

DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5

# Keyword arguments the stdlib logging calls understand themselves
_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


# ============================================================================
# Context
# ============================================================================


class LogContext:
    """Adds fields to every record logged inside the ``with`` block."""

    def __init__(self, **fields: Any):
        self._fields = fields
        self._token: Optional[Token[dict[str, Any]]] = None

    def __enter__(self) -> LogContext:
        self._token = _log_context.set({**_log_context.get(), **self._fields})
        return self

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


def set_context(**fields: Any) -> None:
    """Merge fields into the context of the current task."""
    _log_context.set({**_log_context.get(), **fields})


def get_context() -> dict[str, Any]:
    return _log_context.get()


def clear_context() -> None:
    _log_context.set({})


# ============================================================================
# Records and formatters
# ============================================================================


@dataclass
class LogEntry:
    """One log line before rendering."""

    created: float
    level: str
    logger: str
    message: str
    ids: dict[str, str] = field(default_factory=dict)
    fields: dict[str, Any] = field(default_factory=dict)
    exception: Optional[dict[str, str]] = None

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> LogEntry:
        ids: dict[str, str] = {}
        fields: dict[str, Any] = {}
        for key, value in get_context().items():
            if key in ID_KEYS:
                ids[key] = value
            else:
                fields[key] = value
        # extra={"step_id": ...} on a single call also counts
        for key in ID_KEYS:
            value = getattr(record, key, None)
            if value and key not in ids:
                ids[key] = value
        fields.update(getattr(record, "structured_fields", {}))
        return cls(
            created=record.created,
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
            ids=ids,
            fields=fields,
        )

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(self.created, tz=timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "ts": self.time.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": self.level,
            "logger": self.logger,
            "msg": self.message,
        }
        result.update((key, self.ids[key]) for key in ID_KEYS if key in self.ids)
        result.update(self.fields)
        if self.exception:
            result["exception"] = self.exception
        return result

    def to_text(self) -> str:
        parts = [self.time.strftime("%Y-%m-%d %H:%M:%S"), f"[{self.level}]", f"[{self.logger.rsplit('.', 1)[-1]}]"]
        for key in ID_KEYS:
            value = self.ids.get(key)
            if value:
                # Uuids are shortened; step ids are already short
                parts.append(f"[{value if key == 'step_id' else value[:8]}]")
        parts.append(self.message)
        if self.fields:
            parts.append(" ".join(f"{k}={v}" for k, v in self.fields.items()))
        text = " ".join(parts)
        if self.exception:
            text += "\n" + self.exception["traceback"]
        return text


class _EntryFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = LogEntry.from_record(record)
        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry.exception = {
                "type": exc_type.__name__ if exc_type else "Unknown",
                "message": str(exc_value) if exc_value else "",
                "traceback": self.formatException(record.exc_info),
            }
        return self.render(entry)

    def render(self, entry: LogEntry) -> str:
        raise NotImplementedError


class JSONFormatter(_EntryFormatter):
    """One JSON object per line."""

    def render(self, entry: LogEntry) -> str:
        return json.dumps(entry.to_dict(), default=str)


class TextFormatter(_EntryFormatter):
    """Human-readable lines with ids in brackets and fields as key=value."""

    def render(self, entry: LogEntry) -> str:
        return entry.to_text()


# ============================================================================
# Loggers
# ============================================================================


class StructuredLogger(logging.LoggerAdapter):
    """Logger whose extra keyword arguments become structured fields.

    ``log.info("Spawned", pid=42)`` renders ``pid`` as its own JSON key (or
    ``pid=42`` in text output).
    """

    def __init__(self, name: str):
        super().__init__(logging.getLogger(name), {})

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        fields = {key: kwargs.pop(key) for key in list(kwargs) if key not in _LOGGING_KWARGS}
        extra = dict(kwargs.get("extra") or {})
        extra["structured_fields"] = fields
        kwargs["extra"] = extra
        return msg, kwargs

    def context(self, **fields: Any) -> LogContext:
        return LogContext(**fields)


@functools.lru_cache(maxsize=None)
def get_logger(name: str) -> StructuredLogger:
    """Cached StructuredLogger for ``name`` (typically ``__name__``)."""
    return StructuredLogger(name)


# ============================================================================
# Setup
# ============================================================================


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "").strip()
    return int(value) if value.isdigit() else default


def configure_logging(
    level: Optional[str] = None,
    json_output: Optional[bool] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Install handlers on the root logger, replacing any existing ones.

    Unset arguments fall back to the environment:
        HYPERHARNESS_LOG_LEVEL: DEBUG, INFO, WARNING or ERROR (default INFO)
        HYPERHARNESS_LOG_FORMAT: "json" or "text" (default text)
        HYPERHARNESS_LOG_FILE: Also write to this file, rotated
        HYPERHARNESS_LOG_MAX_BYTES / HYPERHARNESS_LOG_BACKUP_COUNT: Rotation

    Console output goes to stderr; the CLI writes its events to stdout.
    """
    level_name = (level or os.environ.get("HYPERHARNESS_LOG_LEVEL") or "INFO").upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    if json_output is None:
        json_output = os.environ.get("HYPERHARNESS_LOG_FORMAT", "text").lower() == "json"
    formatter: logging.Formatter = JSONFormatter() if json_output else TextFormatter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_path = log_file or os.environ.get("HYPERHARNESS_LOG_FILE")
    if file_path:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                file_path,
                maxBytes=_env_int("HYPERHARNESS_LOG_MAX_BYTES", DEFAULT_MAX_BYTES),
                backupCount=_env_int("HYPERHARNESS_LOG_BACKUP_COUNT", DEFAULT_BACKUP_COUNT),
            )
        )

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        root.addHandler(handler)
    root.setLevel(log_level)

    logging.getLogger("hyperharness").setLevel(log_level)
    # One line per bridge request is noise even at DEBUG
    logging.getLogger("aiohttp.access").setLevel(max(log_level, logging.WARNING))


__all__ = [
    "ID_KEYS",
    "LogEntry",
    "JSONFormatter",
    "TextFormatter",
    "StructuredLogger",
    "LogContext",
    "set_context",
    "get_context",
    "clear_context",
    "get_logger",
    "configure_logging",
]
