"""
Structured JSON logging for the inventory pipeline.

Every record is one JSON line: ``ts``, ``level``, ``logger``, ``message``,
then the bound ``LogContext`` fields, then the record's ``extra`` keys.
Messages are snake_case event names (``items_added``, ``task_run_failed``).

Context is held in a single ContextVar, so it follows the current thread or
asyncio task.  Only the names in ``LogContext.FIELDS`` can be bound.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Iterator

_LOGGER_PREFIX = "inventory_kernel"

# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

_context: ContextVar[dict[str, str] | None] = ContextVar("inventory_log_context", default=None)


class LogContext:
    """Request-, event- or task-scoped fields added to every record."""

    FIELDS = ("correlation_id", "event_id", "product_id", "order_id", "job_id", "task")

    @classmethod
    def _merged(cls, values: dict[str, Any]) -> dict[str, str]:
        merged = dict(_context.get() or {})
        for name, value in values.items():
            if name in cls.FIELDS and value is not None:
                merged[name] = str(value)
        return merged

    @classmethod
    def set(cls, **values: Any) -> None:
        """Update the named fields; None values and unknown names are ignored."""
        _context.set(cls._merged(values))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get() or {})

    @classmethod
    def clear(cls) -> None:
        _context.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **values: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the ``with`` block, then restore what was there."""
        token = _context.set(cls._merged(values))
        try:
            yield cls
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RESERVED_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)
        return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Exceptions add ``exc_type``, ``exc_message`` and ``traceback``; kernel
    errors also add ``exc_code`` and one ``exc_<field>`` per public attribute.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, value in vars(record).items():
            if key not in _RESERVED_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            for key, value in vars(exc).items():
                if not key.startswith("_"):
                    payload[f"exc_{key}"] = value
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``inventory_kernel`` logger.  Idempotent."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False
    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root.addHandler(h)


def reset_logging() -> None:
    """Drop handlers and the configured flag (tests only)."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
