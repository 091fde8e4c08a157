"""
Structured JSON logging for the approval kernel.

Every record under the ``approval_kernel`` logger becomes one JSON line:

    {"ts": ..., "level": "INFO", "logger": "approval_kernel.services...",
     "message": "approval_level_approved", "request_id": ..., "actor_id": ...,
     "tenant_id": ..., "approval_level": 1, "next_approver_id": 12}

The engine binds ``request_id``, ``actor_id`` and ``tenant_id`` for the
duration of each transition with ``LogContext.bind``; those keys win over
an ``extra=`` key of the same name.  Kernel errors logged with
``exc_info`` are expanded into ``exc_*`` fields.
"""

__all__ = [
    "CONTEXT_FIELDS",
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

from approval_kernel.exceptions import ApprovalKernelError

CONTEXT_FIELDS = ("request_id", "actor_id", "tenant_id")

_EMPTY: Mapping[str, str] = MappingProxyType({})

_context: ContextVar[Mapping[str, str]] = ContextVar(
    "approval_log_context", default=_EMPTY
)


class LogContext:
    """Transition-scoped log fields, carried in a single context var."""

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Layer ``fields`` over the current context until the block exits.

        Values are stringified and ``None`` values are skipped.  Only
        ``CONTEXT_FIELDS`` may be bound.
        """
        unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
        if unknown:
            raise TypeError(f"unknown log context field: {unknown[0]}")
        merged = dict(_context.get())
        merged.update((k, str(v)) for k, v in fields.items() if v is not None)
        token = _context.set(MappingProxyType(merged))
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    return repr(obj)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, ApprovalKernelError):
        fields["exc_code"] = exc.code
        fields.update(
            (f"exc_{k}", v) for k, v in vars(exc).items() if not k.startswith("_")
        )
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: header, bound context, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_error_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "approval_kernel"
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach the JSON handler to ``approval_kernel``; no-op once attached."""
    root = logging.getLogger(_LOGGER_PREFIX)
    with _lock:
        if root.handlers:
            return
        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        root.addHandler(handler)
        root.setLevel(level)
        root.propagate = False


def reset_logging() -> None:
    """Detach every handler from ``approval_kernel``. Tests only."""
    root = logging.getLogger(_LOGGER_PREFIX)
    with _lock:
        root.handlers.clear()
        root.setLevel(logging.WARNING)
