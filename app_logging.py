"""Centralised JSON logging configuration and helpers.

Log records are emitted as single-line JSON objects so they can be ingested
by log aggregators. Per-request context (correlation ID, route, the
authenticated user) is kept in context variables and merged into every record
written while the request is being handled.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

# ---------------------------------------------------------------------------
# Context management
# ---------------------------------------------------------------------------

_request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)
_request_context_ctx: contextvars.ContextVar[Optional[Dict[str, Any]]] = (
    contextvars.ContextVar("request_context", default=None)
)

_REDACTED = "[REDACTED]"
_SENSITIVE_FIELDS = {
    field.strip().lower()
    for field in os.environ.get(
        "SENSITIVE_FIELDS", "password,token,authorization,email"
    ).split(",")
    if field.strip()
}

_JSON_LOG_FIELDS = (
    "ts",
    "level",
    "logger",
    "msg",
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "client_ip",
    "route",
    "user_id",
    "role",
    "error_type",
    "error",
    "stack",
    "extra_context",
)

# Fields lifted from the record itself when a caller passes them via ``extra``.
_PROMOTED_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "client_ip",
    "route",
    "user_id",
    "role",
    "error_type",
    "error",
)


def get_request_id() -> Optional[str]:
    """Return the correlation ID for the current request, if any."""

    return _request_id_ctx.get()


def set_request_id(request_id: str) -> None:
    """Associate a correlation ID with the current context."""

    _request_id_ctx.set(request_id)
    merge_request_context(request_id=request_id)


def clear_request_id() -> None:
    _request_id_ctx.set(None)


def get_request_context() -> Dict[str, Any]:
    """Return contextual information about the current request."""

    ctx = _request_context_ctx.get()
    if ctx is None:
        ctx = {}
        _request_context_ctx.set(ctx)
    return ctx


def merge_request_context(**kwargs: Any) -> None:
    """Merge key/value pairs into the current request context.

    ``None`` values are ignored so callers can pass optional attributes
    without checking them first.
    """

    ctx = dict(get_request_context())
    for key, value in kwargs.items():
        if value is not None:
            ctx[key] = value
    _request_context_ctx.set(ctx)


def clear_request_context() -> None:
    _request_context_ctx.set({})


def bind_identity(user_id: str, role: str) -> None:
    """Attach the authenticated caller to every log line of this request."""

    merge_request_context(user_id=user_id, role=role)


# ---------------------------------------------------------------------------
# Redaction helpers
# ---------------------------------------------------------------------------

def sensitive_fields() -> Iterable[str]:
    return _SENSITIVE_FIELDS


def redact_sensitive_data(data: Any, fields: Optional[Iterable[str]] = None) -> Any:
    """Redact sensitive values from mappings or sequences.

    Works recursively through nested dictionaries and lists; keys are compared
    case-insensitively. Scalars are returned unchanged.
    """

    fields_set = {field.lower() for field in (fields or sensitive_fields())}

    if isinstance(data, Mapping):
        redacted: Dict[Any, Any] = {}
        for key, value in data.items():
            if str(key).lower() in fields_set:
                redacted[key] = _REDACTED
            else:
                redacted[key] = redact_sensitive_data(value, fields_set)
        return redacted
    if isinstance(data, (list, tuple, set)):
        return [redact_sensitive_data(item, fields_set) for item in data]
    return data


# ---------------------------------------------------------------------------
# JSON logging infrastructure
# ---------------------------------------------------------------------------

class JSONFormatter(logging.Formatter):
    """Formatter that renders log records as single-line JSON objects."""

    # Attributes populated by logging.LogRecord that we do not want to surface
    _RESERVED = {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "ts": timestamp.isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": get_request_id(),
            "stack": None,
            "extra_context": None,
        }

        for key, value in get_request_context().items():
            if key not in payload or payload[key] is None:
                payload[key] = value

        for field in _PROMOTED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["error_type"] = record.exc_info[0].__name__
            payload["error"] = str(record.exc_info[1])
            payload["stack"] = self.formatException(record.exc_info)
        elif getattr(record, "stack_info", None):
            payload["stack"] = record.stack_info

        extra: Dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in self._RESERVED or key in payload or key.startswith("_"):
                continue
            extra[key] = value

        if extra:
            payload["extra_context"] = redact_sensitive_data(extra)

        for field in _JSON_LOG_FIELDS:
            payload.setdefault(field, None)

        return json.dumps(payload, default=_json_default, separators=(",", ":"))


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


_configured = False


def configure_logging() -> None:
    """Configure root logging with a JSON formatter."""

    global _configured
    if _configured:
        return

    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JSONFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]
    logging.captureWarnings(True)

    # Request/response lines come from our middleware, not the servers.
    for noisy_logger in (
        "gunicorn",
        "gunicorn.access",
        "gunicorn.error",
        "werkzeug",
        "sqlalchemy.engine",
    ):
        log = logging.getLogger(noisy_logger)
        log.handlers = []
        log.propagate = True
        log.setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger instance using the configured JSON formatter."""

    configure_logging()
    return logging.getLogger(name)


__all__ = [
    "JSONFormatter",
    "bind_identity",
    "clear_request_context",
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "get_request_context",
    "get_request_id",
    "merge_request_context",
    "redact_sensitive_data",
    "sensitive_fields",
    "set_request_id",
]
