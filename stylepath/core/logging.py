"""
Structured logging for the progression engine.

Everything logs through the "stylepath" logger. Records carry the request id
of the HTTP request (or None outside one), plus the user id and operation
name when emitted through log_event(). Production renders one JSON object per
line; development renders a single readable line.
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional

LOGGER_NAME = "stylepath"

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Record attributes rendered by the formatters when set.
CONTEXT_FIELDS = (
    "user_id",
    "operation",
    "event_type",
    "error_code",
    "status",
    "method",
    "path",
    "latency_bucket",
)

_LATENCY_BUCKETS = (
    (10, "<10ms"),
    (100, "10-100ms"),
    (500, "100-500ms"),
    (1000, "500-1000ms"),
)

MAX_FIELD_LENGTH = 500


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return default if rid is None else rid


@contextmanager
def bound_request_id(rid: str) -> Iterator[str]:
    """Bind `rid` as the current request id for the duration of the block."""
    token = request_id_ctx_var.set(rid)
    try:
        yield rid
    finally:
        request_id_ctx_var.reset(token)


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    for upper, label in _LATENCY_BUCKETS:
        if latency_ms < upper:
            return label
    return ">=1000ms"


def _utc_timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _context_of(record: logging.LogRecord) -> Dict[str, object]:
    return {name: getattr(record, name) for name in CONTEXT_FIELDS if getattr(record, name, None) is not None}


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": _utc_timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        entry.update(_context_of(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        context = _context_of(record)
        rid = getattr(record, "request_id", None)
        if rid:
            context = {"rid": rid, **context}
        suffix = " ".join(f"{key}={value}" for key, value in context.items())
        line = f"{_utc_timestamp(record)} {record.levelname:<7} {record.getMessage()}"
        if suffix:
            line = f"{line} [{suffix}]"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(env: str = "development", level: int = logging.INFO) -> logging.Logger:
    """Install a single stdout handler on the stylepath logger. Safe to call repeatedly."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(RequestIdFilter())
    logger.handlers = [handler]
    # Propagate so pytest's caplog sees records
    logger.propagate = True

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    return logger


def _truncate(value) -> str:
    try:
        text = value if isinstance(value, str) else str(value)
    except Exception:
        return "<unserializable>"
    if len(text) > MAX_FIELD_LENGTH:
        return text[:MAX_FIELD_LENGTH] + "...<truncated>"
    return text


def log_event(
    level: str,
    msg: str,
    *,
    user_id: Optional[str] = None,
    operation: Optional[str] = None,
    request_id: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
) -> None:
    """Log `msg` with user/operation context; `extra` values are stringified and truncated."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    fields: Dict[str, object] = {
        "request_id": request_id or get_request_id(),
        "user_id": user_id,
        "operation": operation,
        "event_type": event_type,
        "error_code": error_code,
    }
    for key, value in (extra or {}).items():
        fields[key] = _truncate(value)

    logger.log(logging.getLevelName(level.upper()), msg, extra=fields)
