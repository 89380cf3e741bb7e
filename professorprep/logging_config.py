"""
Logging for the mastery and quota service.

Every record carries the service's correlation fields:
- request_id, from RequestIdMiddleware
- user_id, from the authenticated caller (bound by the auth dependency)
- student_id, objective_id and feature, when passed via extra=

Development output is one line with those fields appended as key=value.
Production output is one JSON object per line with the same fields at the top
level and any other extra= values nested under "extra".

Usage:
    from professorprep.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Mastery updated", extra={"objective_id": objective_id})
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

# Correlation fields, in output order
CONTEXT_FIELDS = ("request_id", "user_id", "student_id", "objective_id", "feature")

HANDLER_NAME = "professorprep"

_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "redis": logging.WARNING,
}

# Attributes every LogRecord has; anything else came from extra=
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


def bind_user_id(user_id: str) -> None:
    """Attach the caller's user ID to every record logged for this request."""
    user_id_var.set(user_id)


class ServiceContextFilter(logging.Filter):
    """Fill the correlation fields on each record, None where unknown."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()
        if getattr(record, "user_id", None) is None:
            record.user_id = user_id_var.get()
        for field in ("student_id", "objective_id", "feature"):
            if not hasattr(record, field):
                setattr(record, field, None)
        return True


def _context(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        field: getattr(record, field)
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }


def _extra(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_ATTRS and key not in CONTEXT_FIELDS and value is not None
    }


def _jsonable(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """One JSON object per line: fixed keys, correlation fields, then extra."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_obj.update(_context(record))

        extra = {key: _jsonable(value) for key, value in _extra(record).items()}
        if extra:
            log_obj["extra"] = extra
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_obj)


class DevFormatter(logging.Formatter):
    """Human-readable line with correlation fields appended as key=value."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-5s [%(name)s] %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = {**_context(record), **_extra(record)}
        if not fields:
            return line
        suffix = " ".join(f"{key}={value}" for key, value in fields.items())
        # Traceback stays last
        head, sep, tail = line.partition("\n")
        return f"{head} | {suffix}{sep}{tail}"


def configure_logging(
    *,
    log_level: str = "INFO",
    environment: str = "development",
    debug: bool = False,
) -> None:
    """
    Install the service handler on the root logger.

    Calling again (e.g. on reload) replaces the service handler and leaves any
    other handlers, such as pytest's capture handler, in place.
    """
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for existing in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(HANDLER_NAME)
    handler.setLevel(level)
    handler.addFilter(ServiceContextFilter())
    handler.setFormatter(JsonFormatter() if environment == "production" else DevFormatter())
    root.addHandler(handler)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
