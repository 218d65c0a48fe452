"""Structured logging configuration.

Logs go to stderr either as one JSON object per line (default) or as
human-readable text. Every record emitted while a request is being handled
carries that request's correlation fields (``request_id``, ``method``,
``path`` and the routing ``outcome``).

Usage:
    from edge_proxy.logging_config import setup_logging, get_logger, set_context

    setup_logging()
    logger = get_logger(__name__)

    set_context(request_id="req-123")
    logger.info("Proxy target: https://raw.githubusercontent.com/o/r/b/x")
    # {"timestamp": "...", "level": "INFO", "message": "Proxy target: ...",
    #  "request_id": "req-123", ...}

    clear_context()
"""

import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Optional

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_extra_context: ContextVar[dict] = ContextVar("extra_context", default={})

# Configuration from environment
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")  # "json" or "text"
LOG_INCLUDE_TIMESTAMP = os.environ.get("LOG_INCLUDE_TIMESTAMP", "true").lower() == "true"
LOG_INCLUDE_LOCATION = os.environ.get("LOG_INCLUDE_LOCATION", "true").lower() == "true"

REQUEST_ID_HEADER = "X-Request-ID"

# LogRecord attributes that are not user-supplied extras
_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
}


def set_context(request_id: Optional[str] = None, **extra: Any) -> None:
    """Set correlation context for the current request.

    Args:
        request_id: Unique request identifier for tracing.
        **extra: Additional context fields to include in logs.
    """
    if request_id is not None:
        _request_id.set(request_id)
    if extra:
        current = _extra_context.get()
        _extra_context.set({**current, **extra})


def get_context() -> dict[str, Any]:
    """Return the current correlation context."""
    context = {}
    request_id = _request_id.get()
    if request_id:
        context["request_id"] = request_id
    extra = _extra_context.get()
    if extra:
        context.update(extra)
    return context


def clear_context() -> None:
    """Clear all correlation context for the current request."""
    _request_id.set(None)
    _extra_context.set({})


def _format_timestamp(record: logging.LogRecord) -> str:
    return time.strftime(
        "%Y-%m-%dT%H:%M:%S",
        time.gmtime(record.created),
    ) + f".{int(record.msecs * 1000):06d}Z"


class JSONFormatter(logging.Formatter):
    """JSON log formatter with correlation ID support.

    Produces logs in the format:
    {
        "timestamp": "2024-01-15T10:30:00.123456Z",
        "level": "INFO",
        "logger": "edge_proxy.router",
        "message": "Proxy target: https://...",
        "request_id": "req-123",
        "location": "router.py:42:route",
        "outcome": "non-root-success"
    }
    """

    def __init__(self, include_timestamp: bool = True, include_location: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {}

        if self.include_timestamp:
            log_dict["timestamp"] = _format_timestamp(record)

        log_dict["level"] = record.levelname
        log_dict["logger"] = record.name
        log_dict["message"] = record.getMessage()
        log_dict.update(get_context())

        if self.include_location:
            log_dict["location"] = f"{record.filename}:{record.lineno}:{record.funcName}"

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                log_dict[key] = value

        return json.dumps(log_dict, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter.

    2024-01-15T10:30:00.123456Z INFO [edge_proxy.router] [req-123] Proxy target: https://...
    """

    def __init__(self, include_timestamp: bool = True, include_location: bool = False):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        parts = []
        if self.include_timestamp:
            parts.append(_format_timestamp(record))

        parts.append(record.levelname)
        parts.append(f"[{record.name}]")

        request_id = _request_id.get()
        if request_id:
            parts.append(f"[{request_id}]")

        parts.append(record.getMessage())

        if self.include_location:
            parts.append(f"({record.filename}:{record.lineno})")

        result = " ".join(parts)
        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)
        return result


def setup_logging(
    level: Optional[str] = None,
    format_type: Optional[str] = None,
    include_timestamp: Optional[bool] = None,
    include_location: Optional[bool] = None,
) -> None:
    """Configure the root logger.

    Args:
        level: Log level name. Defaults to LOG_LEVEL or INFO.
        format_type: "json" or "text". Defaults to LOG_FORMAT or "json".
        include_timestamp: Defaults to LOG_INCLUDE_TIMESTAMP or True.
        include_location: Defaults to LOG_INCLUDE_LOCATION or True.
    """
    level = level or LOG_LEVEL
    format_type = format_type or LOG_FORMAT
    if include_timestamp is None:
        include_timestamp = LOG_INCLUDE_TIMESTAMP
    if include_location is None:
        include_location = LOG_INCLUDE_LOCATION

    if format_type.lower() == "json":
        formatter = JSONFormatter(
            include_timestamp=include_timestamp,
            include_location=include_location,
        )
    else:
        formatter = TextFormatter(
            include_timestamp=include_timestamp,
            include_location=include_location,
        )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # urllib3 logs every connection at DEBUG; keep it at WARNING unless asked
    if root_logger.level > logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)


def generate_request_id() -> str:
    """Generate a unique request ID (UUID4)."""
    return str(uuid.uuid4())


def flask_request_middleware(app):
    """Add request logging hooks to a Flask app.

    - Uses the inbound X-Request-ID header or generates a request id
    - Sets logging context with request_id, method and path
    - Logs request start and completion with duration

    Response headers are not modified.

    Args:
        app: Flask application instance.
    """
    logger = get_logger("edge_proxy.http")

    @app.before_request
    def before_request():
        from flask import g, request

        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        g.request_id = request_id
        set_context(request_id=request_id, method=request.method, path=request.path)
        logger.info(f"{request.method} {request.path}", extra={"event": "request_start"})
        g.request_start_time = time.time()

    @app.after_request
    def after_request(response):
        from flask import g, request

        duration_ms = None
        if hasattr(g, "request_start_time"):
            duration_ms = (time.time() - g.request_start_time) * 1000

        logger.info(
            f"{request.method} {request.path} -> {response.status_code}",
            extra={
                "event": "request_complete",
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response

    @app.teardown_request
    def teardown_request(exception=None):
        clear_context()
        if exception:
            logger.error(f"Request failed with exception: {exception}", exc_info=True)
