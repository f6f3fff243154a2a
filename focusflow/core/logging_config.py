"""
Logging setup for the FocusFlow API.

Production emits one JSON object per line, tagged with the service name and
deployment environment. Debug mode prints a short readable line instead.
Records logged while a request is in flight carry its correlation ID and,
once the bearer token has been verified, the caller's user ID.

Call setup_logging() once at app startup (in lifespan).
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from focusflow.core.config import get_settings

SERVICE_NAME = "focusflow-api"

# Passed through from `extra=` when present
CONTEXT_FIELDS = (
    "user_id",
    "room_id",
    "session_id",
    "endpoint",
    "path",
    "method",
    "status_code",
    "duration_ms",
)

DEBUG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s [%(correlation_id)s %(user_id)s]: %(message)s"

# Chatty at INFO/DEBUG; their warnings still get through
NOISY_LOGGERS = ("uvicorn.access", "watchfiles", "asyncio", "redis")


class RequestContextFilter(logging.Filter):
    """Tag every record with the current request's correlation ID and user."""

    def filter(self, record: logging.LogRecord) -> bool:
        # Import here to avoid circular imports
        from focusflow.core.middleware import get_correlation_id, get_request_user_id

        record.correlation_id = get_correlation_id() or "-"
        if getattr(record, "user_id", None) is None:
            record.user_id = get_request_user_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    def __init__(self, service: str = SERVICE_NAME, environment: str = "development"):
        super().__init__()
        self.service = service
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "environment": self.environment,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation_id = getattr(record, "correlation_id", "-")
        if correlation_id != "-":
            log_entry["correlation_id"] = correlation_id
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None and value != "-":
                log_entry[field] = value
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: Optional[str] = None) -> None:
    """Install the stdout handler on the root logger, replacing any others."""
    settings = get_settings()
    log_level = level or ("DEBUG" if settings.debug else "INFO")

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(RequestContextFilter())
    if settings.debug:
        handler.setFormatter(logging.Formatter(DEBUG_FORMAT, datefmt="%H:%M:%S"))
    else:
        handler.setFormatter(JSONFormatter(environment=settings.environment))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
