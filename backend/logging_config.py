"""
Trip Reconciler - Structured Logging

JSON log records for production, plain text for development.

Every record is stamped with the trigger that started the work:
- "http"           a request to one of the API endpoints (with its request id)
- "vehicle_change" a debounced vehicle reconciliation
- "schedule"       a scheduled archive run

Reconciliation audit events (see log_reconciliation_event) pass their fields
through `extra=`; the JSON formatter groups them under "audit".
"""

import json
import logging
import os
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional


AUDIT_FIELDS = ("event", "subject_id", "details", "actor", "timestamp")

_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message", "asctime", "request_id", "trigger"
}

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_trigger: ContextVar[Optional[str]] = ContextVar("trigger", default=None)


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line, for log aggregation.
    """

    def __init__(self, service_name: str = "trip-reconciler"):
        super().__init__()
        self.service_name = service_name
        self.environment = os.environ.get("ENVIRONMENT", "development")
        self.hostname = os.environ.get("HOSTNAME", "unknown")

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
            "hostname": self.hostname,
            "trigger": getattr(record, "trigger", None),
            "request_id": getattr(record, "request_id", None),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        if record.exc_info and record.exc_info[0]:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        audit = {}
        extra = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            if key in AUDIT_FIELDS:
                audit[key] = value
            else:
                extra[key] = value

        if audit:
            log_data["audit"] = audit
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


class TriggerContextFilter(logging.Filter):
    """Copies the current trigger and request id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trigger = _trigger.get()
        record.request_id = _request_id.get()
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    service_name: str = "trip-reconciler"
) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production)
        service_name: Service name for log aggregation

    Returns:
        Configured root logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(TriggerContextFilter())

    if json_format:
        handler.setFormatter(JSONFormatter(service_name=service_name))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(trigger)s] %(message)s"
        ))

    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)


def set_request_context(request_id: Optional[str] = None):
    """Mark the current request as the source of subsequent log records."""
    _trigger.set("http")
    _request_id.set(request_id)


def set_trigger_context(trigger: str):
    """Mark a background trigger ("vehicle_change", "schedule") as the source."""
    _trigger.set(trigger)
    _request_id.set(None)


def clear_request_context():
    _trigger.set(None)
    _request_id.set(None)
