"""
Trip Reconciler - Sentry Integration

Error tracking for failures that never reach an HTTP caller: debounced vehicle
reconciliations and scheduled archive runs. Both swallow their exceptions, so
capture_exception is the only way those failures surface outside the logs.

Trip and vehicle documents carry passenger biography, phone and payment
fields; they are redacted from every event before it leaves the process.
"""

import os
import logging
from typing import Optional, Dict, Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

_sentry_enabled = False

# Substrings of field names, matched case-insensitively
SENSITIVE_FIELDS = (
    "password", "token", "secret", "authorization", "cookie",
    "firstname", "lastname", "phone", "email", "nextofkin",
    "address", "payment",
)

# Context keys promoted to searchable tags instead of extras
TAG_FIELDS = ("vehicle_id", "trip_id", "job")

REDACTED = "[REDACTED]"


def init_sentry(
    dsn: Optional[str] = None,
    environment: str = "development",
    release: Optional[str] = None,
    traces_sample_rate: float = 0.0,
) -> bool:
    """
    Initialize Sentry error tracking.

    Args:
        dsn: Sentry DSN (SENTRY_DSN environment variable if not provided)
        environment: Environment name (production, staging, development)
        release: Release version
        traces_sample_rate: Performance tracing sample rate

    Returns:
        True if Sentry was initialized, False otherwise
    """
    global _sentry_enabled

    dsn = dsn or os.environ.get("SENTRY_DSN", "")
    if not dsn:
        logger.info("Sentry DSN not configured. Error tracking disabled.")
        return False

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            release=release or os.environ.get("GIT_SHA", "unknown"),
            traces_sample_rate=traces_sample_rate,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
            ],
            send_default_pii=False,
            before_send=filter_sensitive_data,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False

    _sentry_enabled = True
    logger.info(f"Sentry initialized for environment: {environment}")
    return True


def _is_sensitive(key: str) -> bool:
    key = key.lower().replace("_", "")
    return any(field in key for field in SENSITIVE_FIELDS)


def redact(value: Any) -> Any:
    """Copy of `value` with sensitive fields replaced, at any nesting depth."""
    if isinstance(value, dict):
        return {
            key: REDACTED if isinstance(key, str) and _is_sensitive(key) else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [redact(item) for item in value]
    return value


def filter_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """before_send hook: strip passenger data from request bodies and extras."""
    request = event.get("request")
    if isinstance(request, dict):
        for section in ("headers", "data", "cookies"):
            if section in request:
                request[section] = redact(request[section])

    if "extra" in event:
        event["extra"] = redact(event["extra"])

    return event


def capture_exception(exception: Exception, **context) -> Optional[str]:
    """
    Report an exception that is handled without reaching a caller.

    Args:
        exception: The exception to capture
        **context: vehicle_id / trip_id / job become tags, anything else extras

    Returns:
        Event ID if captured, None otherwise
    """
    if not _sentry_enabled:
        return None

    try:
        with sentry_sdk.new_scope() as scope:
            for key, value in context.items():
                if key in TAG_FIELDS:
                    scope.set_tag(key, str(value))
                else:
                    scope.set_extra(key, value)
            return sentry_sdk.capture_exception(exception)
    except Exception as e:
        logger.error(f"Failed to capture exception to Sentry: {e}")
        return None
