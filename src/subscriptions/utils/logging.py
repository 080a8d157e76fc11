"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for request tracing
- Structured logging formatter for consistent log output
- Helper functions for provider call and webhook logging

Usage:
    from subscriptions.utils.logging import get_logger, set_correlation_id

    # In middleware/request handler:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    logger.info("Creating plan", extra={"plan_name": "Premium"})

Never pass client secrets, access tokens, transmission signatures or
subscription metadata to these helpers.
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

# Context variable for correlation ID - thread-safe and async-safe
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def generate_correlation_id() -> str:
    """Generate a new correlation ID.

    Returns:
        UUID-based correlation ID string
    """
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        The correlation ID that was set
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    """Get the current correlation ID.

    Returns:
        Current correlation ID or None if not set
    """
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID context."""
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation_id to the log record.

        Args:
            record: Log record to modify

        Returns:
            True (always allows the record through)
        """
        record.correlation_id = get_correlation_id() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter for structured log output with correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with structured fields.

        Args:
            record: Log record to format

        Returns:
            Formatted log string
        """
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "no-correlation-id"

        base = super().format(record)

        # Correlation ID prefix for easy grep/filtering
        return f"[{record.correlation_id}] {base}"


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once; an existing structured handler is reused.

    Args:
        level: Root log level
    """
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if isinstance(handler.formatter, StructuredFormatter):
            return
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(LOG_FORMAT))
    handler.addFilter(CorrelationIdFilter())
    root.addHandler(handler)


def log_provider_call(
    logger: logging.Logger,
    operation: str,
    *,
    method: str,
    path: str,
    attempt: int | None = None,
    status_code: int | None = None,
    idempotency_key: str | None = None,
    debug_id: str | None = None,
    error: str | None = None,
    retrying: bool = False,
    **extra: Any,
) -> None:
    """Log an outbound provider call with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "execute", "mint_token")
        method: HTTP method
        path: API path (no query secrets)
        attempt: 1-based attempt number
        status_code: HTTP status if a response arrived
        idempotency_key: PayPal-Request-Id of the logical operation
        debug_id: PayPal debug_id from an error body
        error: Error description if the attempt failed
        retrying: Whether another attempt will follow
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "operation": operation,
        "method": method,
        "path": path,
    }

    if attempt is not None:
        context["attempt"] = attempt
    if status_code is not None:
        context["status_code"] = status_code
    if idempotency_key:
        context["idempotency_key"] = idempotency_key
    if debug_id:
        context["debug_id"] = debug_id
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Provider call: {operation} {method} {path}"]
    for key, value in context.items():
        if key not in ("operation", "method", "path"):
            msg_parts.append(f"{key}={value}")

    message = " | ".join(msg_parts)

    if error and not retrying:
        logger.error(message, extra=context)
    elif error:
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_webhook_event(
    logger: logging.Logger,
    event_type: str | None,
    event_id: str | None,
    *,
    provider_subscription_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a webhook event with structured context.

    Args:
        logger: Logger instance
        event_type: PayPal event type (e.g., "BILLING.SUBSCRIPTION.ACTIVATED")
        event_id: PayPal event ID
        provider_subscription_id: Subscription the event refers to, if known
        result: Processing result (processed, duplicate, ignored, rejected, ...)
        error: Error message if processing failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "event_type": event_type,
        "event_id": event_id,
    }

    if provider_subscription_id:
        context["provider_subscription_id"] = provider_subscription_id
    if result:
        context["result"] = result
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Webhook event: {event_type} ({event_id})"]
    if result:
        msg_parts.append(f"result={result}")
    if provider_subscription_id:
        msg_parts.append(f"subscription={provider_subscription_id}")
    if error:
        msg_parts.append(f"error={error}")
    for key, value in extra.items():
        msg_parts.append(f"{key}={value}")

    message = " | ".join(msg_parts)

    if result == "error":
        logger.error(message, extra=context)
    elif result in ("rejected", "ignored", "unknown_subscription", "malformed"):
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)
