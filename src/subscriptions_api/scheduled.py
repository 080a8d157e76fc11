"""Scheduled Lambda entry points.

expire_pending_handler is invoked by an EventBridge schedule rule (hourly is
plenty for the default three-hour approval window). It reconciles every
PENDING subscription older than the window so abandoned approvals expire
without the subscriber returning.
"""

import asyncio
import os
from collections import Counter
from datetime import datetime
from typing import Any

from subscriptions.utils.logging import configure_logging, get_logger
from subscriptions_api.dependencies import get_orchestrator

configure_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = get_logger(__name__)

# One loop per container: the shared httpx client stays bound to it across warm invocations
_loop = asyncio.new_event_loop()


def expire_pending_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """EventBridge scheduled event handler.

    Args:
        event: Scheduled event; its "time" field is used as the reference time
        context: Lambda context (unused)

    Returns:
        Count of checked subscriptions per transition result
    """
    now = _event_time(event)
    outcomes = _loop.run_until_complete(get_orchestrator().expire_stale_pending(now))
    results = Counter(outcome.result.value for outcome in outcomes)
    logger.info("Pending sweep checked %d subscriptions: %s", len(outcomes), dict(results))
    return {"checked": len(outcomes), "results": dict(results)}


def _event_time(event: dict[str, Any]) -> datetime | None:
    raw = event.get("time")
    if not isinstance(raw, str):
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Ignoring unparseable event time %r", raw)
        return None
