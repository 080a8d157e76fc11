"""Log of processed PayPal webhook events.

Used for replay detection (an event ID is processed at most once) and as an
audit trail. Only hashes of the payload and resource ID are stored.
"""

import hashlib
import logging
from datetime import datetime, timedelta, timezone

from subscriptions.models import ProcessedWebhookEvent

from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)

WEBHOOK_EVENTS_TABLE = "webhook-events"

# PayPal retries deliveries for up to 3 days; keep entries well beyond that
EVENT_RETENTION = timedelta(days=30)


class WebhookEventLog:
    """Records processed webhook events in DynamoDB."""

    def __init__(self, dynamodb: DynamoDBService) -> None:
        self._db = dynamodb

    def is_processed(self, event_id: str) -> bool:
        """Check if webhook event was already processed (idempotency).

        Args:
            event_id: PayPal event ID (WH-xxx)

        Returns:
            True if event was already processed
        """
        return self._db.read(WEBHOOK_EVENTS_TABLE, {"event_id": event_id}) is not None

    def record(
        self,
        event_id: str,
        event_type: str,
        raw_body: bytes,
        processing_result: str,
        resource_hash: str | None = None,
    ) -> bool:
        """Log webhook event for idempotency and audit trail.

        Args:
            event_id: PayPal event ID
            event_type: Event type (BILLING.SUBSCRIPTION.ACTIVATED, etc.)
            raw_body: Delivery body, hashed before storage
            processing_result: Outcome of handling the event
            resource_hash: Blind index of the provider subscription ID

        Returns:
            True if recorded, False if another delivery recorded it first
        """
        now = datetime.now(timezone.utc)
        entry = ProcessedWebhookEvent(
            event_id=event_id,
            event_type=event_type,
            processed_at=now,
            payload_hash=hashlib.sha256(raw_body).hexdigest(),
            resource_hash=resource_hash,
            processing_result=processing_result,
            expires_at=int((now + EVENT_RETENTION).timestamp()),
        )
        item = entry.model_dump(mode="json", exclude_none=True)

        recorded = self._db.insert(WEBHOOK_EVENTS_TABLE, item, key_attribute="event_id")
        if not recorded:
            logger.info("Webhook event %s already recorded", event_id)
        return recorded
