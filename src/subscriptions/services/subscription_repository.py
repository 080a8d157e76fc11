"""Subscription persistence with encryption at rest.

Items in the subscriptions table never hold the provider subscription ID,
the subscriber e-mail or the provider metadata in plaintext. The provider ID
is stored encrypted plus as a blind index (provider_subscription_hash). A
guard item keyed by that hash, written in the same transaction as the record,
enforces uniqueness and resolves provider IDs with a consistent read.
PENDING records are found by age through the status-index GSI.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from subscriptions.models import (
    DuplicateSubscription,
    Subscription,
    SubscriptionStatus,
)

from .dynamodb import DynamoDBService
from .metadata_cipher import MetadataCipher, blind_index, decrypt_text, encrypt_text

logger = logging.getLogger(__name__)

SUBSCRIPTIONS_TABLE = "subscriptions"
STATUS_INDEX = "status-index"
GUARD_PREFIX = "PROVIDER#"


class SubscriptionRepository:
    """Stores subscriptions in DynamoDB.

    Usage:
        repo = SubscriptionRepository(get_dynamodb_service(), cipher, index_key)
        repo.create(subscription)
        current = repo.find_by_provider_id("I-BW452GLLEP1G")
        repo.update_status(current.subscription_id, SubscriptionStatus.ACTIVE,
                           expected_status=SubscriptionStatus.PENDING)
    """

    def __init__(
        self,
        dynamodb: DynamoDBService,
        cipher: MetadataCipher,
        index_key: bytes,
    ) -> None:
        """Initialize repository.

        Args:
            dynamodb: Table access
            cipher: Encryption for sensitive fields
            index_key: HMAC key for the provider ID blind index
        """
        self._db = dynamodb
        self._cipher = cipher
        self._index_key = index_key

    def provider_hash(self, provider_subscription_id: str) -> str:
        """Blind index of a provider subscription ID."""
        return blind_index(provider_subscription_id, self._index_key)

    def create(self, subscription: Subscription) -> None:
        """Persist a new subscription.

        Args:
            subscription: Record to store

        Raises:
            DuplicateSubscription: If the subscription ID or provider ID exists
        """
        provider_hash = self.provider_hash(subscription.provider_subscription_id)
        item = self._to_item(subscription, provider_hash)
        guard = {
            "subscription_id": f"{GUARD_PREFIX}{provider_hash}",
            "owner_subscription_id": subscription.subscription_id,
        }

        created = self._db.insert_all(
            SUBSCRIPTIONS_TABLE, [item, guard], key_attribute="subscription_id"
        )
        if not created:
            logger.warning(
                "Duplicate subscription rejected: %s", subscription.subscription_id
            )
            raise DuplicateSubscription(
                details={"subscription_id": subscription.subscription_id}
            )

        logger.info(
            "Subscription %s stored with status %s",
            subscription.subscription_id,
            subscription.status.value,
        )

    def get(self, subscription_id: str) -> Subscription | None:
        """Read a subscription by local ID (strongly consistent).

        Returns:
            Subscription or None if not found
        """
        if subscription_id.startswith(GUARD_PREFIX):
            return None
        item = self._db.read(SUBSCRIPTIONS_TABLE, {"subscription_id": subscription_id})
        return self._from_item(item) if item else None

    def find_by_provider_id(self, provider_subscription_id: str) -> Subscription | None:
        """Look up a subscription by provider subscription ID.

        Reads the guard item and then the record it points to, both
        strongly consistent, so a record is visible as soon as create()
        returns.

        Returns:
            Subscription or None if not found
        """
        guard = self._db.read(
            SUBSCRIPTIONS_TABLE,
            {"subscription_id": f"{GUARD_PREFIX}{self.provider_hash(provider_subscription_id)}"},
        )
        if not guard:
            return None
        return self.get(guard["owner_subscription_id"])

    def find_pending_created_before(self, cutoff: datetime) -> list[Subscription]:
        """PENDING subscriptions created strictly before cutoff, oldest first.

        The index is eventually consistent; each hit is re-read and dropped
        unless it is still PENDING.
        """
        hits = self._db.query_before(
            SUBSCRIPTIONS_TABLE,
            STATUS_INDEX,
            partition=("status", SubscriptionStatus.PENDING.value),
            sort=("created_at", cutoff.astimezone(timezone.utc).isoformat()),
        )
        pending = []
        for hit in hits:
            subscription = self.get(hit["subscription_id"])
            if subscription and subscription.status == SubscriptionStatus.PENDING:
                pending.append(subscription)
        return pending

    def update_status(
        self,
        subscription_id: str,
        status: SubscriptionStatus,
        *,
        expected_status: SubscriptionStatus,
    ) -> bool:
        """Compare-and-set the status of a subscription.

        Args:
            subscription_id: Record to update
            status: New status
            expected_status: Status the record must still have

        Returns:
            True if updated, False if the record is missing or its status changed
        """
        return self._db.compare_and_set(
            SUBSCRIPTIONS_TABLE,
            {"subscription_id": subscription_id},
            attribute="status",
            expected=expected_status.value,
            updates={
                "status": status.value,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
        )

    def _to_item(self, subscription: Subscription, provider_hash: str) -> dict[str, Any]:
        item: dict[str, Any] = {
            "subscription_id": subscription.subscription_id,
            "user_id": subscription.user_id,
            "plan_id": subscription.plan_id,
            "status": subscription.status.value,
            "provider_subscription_hash": provider_hash,
            "provider_subscription_id_enc": encrypt_text(
                self._cipher, subscription.provider_subscription_id, "provider_subscription_id"
            ),
            "metadata_enc": encrypt_text(
                self._cipher, json.dumps(subscription.metadata, default=str), "metadata"
            ),
            "created_at": subscription.created_at.isoformat(),
            "updated_at": subscription.updated_at.isoformat(),
        }
        if subscription.subscriber_email:
            item["subscriber_email_enc"] = encrypt_text(
                self._cipher, subscription.subscriber_email, "subscriber_email"
            )
        return item

    def _from_item(self, item: dict[str, Any]) -> Subscription:
        email_enc = item.get("subscriber_email_enc")
        return Subscription(
            subscription_id=item["subscription_id"],
            user_id=item["user_id"],
            plan_id=item["plan_id"],
            status=SubscriptionStatus(item["status"]),
            provider_subscription_id=decrypt_text(
                self._cipher, item["provider_subscription_id_enc"], "provider_subscription_id"
            ),
            metadata=json.loads(decrypt_text(self._cipher, item["metadata_enc"], "metadata")),
            subscriber_email=(
                decrypt_text(self._cipher, email_enc, "subscriber_email") if email_enc else None
            ),
            created_at=datetime.fromisoformat(item["created_at"]),
            updated_at=datetime.fromisoformat(item["updated_at"]),
        )
