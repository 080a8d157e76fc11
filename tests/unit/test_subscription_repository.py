"""Unit tests for SubscriptionRepository with moto DynamoDB.

Test categories:
- Create and look up by provider ID
- Provider ID uniqueness
- Encryption at rest (no plaintext in stored items)
- Compare-and-set status updates
- Age queries over PENDING records
"""

from datetime import datetime, timedelta, timezone

import boto3
import pytest

from subscriptions.models import DuplicateSubscription, Subscription, SubscriptionStatus
from subscriptions.services import DynamoDBService, SubscriptionRepository


# === Test Configuration ===

PROVIDER_ID = "I-BW452GLLEP1G"
EMAIL = "jane.doe@example.com"
TABLE = "test-subscriptions-subscriptions"
CREATED_AT = datetime(2024, 2, 16, 20, 19, 9, tzinfo=timezone.utc)


def make_subscription(
    subscription_id: str = "SUB-0001",
    provider_id: str = PROVIDER_ID,
    created_at: datetime = CREATED_AT,
    status: SubscriptionStatus = SubscriptionStatus.PENDING,
) -> Subscription:
    return Subscription(
        subscription_id=subscription_id,
        user_id="user-123",
        provider_subscription_id=provider_id,
        plan_id="P-123",
        status=status,
        metadata={"id": provider_id, "status": "APPROVAL_PENDING", "plan_id": "P-123"},
        subscriber_email=EMAIL,
        created_at=created_at,
        updated_at=created_at,
    )


def scan_items() -> list[dict]:
    return boto3.client("dynamodb", region_name="eu-west-1").scan(TableName=TABLE)["Items"]


class TestCreateAndFind:
    """Tests for storing and reading subscriptions."""

    def test_find_by_provider_id_round_trips(self, repository: SubscriptionRepository) -> None:
        """A stored subscription is found by its provider ID with fields decrypted."""
        repository.create(make_subscription())

        found = repository.find_by_provider_id(PROVIDER_ID)

        assert found is not None
        assert found.subscription_id == "SUB-0001"
        assert found.status == SubscriptionStatus.PENDING
        assert found.subscriber_email == EMAIL
        assert found.metadata["status"] == "APPROVAL_PENDING"

    def test_find_unknown_provider_id_returns_none(
        self, repository: SubscriptionRepository
    ) -> None:
        """Unknown provider IDs are not found."""
        repository.create(make_subscription())

        assert repository.find_by_provider_id("I-UNKNOWN00000") is None

    def test_get_does_not_expose_guard_items(self, repository: SubscriptionRepository) -> None:
        """Uniqueness guard items are not readable as subscriptions."""
        repository.create(make_subscription())
        guard_id = f"PROVIDER#{repository.provider_hash(PROVIDER_ID)}"

        assert repository.get(guard_id) is None


class TestUniqueness:
    """Tests for provider subscription ID uniqueness."""

    def test_duplicate_provider_id_rejected(self, repository: SubscriptionRepository) -> None:
        """A second record with the same provider ID is refused."""
        repository.create(make_subscription("SUB-0001"))

        with pytest.raises(DuplicateSubscription):
            repository.create(make_subscription("SUB-0002"))

        assert repository.get("SUB-0002") is None

    def test_duplicate_subscription_id_rejected(self, repository: SubscriptionRepository) -> None:
        """Reusing a local subscription ID is refused."""
        repository.create(make_subscription("SUB-0001", "I-AAAA"))

        with pytest.raises(DuplicateSubscription):
            repository.create(make_subscription("SUB-0001", "I-BBBB"))


class TestEncryptionAtRest:
    """Tests that sensitive fields never reach DynamoDB in plaintext."""

    def test_no_plaintext_in_stored_items(self, repository: SubscriptionRepository) -> None:
        """Provider ID, e-mail and metadata are absent from raw items."""
        repository.create(make_subscription())

        raw = repr(scan_items())

        assert PROVIDER_ID not in raw
        assert EMAIL not in raw
        assert "APPROVAL_PENDING" not in raw

    def test_blind_index_is_keyed(self, repository: SubscriptionRepository, dynamodb, cipher) -> None:
        """The same provider ID hashes differently under another key."""
        other = SubscriptionRepository(dynamodb, cipher, b"another-key")

        assert repository.provider_hash(PROVIDER_ID) != other.provider_hash(PROVIDER_ID)
        assert repository.provider_hash(PROVIDER_ID) == repository.provider_hash(PROVIDER_ID)


class TestStatusUpdate:
    """Tests for compare-and-set status updates."""

    def test_update_with_matching_expected_status(
        self, repository: SubscriptionRepository
    ) -> None:
        """Update succeeds when the stored status matches."""
        repository.create(make_subscription())

        updated = repository.update_status(
            "SUB-0001", SubscriptionStatus.ACTIVE, expected_status=SubscriptionStatus.PENDING
        )

        assert updated is True
        stored = repository.get("SUB-0001")
        assert stored.status == SubscriptionStatus.ACTIVE
        assert stored.updated_at > stored.created_at

    def test_update_with_stale_expected_status_fails(
        self, repository: SubscriptionRepository
    ) -> None:
        """Update is refused when the status changed meanwhile."""
        repository.create(make_subscription())

        updated = repository.update_status(
            "SUB-0001", SubscriptionStatus.CANCELLED, expected_status=SubscriptionStatus.ACTIVE
        )

        assert updated is False
        assert repository.get("SUB-0001").status == SubscriptionStatus.PENDING

    def test_update_missing_record_fails(self, repository: SubscriptionRepository) -> None:
        """Updating a record that does not exist creates nothing."""
        updated = repository.update_status(
            "SUB-MISSING", SubscriptionStatus.ACTIVE, expected_status=SubscriptionStatus.PENDING
        )

        assert updated is False
        assert repository.get("SUB-MISSING") is None


class TestProviderLookupConsistency:
    """Tests that provider ID lookups read the guard item, not an index."""

    def test_lookup_works_on_table_without_indexes(
        self, mock_aws_env: None, cipher, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A record is found by provider ID right after create, with no GSI present."""
        monkeypatch.setenv("DYNAMODB_TABLE_PREFIX", "bare")
        boto3.client("dynamodb", region_name="eu-west-1").create_table(
            TableName="bare-subscriptions",
            KeySchema=[{"AttributeName": "subscription_id", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "subscription_id", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        repository = SubscriptionRepository(DynamoDBService("test"), cipher, b"bare-index-key")

        repository.create(make_subscription())

        found = repository.find_by_provider_id(PROVIDER_ID)
        assert found is not None
        assert found.subscription_id == "SUB-0001"

    def test_guard_points_at_owner(self, repository: SubscriptionRepository) -> None:
        """The guard item names the record that owns the provider ID."""
        repository.create(make_subscription())
        guard_id = f"PROVIDER#{repository.provider_hash(PROVIDER_ID)}"

        guards = [i for i in scan_items() if i["subscription_id"]["S"] == guard_id]

        assert guards[0]["owner_subscription_id"]["S"] == "SUB-0001"


class TestPendingByAge:
    """Tests for finding PENDING records older than a cutoff."""

    def test_returns_only_old_pending_records(self, repository: SubscriptionRepository) -> None:
        """Newer PENDING and older non-PENDING records are left out."""
        repository.create(make_subscription("SUB-OLD", "I-OLD", CREATED_AT))
        repository.create(make_subscription("SUB-OLDER", "I-OLDER", CREATED_AT - timedelta(hours=5)))
        repository.create(make_subscription("SUB-NEW", "I-NEW", CREATED_AT + timedelta(hours=4)))
        repository.create(
            make_subscription("SUB-LIVE", "I-LIVE", CREATED_AT, status=SubscriptionStatus.ACTIVE)
        )

        stale = repository.find_pending_created_before(CREATED_AT + timedelta(hours=1))

        assert [s.subscription_id for s in stale] == ["SUB-OLDER", "SUB-OLD"]

    def test_nothing_pending(self, repository: SubscriptionRepository) -> None:
        """An empty table yields no records."""
        assert repository.find_pending_created_before(CREATED_AT) == []
