"""Enumeration types for subscription billing models."""

from enum import Enum


class ProviderMode(str, Enum):
    """PayPal environment a credential set belongs to."""

    SANDBOX = "sandbox"
    LIVE = "live"


class SubscriptionStatus(str, Enum):
    """Lifecycle status of a local subscription record."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class SubscriptionTrigger(str, Enum):
    """Lifecycle signal that may move a subscription to another status."""

    ACTIVATED = "ACTIVATED"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class BillingInterval(str, Enum):
    """Billing cycle frequency unit."""

    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"
    YEAR = "YEAR"


class TransitionResult(str, Enum):
    """What happened when a trigger was applied to a subscription."""

    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"  # Target status already reached
    IGNORED = "ignored"  # No edge from the current status
    UNKNOWN_SUBSCRIPTION = "unknown_subscription"
    NO_CHANGE = "no_change"  # Provider reports nothing actionable yet


class WebhookDisposition(str, Enum):
    """Answer owed to the webhook sender."""

    ACK = "ack"
    REJECT = "reject"


class SignatureVerificationMethod(str, Enum):
    """Which primitive verifies inbound webhook signatures."""

    API = "api"
    CERTIFICATE = "certificate"
