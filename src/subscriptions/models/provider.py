"""Models for outbound PayPal API calls: requests, plans and subscriptions."""

import uuid
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError

from .enums import BillingInterval


def generate_idempotency_key(prefix: str = "req") -> str:
    """Generate a key for one logical side-effecting operation.

    Returns:
        Key like req-3f2a9c... (unique per call)
    """
    return f"{prefix}-{uuid.uuid4().hex}"


class ProviderRequest(BaseModel):
    """One logical call to the PayPal REST API.

    The idempotency key is fixed at construction so every retry of this
    request carries the same PayPal-Request-Id header.
    Body is a JSON document, or raw bytes sent unchanged.
    """

    model_config = ConfigDict(frozen=True)

    method: str = Field(default="POST")
    path: str = Field(..., description="API path, e.g. /v1/billing/plans")
    body: dict[str, Any] | bytes | None = Field(default=None)
    idempotency_key: str = Field(default_factory=generate_idempotency_key)


class PlanSpec(BaseModel):
    """Billing plan to register with the provider.

    Price is a decimal amount in the plan currency (29.99, not cents).
    """

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "name": "Premium",
                    "price": "29.99",
                    "currency": "USD",
                    "interval": "MONTH",
                }
            ]
        },
    )

    name: str = Field(..., min_length=1, max_length=127, examples=["Premium"])
    description: str | None = Field(default=None, max_length=127)
    price: Decimal = Field(..., gt=0, description="Price per billing cycle")
    currency: str = Field(default="USD", min_length=3, max_length=3)
    interval: BillingInterval = Field(default=BillingInterval.MONTH)
    interval_count: int = Field(default=1, ge=1)
    total_cycles: int = Field(default=0, ge=0, description="0 means until cancelled")
    product_id: str | None = Field(
        default=None,
        description="Catalog product ID; falls back to the configured default",
    )
    setup_fee: Decimal | None = Field(default=None, ge=0)
    payment_failure_threshold: int = Field(default=3, ge=0)


class Plan(BaseModel):
    """Provider representation of a billing plan (echoed back as received)."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., examples=["P-5ML4271244454362WXNWU5NQ"])
    status: str = Field(..., examples=["ACTIVE"])
    name: str | None = None
    product_id: str | None = None


class Subscriber(BaseModel):
    """The application user subscribing to a plan."""

    user_id: str = Field(..., min_length=1, description="Local user reference")
    given_name: str = Field(..., min_length=1)
    surname: str = Field(..., min_length=1)
    email: EmailStr


class ProviderLink(BaseModel):
    """HATEOAS link returned by the provider."""

    model_config = ConfigDict(extra="ignore")

    href: str
    rel: str
    method: str | None = None


class SubscriptionCheckout(BaseModel):
    """Result of starting a subscription: where to send the subscriber next."""

    approval_url: str = Field(..., description="Provider page the subscriber must visit")
    subscription_id: str = Field(..., description="Local subscription ID")
    provider_subscription_id: str = Field(..., examples=["I-BW452GLLEP1G"])


def find_link(links: list[dict[str, Any]], rel: str) -> str | None:
    """Locate a link by relation name.

    PayPal does not guarantee link ordering, so links are never picked by
    position.

    Args:
        links: Raw "links" array from a provider response
        rel: Relation name, e.g. "approve"

    Returns:
        The href, or None when no link has that relation
    """
    for raw in links:
        try:
            link = ProviderLink.model_validate(raw)
        except ValidationError:
            continue
        if link.rel == rel:
            return link.href
    return None
