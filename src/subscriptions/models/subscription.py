"""Subscription record and state transition outcome models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import SubscriptionStatus, SubscriptionTrigger, TransitionResult


class Subscription(BaseModel):
    """A user's subscription to a provider billing plan.

    Sensitive fields (metadata, subscriber_email) are held in plaintext only
    in memory. The repository encrypts them, together with the provider
    subscription ID, before they are written.
    """

    subscription_id: str = Field(..., description="Local subscription ID (SUB-xxx)")
    user_id: str = Field(..., description="Owning user")
    provider_subscription_id: str = Field(
        ..., description="PayPal subscription ID (I-xxx), unique"
    )
    plan_id: str = Field(..., description="PayPal plan ID (P-xxx)")
    status: SubscriptionStatus = Field(default=SubscriptionStatus.PENDING)
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        repr=False,
        description="Raw provider response, encrypted at rest",
    )
    subscriber_email: str | None = Field(default=None, repr=False)
    created_at: datetime
    updated_at: datetime


class TransitionOutcome(BaseModel):
    """Result of applying a trigger through the state machine."""

    result: TransitionResult
    provider_subscription_id: str
    trigger: SubscriptionTrigger | None = None
    previous_status: SubscriptionStatus | None = None
    status: SubscriptionStatus | None = None
    subscription_id: str | None = None

    @property
    def changed(self) -> bool:
        return self.result == TransitionResult.APPLIED
