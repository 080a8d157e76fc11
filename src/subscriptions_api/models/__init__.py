"""API request/response models.

Domain models (PlanSpec, Plan, SubscriptionCheckout, ...) live in
subscriptions.models; this package holds HTTP-layer shapes only.
"""

from subscriptions_api.models.subscriptions import CreateSubscriptionRequest
from subscriptions_api.models.webhooks import WebhookErrorResponse, WebhookResponse

__all__ = [
    "CreateSubscriptionRequest",
    "WebhookErrorResponse",
    "WebhookResponse",
]
