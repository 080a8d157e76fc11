"""Pydantic models for PayPal subscription billing."""

from .credentials import AccessToken, Credential
from .enums import (
    BillingInterval,
    ProviderMode,
    SignatureVerificationMethod,
    SubscriptionStatus,
    SubscriptionTrigger,
    TransitionResult,
    WebhookDisposition,
)
from .errors import (
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    PROVIDER_ERROR_MESSAGES,
    AuthenticationError,
    AuthenticationRequired,
    CredentialsUnavailable,
    DuplicateSubscription,
    ErrorCode,
    ErrorResponse,
    MalformedProviderResponse,
    ProductNotConfigured,
    ProviderUnavailable,
    RequestRejected,
    SignatureInvalid,
    SubscriptionNotFound,
    SubscriptionServiceError,
    TransitionConflict,
    get_user_friendly_provider_message,
)
from .provider import (
    Plan,
    PlanSpec,
    ProviderLink,
    ProviderRequest,
    Subscriber,
    SubscriptionCheckout,
    find_link,
    generate_idempotency_key,
)
from .subscription import Subscription, TransitionOutcome
from .webhook import (
    ProcessedWebhookEvent,
    WebhookEvent,
    WebhookResult,
    WebhookSignature,
)

__all__ = [
    # Enums
    "BillingInterval",
    "ProviderMode",
    "SignatureVerificationMethod",
    "SubscriptionStatus",
    "SubscriptionTrigger",
    "TransitionResult",
    "WebhookDisposition",
    # Credentials
    "AccessToken",
    "Credential",
    # Provider calls
    "Plan",
    "PlanSpec",
    "ProviderLink",
    "ProviderRequest",
    "Subscriber",
    "SubscriptionCheckout",
    "find_link",
    "generate_idempotency_key",
    # Subscription
    "Subscription",
    "TransitionOutcome",
    # Webhooks
    "ProcessedWebhookEvent",
    "WebhookEvent",
    "WebhookResult",
    "WebhookSignature",
    # Errors
    "AuthenticationError",
    "AuthenticationRequired",
    "CredentialsUnavailable",
    "DuplicateSubscription",
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "ErrorCode",
    "ErrorResponse",
    "MalformedProviderResponse",
    "PROVIDER_ERROR_MESSAGES",
    "ProductNotConfigured",
    "ProviderUnavailable",
    "RequestRejected",
    "SignatureInvalid",
    "SubscriptionNotFound",
    "SubscriptionServiceError",
    "TransitionConflict",
    "get_user_friendly_provider_message",
]
