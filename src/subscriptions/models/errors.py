"""Error codes and exception taxonomy for the subscription service.

Every failure surfaced by the core derives from SubscriptionServiceError and
carries an ErrorCode. The API layer maps codes to HTTP statuses.
Messages never include credentials, tokens, signatures or metadata.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard error codes returned by the subscription API."""

    # Provider call errors
    PROVIDER_AUTH = "ERR_PROVIDER_AUTH"
    PROVIDER_REJECTED = "ERR_PROVIDER_REJECTED"
    PROVIDER_UNAVAILABLE = "ERR_PROVIDER_UNAVAILABLE"
    PROVIDER_RESPONSE = "ERR_PROVIDER_RESPONSE"

    # Webhook errors
    SIGNATURE_INVALID = "ERR_SIGNATURE_INVALID"

    # Subscription errors
    SUBSCRIPTION_NOT_FOUND = "ERR_SUBSCRIPTION_NOT_FOUND"
    DUPLICATE_SUBSCRIPTION = "ERR_DUPLICATE_SUBSCRIPTION"
    TRANSITION_CONFLICT = "ERR_TRANSITION_CONFLICT"

    # Configuration errors
    CREDENTIALS_UNAVAILABLE = "ERR_CREDENTIALS_UNAVAILABLE"
    PRODUCT_NOT_CONFIGURED = "ERR_PRODUCT_NOT_CONFIGURED"
    AUTH_REQUIRED = "ERR_AUTH_REQUIRED"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.PROVIDER_AUTH: "Payment provider rejected our credentials",
    ErrorCode.PROVIDER_REJECTED: "Payment provider rejected the request",
    ErrorCode.PROVIDER_UNAVAILABLE: "Payment provider is temporarily unavailable",
    ErrorCode.PROVIDER_RESPONSE: "Payment provider returned an unexpected response",
    ErrorCode.SIGNATURE_INVALID: "Webhook could not be verified",
    ErrorCode.SUBSCRIPTION_NOT_FOUND: "Subscription not found",
    ErrorCode.DUPLICATE_SUBSCRIPTION: "Subscription is already registered",
    ErrorCode.TRANSITION_CONFLICT: "Subscription was modified concurrently",
    ErrorCode.CREDENTIALS_UNAVAILABLE: "Payment provider credentials are not configured",
    ErrorCode.PRODUCT_NOT_CONFIGURED: "A catalog product is required to create a plan",
    ErrorCode.AUTH_REQUIRED: "Authentication required to perform this action",
}

# Recovery suggestions for API clients
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.PROVIDER_AUTH: "Contact support; provider credentials need attention",
    ErrorCode.PROVIDER_REJECTED: "Check the request details and try again",
    ErrorCode.PROVIDER_UNAVAILABLE: "Try again in a few minutes",
    ErrorCode.PROVIDER_RESPONSE: "Try again or contact support",
    ErrorCode.SIGNATURE_INVALID: "Verify webhook configuration",
    ErrorCode.SUBSCRIPTION_NOT_FOUND: "Verify the subscription ID",
    ErrorCode.DUPLICATE_SUBSCRIPTION: "Use the existing subscription",
    ErrorCode.TRANSITION_CONFLICT: "Retry the operation",
    ErrorCode.CREDENTIALS_UNAVAILABLE: "Check secret store configuration",
    ErrorCode.PRODUCT_NOT_CONFIGURED: "Pass product_id or set PAYPAL_PRODUCT_ID",
    ErrorCode.AUTH_REQUIRED: "Sign in and try again",
}


class ErrorResponse(BaseModel):
    """Standard error response body for API failures."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error

        Returns:
            An ErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            error_code=code,
            message=ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class SubscriptionServiceError(Exception):
    """Base exception for subscription service failures.

    Can be caught and converted to an ErrorResponse for API responses.
    """

    code: ErrorCode = ErrorCode.PROVIDER_RESPONSE

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[dict[str, str]] = None,
    ):
        self.message = message or ERROR_MESSAGES[self.code]
        self.recovery = ERROR_RECOVERY[self.code]
        self.details = details
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse.

        Only the code's public message is used; internal text stays in logs.
        """
        return ErrorResponse.from_code(self.code, self.details)


class AuthenticationError(SubscriptionServiceError):
    """Provider rejected the client credentials or a freshly minted token.

    Fatal to the calling operation; retrying with the same credentials is pointless.
    """

    code = ErrorCode.PROVIDER_AUTH


class RequestRejected(SubscriptionServiceError):
    """Provider answered 4xx (other than 401). The request itself is at fault."""

    code = ErrorCode.PROVIDER_REJECTED

    def __init__(
        self,
        status_code: int,
        error_name: Optional[str] = None,
        debug_id: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.status_code = status_code
        self.error_name = error_name
        self.debug_id = debug_id
        details = {"provider_error": error_name} if error_name else None
        super().__init__(
            message or f"Provider rejected request with status {status_code}",
            details=details,
        )


class ProviderUnavailable(SubscriptionServiceError):
    """Retries exhausted on 5xx or transport failures. Safe to retry later."""

    code = ErrorCode.PROVIDER_UNAVAILABLE

    def __init__(
        self,
        message: Optional[str] = None,
        last_status: Optional[int] = None,
        last_error: Optional[str] = None,
        attempts: int = 0,
    ):
        self.last_status = last_status
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(message)


class MalformedProviderResponse(SubscriptionServiceError):
    """Provider answered 2xx with a body we cannot use."""

    code = ErrorCode.PROVIDER_RESPONSE


class SignatureInvalid(SubscriptionServiceError):
    """Webhook signature could not be verified. Never surfaced with detail."""

    code = ErrorCode.SIGNATURE_INVALID


class SubscriptionNotFound(SubscriptionServiceError):
    """No local subscription matches the given identifier."""

    code = ErrorCode.SUBSCRIPTION_NOT_FOUND


class DuplicateSubscription(SubscriptionServiceError):
    """A subscription with this provider subscription ID already exists."""

    code = ErrorCode.DUPLICATE_SUBSCRIPTION


class TransitionConflict(SubscriptionServiceError):
    """Compare-and-set on the subscription status kept losing to concurrent writers."""

    code = ErrorCode.TRANSITION_CONFLICT


class CredentialsUnavailable(SubscriptionServiceError):
    """Provider credentials could not be loaded from the secret store."""

    code = ErrorCode.CREDENTIALS_UNAVAILABLE


class ProductNotConfigured(SubscriptionServiceError):
    """Neither the plan request nor the settings name a catalog product."""

    code = ErrorCode.PRODUCT_NOT_CONFIGURED


class AuthenticationRequired(SubscriptionServiceError):
    """Caller did not present an authenticated user identity."""

    code = ErrorCode.AUTH_REQUIRED


# PayPal error name to user-friendly message mapping
# Maps the "name" field of PayPal error bodies to messages suitable for end users
PROVIDER_ERROR_MESSAGES: dict[str, str] = {
    "INVALID_REQUEST": "The subscription request was invalid. Please check your details.",
    "UNPROCESSABLE_ENTITY": "The subscription could not be processed. Please try again.",
    "RESOURCE_NOT_FOUND": "The selected plan is no longer available.",
    "PERMISSION_DENIED": "This subscription action is not permitted.",
    "NOT_AUTHORIZED": "This subscription action is not permitted.",
    "DUPLICATE_REQUEST_ID": "This request was already submitted.",
    "RATE_LIMIT_REACHED": "Too many requests. Please wait a moment and try again.",
}


def get_user_friendly_provider_message(
    error_name: Optional[str],
    default_message: str = "Subscription could not be processed. Please try again.",
) -> str:
    """Get a user-friendly message for a PayPal error name.

    Args:
        error_name: The PayPal error name (e.g., 'INVALID_REQUEST').
        default_message: Message to use if error name is unknown.

    Returns:
        User-friendly error message.
    """
    if error_name and error_name in PROVIDER_ERROR_MESSAGES:
        return PROVIDER_ERROR_MESSAGES[error_name]
    return default_message
