"""FastAPI exception handlers for converting SubscriptionServiceError to HTTP responses.

The ErrorCode-to-HTTP status mapping:
- 400 Bad Request: provider rejected the request, bad webhook signature,
  plan without a catalog product
- 401 Unauthorized: caller not authenticated
- 404 Not Found: subscription not found
- 409 Conflict: duplicate subscription, concurrent status change
- 500 Internal Server Error: secrets not configured
- 502 Bad Gateway: provider auth failure or unusable provider response
- 503 Service Unavailable: provider retries exhausted

Usage:
    from subscriptions_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from subscriptions.models import ErrorCode, RequestRejected, SubscriptionServiceError
from subscriptions.models.errors import get_user_friendly_provider_message
from subscriptions.utils.logging import get_logger

logger = get_logger(__name__)

ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    # Provider errors
    ErrorCode.PROVIDER_AUTH: HTTP_502_BAD_GATEWAY,
    ErrorCode.PROVIDER_REJECTED: HTTP_400_BAD_REQUEST,
    ErrorCode.PROVIDER_UNAVAILABLE: HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.PROVIDER_RESPONSE: HTTP_502_BAD_GATEWAY,
    # Webhook errors
    ErrorCode.SIGNATURE_INVALID: HTTP_400_BAD_REQUEST,
    # Subscription errors
    ErrorCode.SUBSCRIPTION_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.DUPLICATE_SUBSCRIPTION: HTTP_409_CONFLICT,
    ErrorCode.TRANSITION_CONFLICT: HTTP_409_CONFLICT,
    # Configuration / caller errors
    ErrorCode.CREDENTIALS_UNAVAILABLE: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.PRODUCT_NOT_CONFIGURED: HTTP_400_BAD_REQUEST,
    ErrorCode.AUTH_REQUIRED: HTTP_401_UNAUTHORIZED,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """Get HTTP status code for an ErrorCode.

    Args:
        code: The ErrorCode to map

    Returns:
        HTTP status code, defaults to 400 if not explicitly mapped.
    """
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


async def subscription_error_handler(
    request: Request, exc: SubscriptionServiceError
) -> JSONResponse:
    """Convert SubscriptionServiceError to a JSON ErrorResponse.

    Internal messages stay in the logs; the body carries the code's public
    message, with a friendlier text for known provider rejections.
    """
    status_code = get_http_status_for_error(exc.code)
    logger.warning(
        "Request %s %s failed: %s (%s)",
        request.method,
        request.url.path,
        exc.code.value,
        type(exc).__name__,
    )

    error_response = exc.to_error_response()
    if isinstance(exc, RequestRejected):
        error_response = error_response.model_copy(
            update={"message": get_user_friendly_provider_message(exc.error_name)}
        )

    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(SubscriptionServiceError, subscription_error_handler)  # type: ignore[arg-type]
