"""Subscription endpoints.

Provides REST endpoints for:
- Starting a subscription (JWT required, user from x-user-sub)
- The PayPal approval return and cancel redirects

Return/cancel query parameters are untrusted. The return flow asks PayPal for
the subscription's real status before anything changes, then redirects to
the frontend with a status flash parameter.
"""

from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from starlette.status import HTTP_201_CREATED, HTTP_303_SEE_OTHER

from subscriptions.config import get_settings
from subscriptions.models import (
    Subscriber,
    SubscriptionCheckout,
    SubscriptionServiceError,
    SubscriptionStatus,
    TransitionOutcome,
    TransitionResult,
)
from subscriptions.services import SubscriptionOrchestrator
from subscriptions.utils.logging import get_logger
from subscriptions_api.dependencies import get_orchestrator, get_user_sub
from subscriptions_api.models import CreateSubscriptionRequest

logger = get_logger(__name__)

router = APIRouter(tags=["subscriptions"])

FRONTEND_SUBSCRIPTION_PATH = "/subscription"


def _flash_redirect(status: str) -> RedirectResponse:
    frontend = get_settings().frontend_url.rstrip("/")
    query = urlencode({"status": status})
    return RedirectResponse(
        f"{frontend}{FRONTEND_SUBSCRIPTION_PATH}?{query}",
        status_code=HTTP_303_SEE_OTHER,
    )


def flash_status(outcome: TransitionOutcome) -> str:
    """Frontend flash status for a confirmation outcome."""
    if outcome.result == TransitionResult.UNKNOWN_SUBSCRIPTION:
        return "unknown"
    if outcome.status == SubscriptionStatus.ACTIVE:
        return "active"
    if outcome.status == SubscriptionStatus.PENDING:
        return "pending"
    return outcome.status.value.lower() if outcome.status else "error"


@router.post(
    "/subscriptions",
    summary="Start subscription",
    description="""
Start a PayPal subscription for the authenticated user.

**Requires JWT authentication.**

Returns the PayPal approval URL the subscriber must visit. The subscription
is stored as PENDING until PayPal confirms activation.
""",
    response_model=SubscriptionCheckout,
    status_code=HTTP_201_CREATED,
    responses={
        201: {"description": "Subscription created, approval pending"},
        400: {"description": "Rejected by PayPal"},
        401: {"description": "JWT token required"},
        409: {"description": "Subscription already registered"},
        503: {"description": "PayPal temporarily unavailable"},
    },
)
async def create_subscription(
    request: Request,
    body: CreateSubscriptionRequest,
    orchestrator: SubscriptionOrchestrator = Depends(get_orchestrator),
) -> SubscriptionCheckout:
    """Create a subscription and return the approval URL."""
    subscriber = Subscriber(
        user_id=get_user_sub(request),
        given_name=body.given_name,
        surname=body.surname,
        email=body.email,
    )
    return await orchestrator.create_subscription(
        body.plan_id, subscriber, idempotency_key=body.idempotency_key
    )


@router.get(
    "/subscriptions/return",
    summary="PayPal approval return",
    description="PayPal redirects here after approval. Redirects to the frontend.",
    status_code=HTTP_303_SEE_OTHER,
    response_class=RedirectResponse,
)
async def subscription_return(
    subscription_id: str | None = None,
    orchestrator: SubscriptionOrchestrator = Depends(get_orchestrator),
) -> RedirectResponse:
    """Confirm the subscription with PayPal and redirect with a flash status."""
    if not subscription_id:
        logger.warning("Approval return without subscription_id")
        return _flash_redirect("unknown")

    try:
        outcome = await orchestrator.confirm_approval(subscription_id)
    except SubscriptionServiceError as e:
        logger.error(
            "Approval confirmation failed for %s: %s", subscription_id, e.code.value
        )
        return _flash_redirect("error")

    return _flash_redirect(flash_status(outcome))


@router.get(
    "/subscriptions/cancel",
    summary="PayPal approval cancelled",
    description="PayPal redirects here when the subscriber cancels approval.",
    status_code=HTTP_303_SEE_OTHER,
    response_class=RedirectResponse,
)
async def subscription_cancel() -> RedirectResponse:
    """Redirect to the frontend; the scheduled sweep expires the PENDING record later."""
    return _flash_redirect("cancelled")
