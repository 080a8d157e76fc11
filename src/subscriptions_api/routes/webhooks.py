"""Webhook endpoint for PayPal subscription events.

This endpoint does NOT require JWT authentication; deliveries are signed by
PayPal and verified before anything is processed.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_500_INTERNAL_SERVER_ERROR

from subscriptions.models import SubscriptionServiceError, WebhookEvent
from subscriptions.services import SubscriptionOrchestrator
from subscriptions.utils.logging import get_logger
from subscriptions_api.dependencies import get_orchestrator
from subscriptions_api.models import WebhookErrorResponse, WebhookResponse

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post(
    "/webhooks/paypal",
    summary="PayPal webhook receiver",
    description="""
Receive PayPal subscription lifecycle events.

**Signature verification**: the byte-exact body and PAYPAL-* transmission
headers are verified before processing. Failed verification answers 400 with
no explanation.

**Handled events:**
- `BILLING.SUBSCRIPTION.ACTIVATED`
- `BILLING.SUBSCRIPTION.SUSPENDED`
- `BILLING.SUBSCRIPTION.CANCELLED`
- `BILLING.SUBSCRIPTION.EXPIRED`

Other event types are acknowledged and skipped.

**Idempotent**: Duplicate events (same event id) return 200 with 'duplicate' result.
""",
    response_model=WebhookResponse,
    responses={
        200: {"description": "Event received and processed (or acknowledged)"},
        400: {"description": "Delivery rejected", "model": WebhookErrorResponse},
        500: {"description": "Processing failed, PayPal will redeliver"},
    },
)
async def handle_paypal_webhook(
    request: Request,
    orchestrator: SubscriptionOrchestrator = Depends(get_orchestrator),
) -> WebhookResponse | JSONResponse:
    """Verify and process a PayPal webhook delivery."""
    raw_body = await request.body()
    event = WebhookEvent.from_request(raw_body, request.headers)

    try:
        result = await orchestrator.handle_webhook(event)
    except SubscriptionServiceError as e:
        # Non-2xx makes PayPal redeliver later
        logger.error(
            "Webhook %s processing failed: %s", event.event_id, e.code.value
        )
        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            content=WebhookErrorResponse().model_dump(),
        )

    if not result.acknowledged:
        return JSONResponse(
            status_code=HTTP_400_BAD_REQUEST,
            content=WebhookErrorResponse().model_dump(),
        )

    return WebhookResponse(
        received=True,
        event_id=result.event_id,
        event_type=result.event_type,
        processing_result=result.outcome,
    )
