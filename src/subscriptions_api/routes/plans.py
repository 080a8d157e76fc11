"""Billing plan endpoints.

Provides REST endpoints for:
- Registering a billing plan with PayPal (JWT required, admin tooling)
"""

from fastapi import APIRouter, Depends, Request
from starlette.status import HTTP_201_CREATED

from subscriptions.models import Plan, PlanSpec
from subscriptions.services import SubscriptionOrchestrator
from subscriptions.utils.logging import get_logger
from subscriptions_api.dependencies import get_orchestrator, get_user_sub

logger = get_logger(__name__)

router = APIRouter(tags=["plans"])


@router.post(
    "/plans",
    summary="Create billing plan",
    description="""
Register a billing plan with PayPal.

**Requires JWT authentication.**

**Notes:**
- Price is a decimal amount per billing cycle (e.g. 29.99)
- The catalog product defaults to PAYPAL_PRODUCT_ID when not given
- Nothing is stored locally; the provider's plan is returned as-is
""",
    response_model=Plan,
    status_code=HTTP_201_CREATED,
    responses={
        201: {"description": "Plan created"},
        400: {"description": "No catalog product, or rejected by PayPal"},
        401: {"description": "JWT token required"},
        503: {"description": "PayPal temporarily unavailable"},
    },
)
async def create_plan(
    request: Request,
    body: PlanSpec,
    orchestrator: SubscriptionOrchestrator = Depends(get_orchestrator),
) -> Plan:
    """Create a billing plan."""
    user_sub = get_user_sub(request)
    logger.info("Plan %r requested by %s", body.name, user_sub)
    return await orchestrator.create_plan(body)
