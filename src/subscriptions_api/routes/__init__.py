"""API routes package.

Routers are organized by domain:

- plans: Billing plan registration
- subscriptions: Subscription checkout and approval redirects
- webhooks: PayPal webhook receiver

All routers are registered in main.py with /api prefix.
"""

from subscriptions_api.routes.plans import router as plans_router
from subscriptions_api.routes.subscriptions import router as subscriptions_router
from subscriptions_api.routes.webhooks import router as webhooks_router

__all__ = [
    "plans_router",
    "subscriptions_router",
    "webhooks_router",
]
