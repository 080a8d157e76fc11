"""API models for the webhook endpoint."""

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    """Acknowledgement returned to PayPal."""

    received: bool
    event_id: str | None = None
    event_type: str | None = None
    processing_result: str  # applied, already_applied, ignored, duplicate, unhandled, ...


class WebhookErrorResponse(BaseModel):
    """Body of a rejected delivery. Carries no reason."""

    received: bool = False
