"""Inbound PayPal webhook models."""

import json
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import WebhookDisposition
from .subscription import TransitionOutcome

# Header names PayPal sends with every webhook delivery (lower-cased)
AUTH_ALGO_HEADER = "paypal-auth-algo"
CERT_URL_HEADER = "paypal-cert-url"
TRANSMISSION_ID_HEADER = "paypal-transmission-id"
TRANSMISSION_SIG_HEADER = "paypal-transmission-sig"
TRANSMISSION_TIME_HEADER = "paypal-transmission-time"


class WebhookEvent(BaseModel):
    """A webhook delivery exactly as received.

    raw_body must be the byte-exact request body: signatures are computed
    over these bytes, never over a re-serialized copy.
    event_id, event_type and resource_id are parsed best-effort and are only
    trusted once the signature has been verified.
    """

    model_config = ConfigDict(frozen=True)

    raw_body: bytes = Field(..., repr=False)
    headers: dict[str, str] = Field(default_factory=dict, repr=False)
    event_id: str | None = None
    event_type: str | None = None
    resource_id: str | None = None

    @classmethod
    def from_request(cls, raw_body: bytes, headers: Mapping[str, str]) -> "WebhookEvent":
        """Build an event from a raw HTTP delivery.

        Args:
            raw_body: Request body bytes, untouched
            headers: Request headers (any case)

        Returns:
            WebhookEvent with lower-cased header names and parsed identifiers
        """
        normalized = {key.lower(): value for key, value in headers.items()}
        payload = _parse_payload(raw_body)
        resource = payload.get("resource") if isinstance(payload.get("resource"), dict) else {}
        return cls(
            raw_body=raw_body,
            headers=normalized,
            event_id=_as_str(payload.get("id")),
            event_type=_as_str(payload.get("event_type")),
            resource_id=_as_str(resource.get("id")),
        )

    def header(self, name: str) -> str | None:
        value = self.headers.get(name.lower())
        return value or None


def _parse_payload(raw_body: bytes) -> dict[str, Any]:
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


class WebhookSignature(BaseModel):
    """Signature material extracted from delivery headers."""

    model_config = ConfigDict(frozen=True)

    auth_algo: str
    cert_url: str
    transmission_id: str
    transmission_sig: str = Field(..., repr=False)
    transmission_time: str
    webhook_id: str


class WebhookResult(BaseModel):
    """Outcome of handling one webhook delivery.

    ACK tells the caller to answer 2xx so the provider stops redelivering.
    REJECT must become a non-2xx answer carrying no reason.
    """

    disposition: WebhookDisposition
    outcome: str = Field(
        ...,
        description="processed, duplicate, unhandled, malformed, rejected or a transition result",
    )
    event_id: str | None = None
    event_type: str | None = None
    transition: TransitionOutcome | None = None

    @property
    def acknowledged(self) -> bool:
        return self.disposition == WebhookDisposition.ACK


class ProcessedWebhookEvent(BaseModel):
    """Log of a handled webhook event.

    Used for:
    - Idempotency: a redelivered event ID is not processed twice
    - Auditing: track all verified deliveries

    The raw payload is never stored, only its hash.
    """

    event_id: str = Field(..., examples=["WH-2WR32451HC0233532-67976317FL4543714"])
    event_type: str = Field(..., examples=["BILLING.SUBSCRIPTION.ACTIVATED"])
    processed_at: datetime
    payload_hash: str = Field(..., description="SHA-256 of the raw body")
    resource_hash: str | None = Field(
        default=None, description="Blind index of the provider subscription ID"
    )
    processing_result: str
    expires_at: int = Field(..., description="Unix epoch for DynamoDB TTL")
