"""Webhook signature verification for inbound PayPal events.

WebhookVerifier extracts the five PayPal transmission headers, pairs them with
the configured webhook ID and the byte-exact body, and delegates the actual
check to a SignaturePrimitive:

- ProviderApiSignatureVerifier: asks PayPal's verify-webhook-signature endpoint
- CertificateSignatureVerifier: checks the signature locally against the
  PayPal signing certificate with the cryptography library

The verifier never raises. Any failure is a False answer, which the
orchestrator treats as a security rejection.
"""

import base64
import binascii
import json
import zlib
from typing import Protocol
from urllib.parse import urlparse

import httpx
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from subscriptions.models import (
    ProviderRequest,
    SubscriptionServiceError,
    WebhookEvent,
    WebhookSignature,
)
from subscriptions.models.webhook import (
    AUTH_ALGO_HEADER,
    CERT_URL_HEADER,
    TRANSMISSION_ID_HEADER,
    TRANSMISSION_SIG_HEADER,
    TRANSMISSION_TIME_HEADER,
)
from subscriptions.utils.logging import get_logger

from .request_executor import ResilientRequestExecutor

logger = get_logger(__name__)

VERIFY_SIGNATURE_PATH = "/v1/notifications/verify-webhook-signature"

# Hosts allowed to serve signing certificates
TRUSTED_CERT_HOST_SUFFIXES = (".paypal.com",)

SUPPORTED_AUTH_ALGORITHMS = {"SHA256withRSA"}


class SignaturePrimitive(Protocol):
    """Checks a webhook signature. Implementations may raise; the verifier catches."""

    async def verify(self, signature: WebhookSignature, raw_body: bytes) -> bool: ...


class WebhookVerifier:
    """Validates inbound event authenticity.

    Usage:
        verifier = WebhookVerifier(webhook_id, ProviderApiSignatureVerifier(executor))
        if not await verifier.verify(event):
            ...reject without explanation...
    """

    def __init__(self, webhook_id: str, primitive: SignaturePrimitive) -> None:
        """Initialize verifier.

        Args:
            webhook_id: Webhook ID registered with the provider
            primitive: Signature check to delegate to
        """
        self._webhook_id = webhook_id
        self._primitive = primitive

    def extract_signature(self, event: WebhookEvent) -> WebhookSignature | None:
        """Collect the transmission headers into a WebhookSignature.

        Returns:
            WebhookSignature, or None when any header is missing or empty
        """
        values = {
            "auth_algo": event.header(AUTH_ALGO_HEADER),
            "cert_url": event.header(CERT_URL_HEADER),
            "transmission_id": event.header(TRANSMISSION_ID_HEADER),
            "transmission_sig": event.header(TRANSMISSION_SIG_HEADER),
            "transmission_time": event.header(TRANSMISSION_TIME_HEADER),
        }
        missing = sorted(name for name, value in values.items() if not value)
        if missing:
            logger.warning(
                "Webhook rejected: missing transmission headers %s (transmission_id=%s)",
                ",".join(missing),
                values["transmission_id"] or "unknown",
            )
            return None
        return WebhookSignature(webhook_id=self._webhook_id, **values)

    async def verify(self, event: WebhookEvent) -> bool:
        """Verify a webhook delivery.

        Args:
            event: Delivery with byte-exact body and headers

        Returns:
            True only if the primitive positively confirms the signature
        """
        signature = self.extract_signature(event)
        if signature is None:
            return False

        if not event.raw_body:
            logger.warning(
                "Webhook rejected: empty body (transmission_id=%s)",
                signature.transmission_id,
            )
            return False

        try:
            verified = await self._primitive.verify(signature, event.raw_body)
        except (SubscriptionServiceError, httpx.HTTPError, ValueError) as e:
            logger.warning(
                "Webhook rejected: verification error %s (transmission_id=%s, event_type=%s)",
                type(e).__name__,
                signature.transmission_id,
                event.event_type,
            )
            return False

        if not verified:
            logger.warning(
                "Webhook rejected: signature mismatch (transmission_id=%s, event_type=%s, algo=%s)",
                signature.transmission_id,
                event.event_type,
                signature.auth_algo,
            )
            return False

        logger.info(
            "Webhook signature verified (transmission_id=%s, event_type=%s)",
            signature.transmission_id,
            event.event_type,
        )
        return True


class ProviderApiSignatureVerifier:
    """Delegates verification to PayPal's verify-webhook-signature endpoint.

    The raw event bytes are spliced into the request document unchanged;
    parsing and re-serializing them could alter the signed content.
    """

    def __init__(self, executor: ResilientRequestExecutor) -> None:
        self._executor = executor

    async def verify(self, signature: WebhookSignature, raw_body: bytes) -> bool:
        result = await self._executor.execute(
            ProviderRequest(
                method="POST",
                path=VERIFY_SIGNATURE_PATH,
                body=self.build_request_body(signature, raw_body),
            )
        )
        return result.get("verification_status") == "SUCCESS"

    @staticmethod
    def build_request_body(signature: WebhookSignature, raw_body: bytes) -> bytes:
        """Build the verification request with the event embedded byte-for-byte.

        Raises:
            ValueError: If the body is not a UTF-8 JSON object
        """
        header_fields = signature.model_dump_json(
            include={
                "auth_algo",
                "cert_url",
                "transmission_id",
                "transmission_sig",
                "transmission_time",
                "webhook_id",
            }
        ).encode()
        if not isinstance(json.loads(raw_body.decode("utf-8")), dict):
            raise ValueError("Webhook body is not a JSON object")
        # Drop the closing brace and append the untouched event document
        return header_fields[:-1] + b',"webhook_event":' + raw_body + b"}"


class CertificateSignatureVerifier:
    """Verifies signatures locally with the PayPal signing certificate.

    Signed message: transmission_id|transmission_time|webhook_id|crc32(body)
    Algorithm: SHA256withRSA (PKCS#1 v1.5). Certificates are only fetched over
    HTTPS from PayPal hosts and are cached per URL.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        """Initialize verifier.

        Args:
            client: HTTP client used to download certificates
        """
        self._client = client
        self._certificates: dict[str, x509.Certificate] = {}

    async def verify(self, signature: WebhookSignature, raw_body: bytes) -> bool:
        if signature.auth_algo not in SUPPORTED_AUTH_ALGORITHMS:
            logger.warning("Unsupported webhook auth algorithm: %s", signature.auth_algo)
            return False

        certificate = await self._certificate(signature.cert_url)
        public_key = certificate.public_key()
        if not isinstance(public_key, rsa.RSAPublicKey):
            logger.warning("Signing certificate does not carry an RSA key")
            return False

        try:
            signature_bytes = base64.b64decode(signature.transmission_sig, validate=True)
        except binascii.Error:
            return False

        message = self.signed_message(signature, raw_body)
        try:
            public_key.verify(signature_bytes, message, padding.PKCS1v15(), hashes.SHA256())
        except InvalidSignature:
            return False
        return True

    @staticmethod
    def signed_message(signature: WebhookSignature, raw_body: bytes) -> bytes:
        checksum = zlib.crc32(raw_body) & 0xFFFFFFFF
        return (
            f"{signature.transmission_id}|{signature.transmission_time}|"
            f"{signature.webhook_id}|{checksum}"
        ).encode()

    async def _certificate(self, cert_url: str) -> x509.Certificate:
        cached = self._certificates.get(cert_url)
        if cached is not None:
            return cached

        parsed = urlparse(cert_url)
        host = parsed.hostname or ""
        if parsed.scheme != "https" or not host.endswith(TRUSTED_CERT_HOST_SUFFIXES):
            raise ValueError(f"Untrusted certificate host: {host or 'none'}")

        response = await self._client.get(cert_url)
        response.raise_for_status()
        certificate = x509.load_pem_x509_certificate(response.content)
        self._certificates[cert_url] = certificate
        logger.info("Cached webhook signing certificate from %s", host)
        return certificate
