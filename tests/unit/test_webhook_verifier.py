"""Unit tests for webhook signature verification.

Tests verify both signature primitives without real PayPal calls:
- Provider API primitive against a stubbed verify-webhook-signature endpoint
- Certificate primitive against a locally generated signing certificate

Test categories:
- Missing or empty transmission headers
- Byte-exact body handling
- Tampered bodies and signatures
- Untrusted certificate hosts
"""

import json

import httpx
import pytest

from subscriptions.models import WebhookEvent
from subscriptions.services import (
    CertificateSignatureVerifier,
    ProviderApiSignatureVerifier,
    ResilientRequestExecutor,
    WebhookVerifier,
)


# === Test Configuration ===

WEBHOOK_ID = "1JE4291016473214C"
VERIFY_PATH = "/v1/notifications/verify-webhook-signature"


@pytest.fixture
def api_verifier(executor: ResilientRequestExecutor) -> WebhookVerifier:
    return WebhookVerifier(WEBHOOK_ID, ProviderApiSignatureVerifier(executor))


@pytest.fixture
def cert_verifier(http_client: httpx.AsyncClient, serve_certificate: None) -> WebhookVerifier:
    return WebhookVerifier(WEBHOOK_ID, CertificateSignatureVerifier(http_client))


class TestHeaderExtraction:
    """Tests for transmission header handling."""

    @pytest.mark.asyncio
    async def test_missing_header_fails_without_provider_call(
        self, api_verifier: WebhookVerifier, paypal, signing_authority, make_webhook_body
    ) -> None:
        """A delivery lacking any PAYPAL-* header is rejected locally."""
        body = make_webhook_body("BILLING.SUBSCRIPTION.ACTIVATED")
        headers = signing_authority.headers(body)
        del headers["PAYPAL-TRANSMISSION-SIG"]

        assert await api_verifier.verify(WebhookEvent.from_request(body, headers)) is False
        assert paypal.calls("POST", VERIFY_PATH) == []

    @pytest.mark.asyncio
    async def test_headers_are_case_insensitive(
        self, cert_verifier: WebhookVerifier, signing_authority, make_webhook_body
    ) -> None:
        """Lower-case header names are accepted."""
        body = make_webhook_body("BILLING.SUBSCRIPTION.ACTIVATED")
        headers = {k.lower(): v for k, v in signing_authority.headers(body).items()}

        assert await cert_verifier.verify(WebhookEvent.from_request(body, headers)) is True

    @pytest.mark.asyncio
    async def test_empty_body_fails(self, api_verifier: WebhookVerifier, signing_authority) -> None:
        """An empty body never verifies."""
        headers = signing_authority.headers(b"")

        assert await api_verifier.verify(WebhookEvent.from_request(b"", headers)) is False


class TestProviderApiVerification:
    """Tests for the verify-webhook-signature primitive."""

    @pytest.mark.asyncio
    async def test_success_status_verifies(
        self, api_verifier: WebhookVerifier, paypal, signing_authority, make_webhook_body
    ) -> None:
        """verification_status SUCCESS means verified."""
        paypal.add("POST", VERIFY_PATH, httpx.Response(200, json={"verification_status": "SUCCESS"}))
        body = make_webhook_body("BILLING.SUBSCRIPTION.ACTIVATED")

        assert await api_verifier.verify(
            WebhookEvent.from_request(body, signing_authority.headers(body))
        ) is True

    @pytest.mark.asyncio
    async def test_failure_status_rejects(
        self, api_verifier: WebhookVerifier, paypal, signing_authority, make_webhook_body
    ) -> None:
        """verification_status FAILURE means rejected."""
        paypal.add("POST", VERIFY_PATH, httpx.Response(200, json={"verification_status": "FAILURE"}))
        body = make_webhook_body("BILLING.SUBSCRIPTION.ACTIVATED")

        assert await api_verifier.verify(
            WebhookEvent.from_request(body, signing_authority.headers(body))
        ) is False

    @pytest.mark.asyncio
    async def test_event_bytes_embedded_unchanged(
        self, api_verifier: WebhookVerifier, paypal, signing_authority, make_webhook_body
    ) -> None:
        """The raw body appears byte-for-byte inside the verification request."""
        paypal.add("POST", VERIFY_PATH, httpx.Response(200, json={"verification_status": "SUCCESS"}))
        body = make_webhook_body("BILLING.SUBSCRIPTION.ACTIVATED")
        headers = signing_authority.headers(body)

        await api_verifier.verify(WebhookEvent.from_request(body, headers))

        sent = paypal.calls("POST", VERIFY_PATH)[0].content
        assert sent.endswith(b'"webhook_event":' + body + b"}")
        document = json.loads(sent)
        assert document["webhook_id"] == WEBHOOK_ID
        assert document["transmission_id"] == headers["PAYPAL-TRANSMISSION-ID"]
        assert document["cert_url"] == headers["PAYPAL-CERT-URL"]
        assert document["webhook_event"]["event_type"] == "BILLING.SUBSCRIPTION.ACTIVATED"

    @pytest.mark.parametrize(
        "body",
        [b'[{"id": "WH-1"}]', b'"WH-1"', b'{"id": "WH-1", "event_type": ', b"\xff\xfe{}"],
        ids=["array", "string", "truncated", "not-utf8"],
    )
    @pytest.mark.asyncio
    async def test_non_object_body_rejected_without_provider_call(
        self, api_verifier: WebhookVerifier, paypal, signing_authority, body: bytes
    ) -> None:
        """Only a JSON object can be spliced into the verification request."""
        paypal.add("POST", VERIFY_PATH, httpx.Response(200, json={"verification_status": "SUCCESS"}))

        assert await api_verifier.verify(
            WebhookEvent.from_request(body, signing_authority.headers(body))
        ) is False
        assert paypal.calls("POST", VERIFY_PATH) == []

    @pytest.mark.asyncio
    async def test_provider_error_fails_closed(
        self, api_verifier: WebhookVerifier, paypal, signing_authority, make_webhook_body
    ) -> None:
        """An outage of the verification endpoint rejects instead of raising."""
        paypal.add("POST", VERIFY_PATH, httpx.Response(503))
        body = make_webhook_body("BILLING.SUBSCRIPTION.ACTIVATED")

        assert await api_verifier.verify(
            WebhookEvent.from_request(body, signing_authority.headers(body))
        ) is False


class TestCertificateVerification:
    """Tests for the local certificate primitive."""

    @pytest.mark.asyncio
    async def test_valid_signature_verifies(
        self, cert_verifier: WebhookVerifier, signing_authority, make_webhook_body
    ) -> None:
        """A delivery signed by the certificate key verifies."""
        body = make_webhook_body("BILLING.SUBSCRIPTION.CANCELLED")

        assert await cert_verifier.verify(
            WebhookEvent.from_request(body, signing_authority.headers(body))
        ) is True

    @pytest.mark.asyncio
    async def test_single_changed_byte_fails(
        self, cert_verifier: WebhookVerifier, signing_authority, make_webhook_body
    ) -> None:
        """Changing one byte of the body after signing breaks verification."""
        body = make_webhook_body("BILLING.SUBSCRIPTION.CANCELLED")
        headers = signing_authority.headers(body)
        tampered = body.replace(b"I-BW452GLLEP1G", b"I-BW452GLLEP1H")

        assert await cert_verifier.verify(WebhookEvent.from_request(tampered, headers)) is False

    @pytest.mark.asyncio
    async def test_reserialized_body_fails(
        self, cert_verifier: WebhookVerifier, signing_authority, make_webhook_body
    ) -> None:
        """Semantically equal JSON with different bytes does not verify."""
        body = make_webhook_body("BILLING.SUBSCRIPTION.CANCELLED")
        headers = signing_authority.headers(body)
        reserialized = json.dumps(json.loads(body)).encode()

        assert reserialized != body
        assert await cert_verifier.verify(WebhookEvent.from_request(reserialized, headers)) is False

    @pytest.mark.asyncio
    async def test_signature_for_other_webhook_id_fails(
        self, cert_verifier: WebhookVerifier, signing_authority, make_webhook_body
    ) -> None:
        """Signatures are bound to our webhook ID."""
        body = make_webhook_body("BILLING.SUBSCRIPTION.CANCELLED")
        headers = signing_authority.headers(body, webhook_id="OTHER-WEBHOOK")

        assert await cert_verifier.verify(WebhookEvent.from_request(body, headers)) is False

    @pytest.mark.asyncio
    async def test_untrusted_certificate_host_fails(
        self, cert_verifier: WebhookVerifier, paypal, signing_authority, make_webhook_body
    ) -> None:
        """Certificates are never fetched from non-PayPal hosts."""
        body = make_webhook_body("BILLING.SUBSCRIPTION.CANCELLED")
        headers = signing_authority.headers(body)
        headers["PAYPAL-CERT-URL"] = "https://evil.example.com/cert.pem"

        assert await cert_verifier.verify(WebhookEvent.from_request(body, headers)) is False
        assert paypal.calls("GET", "/cert.pem") == []

    @pytest.mark.asyncio
    async def test_unsupported_algorithm_fails(
        self, cert_verifier: WebhookVerifier, signing_authority, make_webhook_body
    ) -> None:
        """Only SHA256withRSA is accepted."""
        body = make_webhook_body("BILLING.SUBSCRIPTION.CANCELLED")
        headers = signing_authority.headers(body)
        headers["PAYPAL-AUTH-ALGO"] = "SHA1withRSA"

        assert await cert_verifier.verify(WebhookEvent.from_request(body, headers)) is False

    @pytest.mark.asyncio
    async def test_certificate_fetched_once(
        self, cert_verifier: WebhookVerifier, paypal, signing_authority, make_webhook_body
    ) -> None:
        """The signing certificate is cached per URL."""
        body = make_webhook_body("BILLING.SUBSCRIPTION.CANCELLED")
        headers = signing_authority.headers(body)

        await cert_verifier.verify(WebhookEvent.from_request(body, headers))
        await cert_verifier.verify(WebhookEvent.from_request(body, headers))

        cert_path = httpx.URL(headers["PAYPAL-CERT-URL"]).path
        assert len(paypal.calls("GET", cert_path)) == 1
