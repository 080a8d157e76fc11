"""Pytest configuration and fixtures for the subscription service tests.

This module provides reusable fixtures for testing:
- DynamoDB and SSM mocking with moto
- A reversible fake cipher standing in for KMS
- A stubbed PayPal API on httpx.MockTransport
- A self-signed signing certificate for webhook signatures
"""

import base64
import json
import os
import random
import zlib
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, Generator

import boto3
import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID
from moto import mock_aws
from pydantic import SecretStr

# === Environment Setup ===

os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-subscriptions")
os.environ.setdefault("ENVIRONMENT", "test")

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from subscriptions.config import Settings, get_settings  # noqa: E402
from subscriptions.models import Credential, ProviderMode  # noqa: E402
from subscriptions.services import (  # noqa: E402
    DynamoDBService,
    ResilientRequestExecutor,
    SubscriptionRepository,
    TokenCache,
    WebhookEventLog,
    reset_dynamodb_service,
)

# === Test Configuration ===

BASE_URL = "https://api-m.sandbox.paypal.com"
CERT_URL = "https://api.sandbox.paypal.com/v1/notifications/certs/CERT-360caa42-fca2a594-test"
WEBHOOK_ID = "1JE4291016473214C"
INDEX_KEY = b"test-blind-index-key"
TABLE_PREFIX = "test-subscriptions"


# === Singleton Reset ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset cached services before and after each test.

    Tests using mock_aws get fresh boto3 clients inside the mock context.
    """
    reset_dynamodb_service()
    get_settings.cache_clear()
    yield
    reset_dynamodb_service()
    get_settings.cache_clear()


# === AWS Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def mock_aws_env(aws_credentials: None) -> Generator[None, None, None]:
    """Activate moto for DynamoDB and SSM."""
    with mock_aws():
        yield


@pytest.fixture
def create_tables(mock_aws_env: None) -> None:
    """Create the subscriptions and webhook-events tables."""
    client = boto3.client("dynamodb", region_name="eu-west-1")
    client.create_table(
        TableName=f"{TABLE_PREFIX}-subscriptions",
        KeySchema=[{"AttributeName": "subscription_id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "subscription_id", "AttributeType": "S"},
            {"AttributeName": "status", "AttributeType": "S"},
            {"AttributeName": "created_at", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "status-index",
                "KeySchema": [
                    {"AttributeName": "status", "KeyType": "HASH"},
                    {"AttributeName": "created_at", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    client.create_table(
        TableName=f"{TABLE_PREFIX}-webhook-events",
        KeySchema=[{"AttributeName": "event_id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "event_id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def dynamodb(create_tables: None) -> DynamoDBService:
    return DynamoDBService("test")


class FakeCipher:
    """Reversible stand-in for KmsMetadataCipher.

    Output never contains the plaintext bytes and is bound to the field name.
    """

    PREFIX = b"fake-kms:"

    def encrypt(self, plaintext: bytes, field: str) -> bytes:
        return self.PREFIX + field.encode() + b":" + bytes(b ^ 0x5A for b in plaintext)

    def decrypt(self, ciphertext: bytes, field: str) -> bytes:
        header = self.PREFIX + field.encode() + b":"
        if not ciphertext.startswith(header):
            raise ValueError("Encryption context mismatch")
        return bytes(b ^ 0x5A for b in ciphertext[len(header):])


@pytest.fixture
def cipher() -> FakeCipher:
    return FakeCipher()


@pytest.fixture
def repository(dynamodb: DynamoDBService, cipher: FakeCipher) -> SubscriptionRepository:
    return SubscriptionRepository(dynamodb, cipher, INDEX_KEY)


@pytest.fixture
def event_log(dynamodb: DynamoDBService) -> WebhookEventLog:
    return WebhookEventLog(dynamodb)


# === Settings & Credentials ===


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        product_id="PROD-XXCD1234QWER65782",
        brand_name="Acme Streaming",
        frontend_url="https://app.example.com",
        api_base_url="https://api.example.com",
    )


@pytest.fixture
def credential() -> Credential:
    return Credential(
        client_id="test-client-id",
        client_secret=SecretStr("test-client-secret"),
        webhook_id=WEBHOOK_ID,
        mode=ProviderMode.SANDBOX,
    )


# === PayPal Stub ===


Handler = Callable[[httpx.Request], httpx.Response]


class PayPalStub:
    """Scriptable PayPal API for httpx.MockTransport.

    Queue responses per (method, path); the last queued response repeats.
    The token endpoint answers automatically unless scripted.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_requests = 0
        self._routes: dict[tuple[str, str], list[httpx.Response | Handler]] = defaultdict(list)

    def add(self, method: str, path: str, *responses: httpx.Response | Handler) -> None:
        self._routes[(method, path)].extend(responses)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, request.url.path)
        if key == ("POST", "/v1/oauth2/token"):
            self.token_requests += 1
            if key not in self._routes:
                return httpx.Response(
                    200,
                    json={
                        "access_token": f"A21AA-token-{self.token_requests}",
                        "token_type": "Bearer",
                        "expires_in": 32400,
                        "app_id": "APP-80W284485P519543T",
                    },
                )
        else:
            self.requests.append(request)

        queue = self._routes.get(key)
        if not queue:
            return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND", "debug_id": "dbg-404"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(response):
            return response(request)
        return response


@pytest.fixture
def paypal() -> PayPalStub:
    return PayPalStub()


@pytest.fixture
def http_client(paypal: PayPalStub) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(paypal.handler))


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def token_cache(credential: Credential, http_client: httpx.AsyncClient) -> TokenCache:
    return TokenCache(credential, http_client)


@pytest.fixture
def executor(
    http_client: httpx.AsyncClient, token_cache: TokenCache, sleep: RecordingSleep
) -> ResilientRequestExecutor:
    return ResilientRequestExecutor(
        http_client, token_cache, sleep=sleep, rng=random.Random(7)
    )


# === Webhook Signing ===


class SigningAuthority:
    """Self-signed certificate and key that sign webhook deliveries."""

    def __init__(self) -> None:
        self.key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "messageverificationcerts.paypal.com")])
        now = datetime.now(timezone.utc)
        self.certificate = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(self.key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=1))
            .not_valid_after(now + timedelta(days=30))
            .sign(self.key, hashes.SHA256())
        )
        self.pem = self.certificate.public_bytes(serialization.Encoding.PEM)

    def headers(
        self,
        body: bytes,
        transmission_id: str = "69cd13f0-d67a-11e5-baa3-778b53f4ae55",
        transmission_time: str = "2024-02-16T20:19:10Z",
        webhook_id: str = WEBHOOK_ID,
    ) -> dict[str, str]:
        message = f"{transmission_id}|{transmission_time}|{webhook_id}|{zlib.crc32(body)}"
        signature = self.key.sign(message.encode(), padding.PKCS1v15(), hashes.SHA256())
        return {
            "PAYPAL-AUTH-ALGO": "SHA256withRSA",
            "PAYPAL-CERT-URL": CERT_URL,
            "PAYPAL-TRANSMISSION-ID": transmission_id,
            "PAYPAL-TRANSMISSION-SIG": base64.b64encode(signature).decode(),
            "PAYPAL-TRANSMISSION-TIME": transmission_time,
        }


@pytest.fixture(scope="session")
def signing_authority() -> SigningAuthority:
    return SigningAuthority()


@pytest.fixture
def serve_certificate(paypal: PayPalStub, signing_authority: SigningAuthority) -> None:
    """Serve the signing certificate from the stubbed PayPal host."""
    paypal.add(
        "GET",
        httpx.URL(CERT_URL).path,
        httpx.Response(200, content=signing_authority.pem),
    )


def _webhook_body(
    event_type: str,
    resource_id: str = "I-BW452GLLEP1G",
    event_id: str = "WH-2WR32451HC0233532-67976317FL4543714",
) -> bytes:
    """Build a PayPal webhook body as PayPal would serialize it."""
    return json.dumps(
        {
            "id": event_id,
            "event_version": "1.0",
            "create_time": "2024-02-16T20:19:09.000Z",
            "resource_type": "subscription",
            "event_type": event_type,
            "summary": f"Subscription event {event_type}",
            "resource": {
                "id": resource_id,
                "plan_id": "P-123",
                "status": "ACTIVE",
            },
        },
        separators=(",", ":"),
    ).encode()


def _subscription_response(
    provider_subscription_id: str = "I-BW452GLLEP1G", links: list[dict[str, Any]] | None = None
) -> dict[str, Any]:
    """A PayPal create-subscription response with the approve link second-to-last."""
    return {
        "id": provider_subscription_id,
        "status": "APPROVAL_PENDING",
        "plan_id": "P-123",
        "create_time": "2024-02-16T20:19:09Z",
        "links": links
        or [
            {
                "href": f"{BASE_URL}/v1/billing/subscriptions/{provider_subscription_id}",
                "rel": "self",
                "method": "GET",
            },
            {
                "href": f"{BASE_URL}/v1/billing/subscriptions/{provider_subscription_id}",
                "rel": "edit",
                "method": "PATCH",
            },
            {
                "href": "https://www.sandbox.paypal.com/webapps/billing/subscriptions?ba_token=BA-2M539689T3856352J",
                "rel": "approve",
                "method": "GET",
            },
        ],
    }


@pytest.fixture
def make_webhook_body() -> Callable[..., bytes]:
    return _webhook_body


@pytest.fixture
def make_subscription_response() -> Callable[..., dict[str, Any]]:
    return _subscription_response
