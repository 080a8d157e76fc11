"""FastAPI dependency injection providers for the subscription services.

Factory functions are cached with @lru_cache so each service is built once
per process. The token cache lives inside the executor, so one provider mode
has exactly one token cache.

Service Dependency Graph:
    Settings (get_settings)
    SSM client ── CredentialStore
    httpx.AsyncClient ── TokenCache ── ResilientRequestExecutor
                                              └── WebhookVerifier
    DynamoDBService ── SubscriptionRepository (+ KmsMetadataCipher, index key)
                    │       └── SubscriptionStateMachine
                    └── WebhookEventLog
    SubscriptionOrchestrator (all of the above)

Testing:
    Override get_orchestrator via app.dependency_overrides, and use
    reset_services() to clear cached instances between tests.
"""

from datetime import timedelta
from functools import lru_cache

import httpx
from fastapi import Request

from subscriptions.config import Settings, get_settings
from subscriptions.models import AuthenticationRequired, SignatureVerificationMethod
from subscriptions.services import (
    CertificateSignatureVerifier,
    CredentialStore,
    KmsMetadataCipher,
    ProviderApiSignatureVerifier,
    ResilientRequestExecutor,
    SignaturePrimitive,
    SubscriptionOrchestrator,
    SubscriptionRepository,
    SubscriptionStateMachine,
    TokenCache,
    WebhookEventLog,
    WebhookVerifier,
    create_http_client,
    get_dynamodb_service,
)


def get_user_sub(request: Request) -> str:
    """Extract the authenticated user from the x-user-sub header.

    API Gateway validates the JWT and passes the sub claim in this header.

    Raises:
        AuthenticationRequired: If the header is missing or empty
    """
    user_sub = request.headers.get("x-user-sub")
    if not user_sub:
        raise AuthenticationRequired()
    return user_sub


@lru_cache
def get_credential_store() -> CredentialStore:
    """Get cached CredentialStore backed by SSM Parameter Store."""
    return CredentialStore(prefix=get_settings().ssm_prefix)


@lru_cache
def get_http_client() -> httpx.AsyncClient:
    """Get the shared async HTTP client bound to the provider base URL."""
    settings = get_settings()
    return create_http_client(settings.base_url, timeout=settings.request_timeout_seconds)


@lru_cache
def get_request_executor() -> ResilientRequestExecutor:
    """Get cached ResilientRequestExecutor with its token cache.

    Returns:
        Executor for the configured provider mode.
    """
    settings = get_settings()
    credential = get_credential_store().get(settings.mode)
    tokens = TokenCache(
        credential,
        get_http_client(),
        safety_margin=timedelta(seconds=settings.token_safety_margin_seconds),
    )
    return ResilientRequestExecutor(
        get_http_client(),
        tokens,
        max_attempts=settings.max_attempts,
        backoff_base=settings.backoff_base_seconds,
        timeout=settings.request_timeout_seconds,
    )


def _signature_primitive(settings: Settings) -> SignaturePrimitive:
    if settings.webhook_verification == SignatureVerificationMethod.CERTIFICATE:
        return CertificateSignatureVerifier(get_http_client())
    return ProviderApiSignatureVerifier(get_request_executor())


@lru_cache
def get_webhook_verifier() -> WebhookVerifier:
    """Get cached WebhookVerifier using the configured signature primitive."""
    settings = get_settings()
    credential = get_credential_store().get(settings.mode)
    return WebhookVerifier(credential.webhook_id, _signature_primitive(settings))


@lru_cache
def get_subscription_repository() -> SubscriptionRepository:
    """Get cached SubscriptionRepository with KMS encryption and blind index."""
    settings = get_settings()
    return SubscriptionRepository(
        dynamodb=get_dynamodb_service(settings.environment),
        cipher=KmsMetadataCipher(settings.kms_key_arn or ""),
        index_key=get_credential_store().get_index_key(),
    )


@lru_cache
def get_state_machine() -> SubscriptionStateMachine:
    """Get cached SubscriptionStateMachine."""
    return SubscriptionStateMachine(get_subscription_repository())


@lru_cache
def get_webhook_event_log() -> WebhookEventLog:
    """Get cached WebhookEventLog."""
    return WebhookEventLog(get_dynamodb_service(get_settings().environment))


@lru_cache
def get_orchestrator() -> SubscriptionOrchestrator:
    """Get cached SubscriptionOrchestrator.

    Returns:
        Orchestrator wired with all provider and persistence services.
    """
    return SubscriptionOrchestrator(
        executor=get_request_executor(),
        verifier=get_webhook_verifier(),
        state_machine=get_state_machine(),
        repository=get_subscription_repository(),
        event_log=get_webhook_event_log(),
        settings=get_settings(),
    )


def reset_services() -> None:
    """Clear all cached service instances.

    Call this in test fixtures to ensure clean state between tests.
    Also resets the underlying DynamoDB singleton.
    """
    from subscriptions.services import reset_dynamodb_service

    get_orchestrator.cache_clear()
    get_webhook_event_log.cache_clear()
    get_state_machine.cache_clear()
    get_subscription_repository.cache_clear()
    get_webhook_verifier.cache_clear()
    get_request_executor.cache_clear()
    get_http_client.cache_clear()
    get_credential_store.cache_clear()
    get_settings.cache_clear()

    reset_dynamodb_service()
