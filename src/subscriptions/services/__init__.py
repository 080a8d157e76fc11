"""Services for the PayPal subscription integration."""

from .credential_store import CredentialStore
from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .metadata_cipher import KmsMetadataCipher, MetadataCipher, blind_index
from .orchestrator import SubscriptionOrchestrator
from .request_executor import ResilientRequestExecutor, create_http_client
from .state_machine import (
    EVENT_TYPE_TRIGGERS,
    TRANSITIONS,
    SubscriptionStateMachine,
    TransitionListener,
    trigger_for_event_type,
)
from .subscription_repository import SubscriptionRepository
from .token_cache import TokenCache
from .webhook_event_log import WebhookEventLog
from .webhook_verifier import (
    CertificateSignatureVerifier,
    ProviderApiSignatureVerifier,
    SignaturePrimitive,
    WebhookVerifier,
)

__all__ = [
    "CertificateSignatureVerifier",
    "CredentialStore",
    "DynamoDBService",
    "EVENT_TYPE_TRIGGERS",
    "KmsMetadataCipher",
    "MetadataCipher",
    "ProviderApiSignatureVerifier",
    "ResilientRequestExecutor",
    "SignaturePrimitive",
    "SubscriptionOrchestrator",
    "SubscriptionRepository",
    "SubscriptionStateMachine",
    "TRANSITIONS",
    "TokenCache",
    "TransitionListener",
    "WebhookEventLog",
    "WebhookVerifier",
    "blind_index",
    "create_http_client",
    "get_dynamodb_service",
    "reset_dynamodb_service",
    "trigger_for_event_type",
]
