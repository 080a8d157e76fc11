"""Encryption at rest for sensitive subscription fields.

Metadata, subscriber email and the provider subscription ID are encrypted
with the AWS Encryption SDK under a KMS key before they reach DynamoDB.
Lookups by provider subscription ID go through a blind index: an HMAC of the
ID under a key held in SSM, so equality queries work without plaintext.
"""

import base64
import hashlib
import hmac
import logging
from typing import Protocol

import aws_encryption_sdk
from aws_encryption_sdk import CommitmentPolicy

logger = logging.getLogger(__name__)

# Bound into every ciphertext together with the field name, checked on decrypt
ENCRYPTION_PURPOSE = "subscription-metadata"


def encryption_context(field: str) -> dict[str, str]:
    return {"purpose": ENCRYPTION_PURPOSE, "field": field}


class MetadataCipher(Protocol):
    """Symmetric encryption of opaque bytes."""

    def encrypt(self, plaintext: bytes, field: str) -> bytes: ...

    def decrypt(self, ciphertext: bytes, field: str) -> bytes: ...


class KmsMetadataCipher:
    """MetadataCipher backed by the AWS Encryption SDK and a KMS key.

    Usage:
        cipher = KmsMetadataCipher(key_arn)
        stored = cipher.encrypt(b'{"plan_id": "P-123"}', field="metadata")
    """

    def __init__(self, key_arn: str) -> None:
        """Initialize cipher.

        Args:
            key_arn: ARN of the KMS key that wraps data keys

        Raises:
            ValueError: If no key ARN is configured
        """
        if not key_arn:
            raise ValueError("KMS_KEY_ARN is not configured")
        self._client = aws_encryption_sdk.EncryptionSDKClient(
            commitment_policy=CommitmentPolicy.REQUIRE_ENCRYPT_REQUIRE_DECRYPT
        )
        self._key_provider = aws_encryption_sdk.StrictAwsKmsMasterKeyProvider(
            key_ids=[key_arn]
        )

    def encrypt(self, plaintext: bytes, field: str) -> bytes:
        ciphertext, _ = self._client.encrypt(
            source=plaintext,
            key_provider=self._key_provider,
            encryption_context=encryption_context(field),
        )
        return ciphertext

    def decrypt(self, ciphertext: bytes, field: str) -> bytes:
        """Decrypt and check the ciphertext was produced for this field.

        Raises:
            ValueError: If the encryption context does not match
        """
        plaintext, header = self._client.decrypt(
            source=ciphertext, key_provider=self._key_provider
        )
        context = header.encryption_context
        for key, value in encryption_context(field).items():
            if context.get(key) != value:
                logger.error("Encryption context mismatch on decrypt of %s", field)
                raise ValueError("Encryption context mismatch")
        return plaintext


def encrypt_text(cipher: MetadataCipher, value: str, field: str) -> str:
    """Encrypt a string and return base64 text suitable for a DynamoDB S attribute."""
    return base64.b64encode(cipher.encrypt(value.encode("utf-8"), field)).decode("ascii")


def decrypt_text(cipher: MetadataCipher, value: str, field: str) -> str:
    """Reverse encrypt_text."""
    return cipher.decrypt(base64.b64decode(value), field).decode("utf-8")


def blind_index(value: str, key: bytes) -> str:
    """Deterministic keyed hash used to look up encrypted values.

    Args:
        value: Plaintext to index (e.g. "I-BW452GLLEP1G")
        key: HMAC key

    Returns:
        Hex HMAC-SHA256 digest
    """
    return hmac.new(key, value.encode("utf-8"), hashlib.sha256).hexdigest()
