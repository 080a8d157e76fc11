"""Credential store for PayPal client credentials.

Loads the client ID, client secret and webhook ID for each provider mode
from SSM Parameter Store, once per process. Lookups are read-only.
"""

import logging
import threading
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import SecretStr

from subscriptions.models import Credential, CredentialsUnavailable, ProviderMode

logger = logging.getLogger(__name__)

CREDENTIAL_FIELDS = ("client_id", "client_secret", "webhook_id")


class CredentialStore:
    """Read-only access to provider credentials, keyed by mode.

    Parameter layout:
        {prefix}/paypal/{mode}/client_id
        {prefix}/paypal/{mode}/client_secret
        {prefix}/paypal/{mode}/webhook_id
        {prefix}/encryption/index_key

    Usage:
        store = CredentialStore(prefix="/subscriptions/dev")
        credential = store.get(ProviderMode.SANDBOX)
    """

    def __init__(self, prefix: str, ssm_client: Any | None = None) -> None:
        """Initialize credential store.

        Args:
            prefix: Environment path prefix, e.g. "/subscriptions/dev"
            ssm_client: boto3 SSM client. Created on first use when omitted.
        """
        self._prefix = prefix.rstrip("/")
        self._client = ssm_client
        self._credentials: dict[ProviderMode, Credential] = {}
        self._lock = threading.Lock()

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("ssm")
        return self._client

    def get(self, mode: ProviderMode) -> Credential:
        """Get the credential set for a provider mode.

        Args:
            mode: sandbox or live

        Returns:
            Immutable Credential

        Raises:
            CredentialsUnavailable: If any parameter cannot be read
        """
        credential = self._credentials.get(mode)
        if credential is not None:
            return credential

        with self._lock:
            credential = self._credentials.get(mode)
            if credential is None:
                credential = self._load(mode)
                self._credentials[mode] = credential
        return credential

    def get_index_key(self) -> bytes:
        """Get the HMAC key used to build blind indexes of provider IDs.

        Raises:
            CredentialsUnavailable: If the key cannot be read
        """
        name = f"{self._prefix}/encryption/index_key"
        try:
            response = self.client.get_parameter(Name=name, WithDecryption=True)
        except (ClientError, BotoCoreError) as e:
            logger.error("Blind index key unavailable at %s: %s", name, e)
            raise CredentialsUnavailable("Blind index key is not configured") from e
        return response["Parameter"]["Value"].encode()

    def _load(self, mode: ProviderMode) -> Credential:
        path = f"{self._prefix}/paypal/{mode.value}"
        try:
            values = self._read_path(path)
        except (ClientError, BotoCoreError) as e:
            logger.error("Provider credentials unavailable for mode %s: %s", mode.value, e)
            raise CredentialsUnavailable(
                f"Provider credentials are not configured for mode {mode.value}"
            ) from e

        missing = [field for field in CREDENTIAL_FIELDS if not values.get(field)]
        if missing:
            logger.error(
                "Provider credentials incomplete for mode %s, missing %s",
                mode.value,
                ", ".join(missing),
            )
            raise CredentialsUnavailable(
                f"Provider credentials are not configured for mode {mode.value}"
            )

        logger.info("Loaded provider credentials for mode %s", mode.value)
        return Credential(
            client_id=values["client_id"],
            client_secret=SecretStr(values["client_secret"]),
            webhook_id=values["webhook_id"],
            mode=mode,
        )

    def _read_path(self, path: str) -> dict[str, str]:
        """Read every parameter directly under path, keyed by its last segment."""
        values: dict[str, str] = {}
        paginator = self.client.get_paginator("get_parameters_by_path")
        for page in paginator.paginate(Path=path, Recursive=False, WithDecryption=True):
            for parameter in page.get("Parameters", []):
                values[parameter["Name"].rsplit("/", 1)[-1]] = parameter["Value"]
        return values
