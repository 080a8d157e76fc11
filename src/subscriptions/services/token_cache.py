"""Access token cache for the PayPal client-credentials grant.

One TokenCache exists per credential set (one per provider mode). It is the
only shared mutable state in the provider integration: a single asyncio lock
serializes check-expiry/refresh/cache so a burst of callers with no valid
token produces exactly one mint request.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import httpx

from subscriptions.models import (
    AccessToken,
    AuthenticationError,
    Credential,
    MalformedProviderResponse,
    ProviderUnavailable,
)
from subscriptions.utils.logging import get_logger, log_provider_call

logger = get_logger(__name__)

TOKEN_PATH = "/v1/oauth2/token"

# Statuses PayPal uses to reject a client-credentials exchange
_CREDENTIAL_REJECTED_STATUSES = {400, 401, 403}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCache:
    """Caches the bearer token and mints a new one when it nears expiry.

    Usage:
        cache = TokenCache(credential, http_client)
        token = await cache.get_valid_token()
        ...
        cache.invalidate(token)  # after the provider answered 401
    """

    def __init__(
        self,
        credential: Credential,
        client: httpx.AsyncClient,
        *,
        safety_margin: timedelta = timedelta(seconds=60),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize token cache.

        Args:
            credential: Client credentials used for the grant
            client: HTTP client with the provider base URL configured
            safety_margin: Time before expires_at at which a token counts as expired
            clock: Source of the current UTC time
        """
        self._credential = credential
        self._client = client
        self._safety_margin = safety_margin
        self._clock = clock
        self._token: AccessToken | None = None
        self._lock = asyncio.Lock()

    @property
    def mode(self) -> str:
        return self._credential.mode.value

    async def get_valid_token(self) -> AccessToken:
        """Return the cached token, minting a new one if needed.

        Concurrent callers queue on the lock; the first one refreshes and the
        rest observe the refreshed token.

        Returns:
            Unexpired AccessToken

        Raises:
            AuthenticationError: Provider rejected the client credentials
            ProviderUnavailable: Token endpoint unreachable or failing
            MalformedProviderResponse: Token response lacked an access token
        """
        async with self._lock:
            token = self._token
            if token is not None and not token.is_expired(self._clock(), self._safety_margin):
                return token

            token = await self._mint()
            self._token = token
            return token

    def invalidate(self, stale: AccessToken | None = None) -> None:
        """Forcibly expire the cached token.

        Args:
            stale: The token the provider rejected. When given, the cache is
                only cleared if it still holds that token, so a token minted
                meanwhile by another caller survives.
        """
        if stale is not None and self._token != stale:
            return
        if self._token is not None:
            logger.info("Access token invalidated for mode %s", self.mode)
        self._token = None

    async def _mint(self) -> AccessToken:
        log_provider_call(logger, "mint_token", method="POST", path=TOKEN_PATH)
        try:
            response = await self._client.post(
                TOKEN_PATH,
                data={"grant_type": "client_credentials"},
                auth=(
                    self._credential.client_id,
                    self._credential.client_secret.get_secret_value(),
                ),
                headers={"Accept": "application/json"},
            )
        except httpx.TransportError as e:
            error = f"{type(e).__name__}: {e}"
            log_provider_call(logger, "mint_token", method="POST", path=TOKEN_PATH, error=error)
            raise ProviderUnavailable(
                "Token endpoint unreachable", last_error=error, attempts=1
            ) from e

        status = response.status_code
        if status in _CREDENTIAL_REJECTED_STATUSES:
            log_provider_call(
                logger,
                "mint_token",
                method="POST",
                path=TOKEN_PATH,
                status_code=status,
                error="credentials rejected",
            )
            raise AuthenticationError(
                f"Provider rejected client credentials with status {status}"
            )
        if not response.is_success:
            log_provider_call(
                logger,
                "mint_token",
                method="POST",
                path=TOKEN_PATH,
                status_code=status,
                error="token endpoint failure",
            )
            raise ProviderUnavailable(
                f"Token endpoint answered {status}", last_status=status, attempts=1
            )

        try:
            data = response.json()
            value = data["access_token"]
            expires_in = int(data.get("expires_in", 0))
        except (ValueError, KeyError, TypeError) as e:
            raise MalformedProviderResponse("Token response missing access_token") from e

        token = AccessToken(
            value=value,
            expires_at=self._clock() + timedelta(seconds=expires_in),
            token_type=data.get("token_type") or "Bearer",
            app_id=data.get("app_id"),
        )
        logger.info(
            "Access token minted for mode %s, expires at %s",
            self.mode,
            token.expires_at.isoformat(),
        )
        return token
