"""Resilient executor for authenticated PayPal REST calls.

Classifies every outcome:
- 2xx: success, parsed JSON body returned
- 401: token invalidated, one retry with a fresh token (outside the retry budget)
- other 4xx: RequestRejected, never retried
- 5xx / transport failure / timeout: retried with exponential backoff and jitter

A failing token endpoint counts as a retryable failure; rejected client
credentials do not. Retries run on tenacity with a wait that never shrinks
between attempts.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from subscriptions.models import (
    AccessToken,
    AuthenticationError,
    MalformedProviderResponse,
    ProviderRequest,
    ProviderUnavailable,
    RequestRejected,
)
from subscriptions.utils.logging import get_logger, log_provider_call

from .token_cache import TokenCache

logger = get_logger(__name__)

IDEMPOTENCY_HEADER = "PayPal-Request-Id"


def create_http_client(base_url: str, timeout: float = 15.0) -> httpx.AsyncClient:
    """Create the shared async HTTP client for provider calls.

    Args:
        base_url: Provider API base URL
        timeout: Per-attempt timeout in seconds

    Returns:
        httpx.AsyncClient bound to the provider
    """
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(timeout),
        headers={"Accept": "application/json"},
    )


class RetryableProviderFailure(Exception):
    """A 5xx answer or transport failure. Consumes one attempt of the budget."""

    def __init__(self, status: int | None, error: str) -> None:
        self.status = status
        self.error = error
        super().__init__(error)


class wait_non_decreasing_jitter(wait_base):
    """Exponential wait with proportional jitter, never shorter than the previous wait.

    Holds the previous delay, so use one instance per logical call.
    """

    def __init__(self, base: float, cap: float, jitter: float, rng: random.Random) -> None:
        self._exponential = wait_exponential(multiplier=base, max=cap)
        self._jitter = jitter
        self._rng = rng
        self._previous = 0.0

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self._exponential(retry_state)
        spread = delay * self._jitter
        delay = max(0.0, delay + self._rng.uniform(-spread, spread), self._previous)
        self._previous = delay
        return delay


class ResilientRequestExecutor:
    """Sends ProviderRequests with auth, idempotency keys and bounded retries.

    Usage:
        executor = ResilientRequestExecutor(client, token_cache)
        plan = await executor.execute(
            ProviderRequest(path="/v1/billing/plans", body=payload)
        )
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        tokens: TokenCache,
        *,
        max_attempts: int = 3,
        backoff_base: float = 0.2,
        backoff_cap: float = 5.0,
        jitter: float = 0.25,
        timeout: float = 15.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            client: HTTP client with the provider base URL configured
            tokens: Token cache for the same credential set
            max_attempts: Attempts allowed for 5xx/transport failures
            backoff_base: Delay before the first retry, in seconds
            backoff_cap: Upper bound for a single delay, before jitter
            jitter: Relative jitter, 0.25 means +/-25 percent
            timeout: Per-attempt timeout in seconds
            sleep: Awaitable sleep, replaceable in tests
            rng: Random source for jitter
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = client
        self._tokens = tokens
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap
        self._jitter = jitter
        self._timeout = timeout
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def tokens(self) -> TokenCache:
        return self._tokens

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_non_decreasing_jitter(
                self._backoff_base, self._backoff_cap, self._jitter, self._rng
            ),
            retry=retry_if_exception_type(RetryableProviderFailure),
            sleep=self._sleep,
        )

    async def execute(self, request: ProviderRequest) -> dict[str, Any]:
        """Perform a provider call.

        Caller cancellation propagates out of the pending send or backoff
        sleep; no further attempt is made afterwards.

        Args:
            request: Logical operation; its idempotency key is reused on every retry

        Returns:
            Parsed JSON body ({} for an empty 2xx body)

        Raises:
            AuthenticationError: Token rejected twice, or credentials rejected
            RequestRejected: Provider answered 4xx other than 401
            ProviderUnavailable: Retry budget exhausted
            MalformedProviderResponse: Unusable 2xx body or unexpected status
        """
        reauth = {"used": False}
        try:
            async for attempt in self._retrying():
                with attempt:
                    return await self._attempt(
                        request, attempt.retry_state.attempt_number, reauth
                    )
        except RetryError as e:
            last = e.last_attempt
            failure = last.exception()
            status = failure.status if isinstance(failure, RetryableProviderFailure) else None
            error = failure.error if isinstance(failure, RetryableProviderFailure) else None
            raise ProviderUnavailable(
                f"Provider unavailable after {last.attempt_number} attempts",
                last_status=status,
                last_error=error,
                attempts=last.attempt_number,
            ) from failure
        raise AssertionError("unreachable: retrying yields until success or RetryError")

    async def _attempt(
        self, request: ProviderRequest, attempt: int, reauth: dict[str, bool]
    ) -> dict[str, Any]:
        """One budgeted attempt, including the single 401 refresh."""
        while True:
            try:
                token = await self._tokens.get_valid_token()
            except ProviderUnavailable as e:
                self._log_failure(request, attempt, e.last_status, e.last_error or e.message)
                raise RetryableProviderFailure(e.last_status, e.last_error or e.message) from e

            try:
                response = await self._send(request, token)
            except httpx.TransportError as e:
                error = f"{type(e).__name__}: {e}"
                self._log_failure(request, attempt, None, error)
                raise RetryableProviderFailure(None, error) from e

            status = response.status_code
            if response.is_success:
                log_provider_call(
                    logger,
                    "execute",
                    method=request.method,
                    path=request.path,
                    attempt=attempt,
                    status_code=status,
                    idempotency_key=request.idempotency_key,
                )
                return self._parse_body(request, response)

            if status == 401:
                if reauth["used"]:
                    log_provider_call(
                        logger,
                        "execute",
                        method=request.method,
                        path=request.path,
                        attempt=attempt,
                        status_code=status,
                        idempotency_key=request.idempotency_key,
                        error="fresh token rejected",
                    )
                    raise AuthenticationError("Provider rejected a freshly minted access token")
                reauth["used"] = True
                self._tokens.invalidate(token)
                log_provider_call(
                    logger,
                    "execute",
                    method=request.method,
                    path=request.path,
                    attempt=attempt,
                    status_code=status,
                    idempotency_key=request.idempotency_key,
                    error="token rejected, refreshing",
                    retrying=True,
                )
                continue

            error_name, debug_id, message = _error_details(response)
            if 400 <= status < 500:
                log_provider_call(
                    logger,
                    "execute",
                    method=request.method,
                    path=request.path,
                    attempt=attempt,
                    status_code=status,
                    idempotency_key=request.idempotency_key,
                    debug_id=debug_id,
                    error=error_name or "rejected",
                )
                raise RequestRejected(status, error_name, debug_id, message)

            if status < 500:
                raise MalformedProviderResponse(f"Unexpected provider status {status}")

            error = f"HTTP {status}" + (f" debug_id={debug_id}" if debug_id else "")
            self._log_failure(request, attempt, status, error)
            raise RetryableProviderFailure(status, error)

    def _log_failure(
        self, request: ProviderRequest, attempt: int, status: int | None, error: str
    ) -> None:
        log_provider_call(
            logger,
            "execute",
            method=request.method,
            path=request.path,
            attempt=attempt,
            status_code=status,
            idempotency_key=request.idempotency_key,
            error=error,
            retrying=attempt < self._max_attempts,
        )

    async def _send(self, request: ProviderRequest, token: AccessToken) -> httpx.Response:
        headers = {
            "Authorization": token.authorization_header,
            IDEMPOTENCY_HEADER: request.idempotency_key,
            "Prefer": "return=representation",
        }
        kwargs: dict[str, Any] = {}
        if isinstance(request.body, bytes):
            headers["Content-Type"] = "application/json"
            kwargs["content"] = request.body
        elif request.body is not None:
            kwargs["json"] = request.body

        return await self._client.request(
            request.method,
            request.path,
            headers=headers,
            timeout=self._timeout,
            **kwargs,
        )

    @staticmethod
    def _parse_body(request: ProviderRequest, response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            raise MalformedProviderResponse(
                f"Provider returned non-JSON body for {request.method} {request.path}"
            ) from e
        if not isinstance(body, dict):
            raise MalformedProviderResponse(
                f"Provider returned non-object body for {request.method} {request.path}"
            )
        return body


def _error_details(response: httpx.Response) -> tuple[str | None, str | None, str | None]:
    """Extract PayPal's error name, debug_id and message from an error body."""
    try:
        body = response.json()
    except ValueError:
        return None, None, None
    if not isinstance(body, dict):
        return None, None, None
    # OAuth-style errors use "error"/"error_description"
    name = body.get("name") or body.get("error")
    message = body.get("message") or body.get("error_description")
    debug_id = body.get("debug_id")
    return (
        name if isinstance(name, str) else None,
        debug_id if isinstance(debug_id, str) else None,
        message if isinstance(message, str) else None,
    )
