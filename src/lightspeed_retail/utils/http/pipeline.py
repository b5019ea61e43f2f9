"""Request pipeline wrapping every Lightspeed Retail API call.

Each logical request goes through the same loop:

1. Ask the rate limiter how long to wait and sleep if needed
2. Attach the current bearer token
3. Send through the transport
4. Feed the outcome to the rate limiter and the retry policy
5. Retry, refresh the token and retry, or return the last response

Attempts of one logical request are strictly sequential. Sleeps are
``asyncio`` suspension points and no lock is held across them.
"""

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from ...auth.token_store import TokenStore
from ...exceptions import TransportError
from ...models import RetryState, request_cost
from ..security import sanitize_headers
from .rate_limiter import RateLimiter
from .retry import RetryAction, RetryPolicy, log_decision
from .transport import Transport

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class RequestPipeline:
    """Throttle, authenticate, send and retry a single logical request.

    The pipeline borrows the token store, rate limiter and retry policy;
    they belong to the client and outlive any one request.

    :param transport: Sends requests and returns responses
    :type transport: Transport
    :param token_store: Source of the bearer token
    :type token_store: TokenStore
    :param rate_limiter: Leaky-bucket model of the API budget
    :type rate_limiter: RateLimiter
    :param retry_policy: Outcome classification and backoff
    :type retry_policy: RetryPolicy
    :param max_throttle_wait: Cap on a single rate limit wait, in seconds
    :type max_throttle_wait: float
    :param sleep: Coroutine used to wait, injectable for tests
    :type sleep: Sleep
    """

    def __init__(
        self,
        transport: Transport,
        token_store: TokenStore,
        rate_limiter: RateLimiter,
        retry_policy: Optional[RetryPolicy] = None,
        max_throttle_wait: float = 60.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self.transport = transport
        self.token_store = token_store
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_throttle_wait = max_throttle_wait
        self._sleep = sleep

    async def execute(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Run one logical request through throttling, auth and retries.

        Any response the retry policy does not retry is returned as is,
        including 4xx and 5xx responses, so callers can inspect the API's
        own error payload.

        :param method: HTTP method
        :type method: str
        :param url: Absolute URL or path relative to the account base URL
        :type url: str
        :param headers: Optional extra request headers
        :type headers: Optional[Mapping[str, str]]
        :param kwargs: Extra ``httpx`` request arguments (json, params, content, ...)
        :return: The final response
        :rtype: httpx.Response
        :raises TransportError: If the last attempt still got no response
        :raises TokenRefreshError: If a token refresh fails
        """
        method = method.upper()
        cost = request_cost(method)
        state = RetryState()

        while True:
            await self._throttle(cost)

            # Case-insensitive, so a caller "authorization" is replaced too
            request_headers = httpx.Headers(headers or {})
            request_headers.setdefault("Accept", "application/json")
            token = self.token_store.current_token()
            # Without a token the API answers 401, which triggers the first refresh
            if token:
                request_headers["Authorization"] = f"Bearer {token}"
            else:
                request_headers.pop("Authorization", None)
            logger.debug(
                f"{method} {url} attempt {state.attempt + 1}, "
                f"headers: {sanitize_headers(request_headers)}"
            )

            response: Optional[httpx.Response] = None
            error: Optional[httpx.TransportError] = None
            try:
                response = await self.transport.send(
                    method, url, request_headers, **kwargs
                )
            except httpx.TransportError as e:
                error = e

            self.rate_limiter.observe(response)

            decision = self.retry_policy.decide(
                state.attempt,
                error=error,
                status_code=response.status_code if response is not None else None,
            )
            log_decision(decision, state.attempt, error=error, response=response)

            if decision.action is RetryAction.GIVE_UP:
                break

            if decision.action is RetryAction.REFRESH_AND_RETRY:
                await self.token_store.refresh(stale_token=token)
            elif decision.delay > 0:
                await self._sleep(decision.delay)
            state.attempt += 1

        attempts = state.attempt + 1
        if response is None:
            raise TransportError(
                f"{method} {url} failed after {attempts} attempt(s) "
                f"in {state.elapsed:.1f}s: {error}",
                method=method,
                url=url,
                attempts=attempts,
            ) from error

        if attempts > 1:
            logger.info(
                f"{method} {url} finished with HTTP {response.status_code} "
                f"after {attempts} attempts in {state.elapsed:.1f}s"
            )
        return response

    async def _throttle(self, cost: int) -> None:
        wait = self.rate_limiter.wait_duration(cost)
        if wait <= 0:
            return
        if wait > self.max_throttle_wait:
            logger.warning(
                f"Predicted rate limit wait {wait:.2f}s exceeds "
                f"{self.max_throttle_wait:.2f}s, capping"
            )
            wait = self.max_throttle_wait
        if math.isinf(wait):
            logger.warning(
                "Rate limit wait is unbounded and no cap is configured, "
                "sending without waiting"
            )
            return
        if wait <= 0:
            return
        logger.info(f"Notice: Rate limit reached, sleeping {wait:.2f} seconds.")
        await self._sleep(wait)
