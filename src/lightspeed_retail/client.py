"""Async client for the Lightspeed Retail API.

The client adds three behaviours to every request:

- Access token refresh: requests carry the current bearer token and a
  401 triggers a refresh from the account's refresh token
- Rate limiting: requests wait for room in the API's leaky bucket,
  tracked from the ``X-LS-API-*`` response headers
- Retries: connection errors, 429 and 502/503/504 are retried with
  linear backoff, up to five times

Examples:
    >>> async with RetailClient(account_id, refresh_token, client_id, secret) as client:
    ...     response = await client.get("Item.json", params={"limit": 10})
"""

import asyncio
import logging
from typing import Any, Mapping, Optional, Union

import httpx

from .auth.token_store import TokenStore
from .config.settings import (
    DEFAULT_API_HOST,
    DEFAULT_AUTH_URL,
    Settings,
    account_base_url,
)
from .exceptions import APIError
from .models import Credentials, RateBucket
from .utils.http import (
    HttpxTransport,
    RateLimiter,
    RequestPipeline,
    RetryPolicy,
    create_client,
    create_timeout,
)
from .utils.http.pipeline import Sleep

logger = logging.getLogger(__name__)


class RetailClient:
    """Client for one Lightspeed Retail account.

    Each instance owns its own token store and rate limiter, shared by
    every request made through it.

    :param account_id: The Lightspeed Retail account ID
    :type account_id: Union[str, int]
    :param refresh_token: A refresh token for that account
    :type refresh_token: str
    :param client_id: The OAuth client ID
    :type client_id: str
    :param client_secret: The OAuth client secret
    :type client_secret: str
    :param api_host: Host serving the Retail API
    :type api_host: str
    :param auth_url: OAuth access token endpoint
    :type auth_url: str
    :param http_client: Optional client to send requests with; left open
        by :meth:`aclose`
    :type http_client: Optional[httpx.AsyncClient]
    :param retry_policy: Optional retry configuration
    :type retry_policy: Optional[RetryPolicy]
    :param max_throttle_wait: Cap on a single rate limit wait, in seconds
    :type max_throttle_wait: float
    :param timeout: Read timeout for a created client, in seconds
    :type timeout: float
    :param sleep: Coroutine used for waits, injectable for tests
    :type sleep: Sleep
    """

    def __init__(
        self,
        account_id: Union[str, int],
        refresh_token: str,
        client_id: str,
        client_secret: str,
        *,
        api_host: str = DEFAULT_API_HOST,
        auth_url: str = DEFAULT_AUTH_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        max_throttle_wait: float = 60.0,
        timeout: float = 30.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self.credentials = Credentials(
            account_id=account_id,
            client_id=client_id,
            client_secret=client_secret,
            refresh_token=refresh_token,
        )
        self.base_url = account_base_url(api_host, self.credentials.account_id)

        self._owns_client = http_client is None
        self._http_client = http_client or create_client(
            timeout=create_timeout(read=timeout)
        )

        self.token_store = TokenStore(
            self.credentials, self._http_client, auth_url=auth_url
        )
        self.rate_limiter = RateLimiter()
        self.pipeline = RequestPipeline(
            transport=HttpxTransport(self._http_client),
            token_store=self.token_store,
            rate_limiter=self.rate_limiter,
            retry_policy=retry_policy,
            max_throttle_wait=max_throttle_wait,
            sleep=sleep,
        )
        logger.debug(
            f"RetailClient initialized for account {self.credentials.account_id}"
        )

    @classmethod
    def from_settings(
        cls, settings: Optional[Settings] = None, **kwargs: Any
    ) -> "RetailClient":
        """Create a client from environment-backed settings.

        :param settings: Loaded settings; read from the environment if None
        :type settings: Optional[Settings]
        :param kwargs: Extra constructor arguments (http_client, sleep, ...)
        :return: Configured client
        :rtype: RetailClient
        :raises ConfigurationError: If a credential setting is missing
        """
        settings = settings or Settings()
        credentials = settings.credentials()
        kwargs.setdefault(
            "retry_policy",
            RetryPolicy(
                max_retries=settings.max_retries,
                refresh_retry_limit=settings.refresh_retry_limit,
                backoff=settings.backoff_seconds,
            ),
        )
        kwargs.setdefault("max_throttle_wait", settings.max_throttle_wait)
        kwargs.setdefault("timeout", settings.timeout)
        return cls(
            credentials.account_id,
            credentials.refresh_token,
            credentials.client_id,
            credentials.client_secret,
            api_host=settings.api_host,
            auth_url=settings.auth_url,
            **kwargs,
        )

    @property
    def account_id(self) -> str:
        return self.credentials.account_id

    @property
    def bucket(self) -> RateBucket:
        """Current rate bucket snapshot."""
        return self.rate_limiter.bucket

    @property
    def access_token_preview(self) -> str:
        """Redacted preview of the current access token."""
        return self.token_store.token_preview

    def resolve_url(self, url: str) -> str:
        """Resolve a path against the account base URL.

        Absolute URLs are returned unchanged.
        """
        if httpx.URL(url).is_absolute_url:
            return url
        return self.base_url + url.lstrip("/")

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request through the pipeline.

        :param method: HTTP method
        :type method: str
        :param url: Path relative to the account, or an absolute URL
        :type url: str
        :param headers: Optional extra headers
        :type headers: Optional[Mapping[str, str]]
        :param kwargs: Extra ``httpx`` request arguments (json, params, content, ...)
        :return: The final response, whatever its status
        :rtype: httpx.Response
        :raises TransportError: If no response was received after retries
        :raises TokenRefreshError: If the access token could not be refreshed
        """
        return await self.pipeline.execute(
            method, self.resolve_url(url), headers=headers, **kwargs
        )

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> "RetailClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def ensure_success(response: httpx.Response) -> httpx.Response:
    """Raise :class:`APIError` for a 4xx/5xx response, else return it.

    :param response: Response returned by the client
    :type response: httpx.Response
    :return: The same response when its status is below 400
    :rtype: httpx.Response
    :raises APIError: If the status is 400 or above
    """
    if response.status_code >= 400:
        raise APIError(
            f"HTTP {response.status_code} error response",
            status_code=response.status_code,
            response_body=response.text,
        )
    return response
