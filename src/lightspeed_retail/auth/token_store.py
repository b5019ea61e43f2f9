"""Access token storage and refresh for the Lightspeed Retail API.

Access tokens are short lived. The store keeps the current one in memory
and exchanges the account's refresh token for a new one on demand. It
starts empty: the first API call is expected to fail with 401, which
makes the request pipeline call :meth:`TokenStore.refresh`.
"""

import asyncio
import logging
import threading
from typing import Optional

import httpx

from ..config.settings import DEFAULT_AUTH_URL
from ..exceptions import TokenRefreshError
from ..models import Credentials
from ..utils.security import redact_token

logger = logging.getLogger(__name__)


class TokenStore:
    """Holds the current bearer token and refreshes it.

    Reads and writes of the token happen under a lock and the token is
    swapped in a single assignment, so a reader sees either the old or the
    new value. Concurrent refreshes are serialized.

    :param credentials: OAuth credentials for the account
    :type credentials: Credentials
    :param http_client: Client used to reach the auth endpoint
    :type http_client: httpx.AsyncClient
    :param auth_url: OAuth access token endpoint
    :type auth_url: str
    :param access_token: Optional initial access token
    :type access_token: str
    """

    def __init__(
        self,
        credentials: Credentials,
        http_client: httpx.AsyncClient,
        auth_url: str = DEFAULT_AUTH_URL,
        access_token: str = "",
    ):
        self._credentials = credentials
        self._http_client = http_client
        self.auth_url = auth_url
        self._access_token = access_token
        self._lock = threading.Lock()
        self._refresh_lock: Optional[asyncio.Lock] = None
        self._refresh_count = 0

    def current_token(self) -> str:
        """Return the last known bearer token, possibly empty."""
        with self._lock:
            return self._access_token

    @property
    def refresh_count(self) -> int:
        """Number of successful refreshes so far."""
        with self._lock:
            return self._refresh_count

    @property
    def token_preview(self) -> str:
        """Redacted preview of the current token."""
        return redact_token(self.current_token())

    async def refresh(self, stale_token: Optional[str] = None) -> str:
        """Exchange the refresh token for a new access token.

        Posts the client credentials and refresh token as multipart form
        fields. On success the new token replaces the stored one.

        When ``stale_token`` is given and another caller already replaced
        it while this one waited for the refresh lock, the stored token is
        returned without contacting the auth endpoint again.

        :param stale_token: The token the caller sent and saw rejected
        :type stale_token: Optional[str]
        :return: The new access token
        :rtype: str
        :raises TokenRefreshError: If the endpoint is unreachable, answers
            with a non-2xx status, or returns no usable ``access_token``
        """
        if self._refresh_lock is None:
            self._refresh_lock = asyncio.Lock()
        async with self._refresh_lock:
            if stale_token is not None:
                current = self.current_token()
                if current and current != stale_token:
                    logger.debug("Access token already refreshed, reusing it")
                    return current
            token = await self._request_token()
            with self._lock:
                self._access_token = token
                self._refresh_count += 1
        logger.info(f"New Access Token: {redact_token(token)}")
        return token

    async def _request_token(self) -> str:
        # httpx only sends multipart when files are present; (None, value)
        # tuples are plain form fields without a filename
        fields = {
            "client_id": (None, self._credentials.client_id),
            "client_secret": (None, self._credentials.client_secret),
            "refresh_token": (None, self._credentials.refresh_token),
            "grant_type": (None, "refresh_token"),
        }
        try:
            response = await self._http_client.post(self.auth_url, files=fields)
        except httpx.TransportError as e:
            logger.error(f"Token refresh request failed: {e}")
            raise TokenRefreshError(f"Auth endpoint unreachable: {e}") from e

        if not response.is_success:
            logger.error(f"Token refresh failed with HTTP {response.status_code}")
            raise TokenRefreshError(
                f"Token refresh failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TokenRefreshError(
                "Token refresh response is not valid JSON",
                status_code=response.status_code,
            ) from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise TokenRefreshError(
                "No access_token in token refresh response",
                status_code=response.status_code,
            )
        return token
