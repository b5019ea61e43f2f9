"""HTTP transport used by the request pipeline.

The pipeline only needs something that sends a request and returns a
response or raises a connection-level error. This module defines that
contract and the default implementation on top of ``httpx.AsyncClient``,
with the timeout and connection limit helpers used to configure it.
"""

import logging
from typing import Any, Mapping, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Contract consumed by :class:`~lightspeed_retail.utils.http.pipeline.RequestPipeline`.

    Implementations return the response for any status code and raise
    ``httpx.TransportError`` when no response was received.
    """

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        **kwargs: Any,
    ) -> httpx.Response: ...


class HttpxTransport:
    """Transport backed by an ``httpx.AsyncClient``.

    The client owns connection pooling, TLS and redirects; its lifecycle
    belongs to whoever created it.

    :param client: Configured client, see :func:`create_client`
    :type client: httpx.AsyncClient
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request and return the response for any status.

        :param method: HTTP method
        :type method: str
        :param url: Absolute URL or path relative to the client base URL
        :type url: str
        :param headers: Request headers
        :type headers: Mapping[str, str]
        :param kwargs: Extra ``httpx`` request arguments (json, params, content, ...)
        :return: The HTTP response
        :rtype: httpx.Response
        :raises httpx.TransportError: If no response was received
        """
        request = self.client.build_request(method, url, headers=headers, **kwargs)
        return await self.client.send(request)


def create_client(
    timeout: Optional[httpx.Timeout] = None,
    limits: Optional[httpx.Limits] = None,
    **kwargs: Any,
) -> httpx.AsyncClient:
    """Create the ``httpx.AsyncClient`` a :class:`RetailClient` owns.

    :param timeout: Timeouts, defaults to :func:`create_timeout`
    :type timeout: Optional[httpx.Timeout]
    :param limits: Pool limits, defaults to :func:`create_limits`
    :type limits: Optional[httpx.Limits]
    :param kwargs: Additional ``httpx.AsyncClient`` options
    :return: Configured HTTP client
    :rtype: httpx.AsyncClient
    """
    client = httpx.AsyncClient(
        timeout=timeout or create_timeout(),
        limits=limits or create_limits(),
        follow_redirects=True,
        **kwargs,
    )
    logger.debug("Created httpx client for the Retail API")
    return client


def create_timeout(read: float = 30.0, connect: float = 10.0) -> httpx.Timeout:
    """Timeouts for Retail API calls.

    Report and bulk item endpoints can take a while to answer, so only the
    read timeout is meant to be tuned; writes and pool waits share the
    connect timeout.

    :param read: Seconds to wait for a response
    :type read: float
    :param connect: Seconds to wait for a connection, a write or a pooled slot
    :type connect: float
    :rtype: httpx.Timeout
    """
    return httpx.Timeout(connect, read=read)


def create_limits(max_connections: int = 10) -> httpx.Limits:
    """Connection pool limits for one account.

    The account's leaky bucket allows only a few requests per second, so
    a small pool is enough and every connection may stay alive.
    """
    return httpx.Limits(
        max_connections=max_connections,
        max_keepalive_connections=max_connections,
        keepalive_expiry=60.0,
    )
