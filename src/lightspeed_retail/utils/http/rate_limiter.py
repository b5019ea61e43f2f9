"""Leaky-bucket rate limiting for the Lightspeed Retail API.

The API drains a per-account bucket at a fixed drip rate and reports its
state on every response:

- ``X-LS-API-Bucket-Level``: ``"<level>/<size>"``, e.g. ``"3.5/60"``
- ``X-LS-API-Drip-Rate``: units drained per second, e.g. ``"1"``

Reads cost one unit and writes cost ten. Before each send the limiter
predicts whether the request would overflow the bucket and, if so, how
long to wait for it to drain. The prediction is best effort; the server
stays authoritative and the next observation corrects any drift.
"""

import logging
import math
import threading
import time
from dataclasses import replace
from typing import Callable, Optional, Tuple

import httpx

from ...models import RateBucket
from ...models.base_models import seconds_since

logger = logging.getLogger(__name__)

BUCKET_LEVEL_HEADER = "X-LS-API-Bucket-Level"
DRIP_RATE_HEADER = "X-LS-API-Drip-Rate"

# The API drains a full bucket in one minute when no drip header is sent
BUCKET_DRAIN_SECONDS = 60.0


def parse_bucket_level(value: Optional[str]) -> Optional[Tuple[float, float]]:
    """Parse a ``"<level>/<size>"`` header value.

    :param value: Raw header value
    :type value: Optional[str]
    :return: ``(level, size)`` or None when missing or malformed
    :rtype: Optional[Tuple[float, float]]
    """
    if not value:
        return None
    parts = value.strip().split("/")
    if len(parts) != 2:
        return None
    try:
        level, size = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    if not (math.isfinite(level) and math.isfinite(size)):
        return None
    return level, size


def parse_drip_rate(value: Optional[str]) -> Optional[float]:
    """Parse the drip rate header; None unless it is a positive number."""
    if not value:
        return None
    try:
        drip = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(drip) or drip <= 0:
        return None
    return drip


class RateLimiter:
    """Per-client model of the API's leaky bucket.

    The bucket is an immutable :class:`RateBucket` snapshot swapped under a
    lock, so readers never see a half-updated bucket. The lock is never
    held while waiting.

    :param bucket: Initial bucket state
    :type bucket: Optional[RateBucket]
    :param clock: Monotonic clock, injectable for tests
    :type clock: Callable[[], float]
    """

    def __init__(
        self,
        bucket: Optional[RateBucket] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._bucket = bucket or RateBucket()
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def bucket(self) -> RateBucket:
        """Return the current bucket snapshot."""
        with self._lock:
            return self._bucket

    def wait_duration(self, cost: int) -> float:
        """Return how long to wait before sending a request of ``cost`` units.

        Zero when the bucket has room. Otherwise the time needed to drain
        the overflow, unless at least that much time has already passed
        since the last observed request. A non-positive drip rate with a
        positive overflow yields ``math.inf``.

        :param cost: Bucket cost of the pending request
        :type cost: int
        :return: Wait in seconds
        :rtype: float
        """
        with self._lock:
            bucket = self._bucket
        overflow = cost - bucket.available
        if overflow <= 0:
            return 0.0
        if bucket.drip <= 0:
            return math.inf
        proposed = overflow / bucket.drip
        elapsed = seconds_since(bucket.last_request_time, self._clock())
        if proposed > elapsed:
            return proposed
        return 0.0

    def observe(self, response: Optional[httpx.Response]) -> RateBucket:
        """Update the bucket from a response's rate limit headers.

        Always records the request time, even when ``response`` is None
        (transport error) or carries no bucket header.

        :param response: Response received, or None if the send failed
        :type response: Optional[httpx.Response]
        :return: The bucket snapshot after the update
        :rtype: RateBucket
        """
        now = self._clock()
        level_size = None
        drip = None
        if response is not None:
            level_size = parse_bucket_level(response.headers.get(BUCKET_LEVEL_HEADER))
            drip = parse_drip_rate(response.headers.get(DRIP_RATE_HEADER))

        with self._lock:
            previous = self._bucket
            if level_size is None:
                self._bucket = replace(previous, last_request_time=now)
            else:
                level, size = level_size
                if drip is None:
                    drip = size / BUCKET_DRAIN_SECONDS if size > 0 else previous.drip
                self._bucket = RateBucket(
                    level=level, size=size, drip=drip, last_request_time=now
                )
            bucket = self._bucket

        if level_size is not None:
            logger.debug(
                f"Bucket level {bucket.level:g}/{bucket.size:g}, "
                f"available {bucket.available:g}, drip {bucket.drip:g}/s"
            )
        return bucket
