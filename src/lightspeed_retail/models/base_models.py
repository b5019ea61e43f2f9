"""Shared data models for the Lightspeed Retail client.

This module contains the data models used by the client components:
- OAuth client credentials for an account
- The leaky-bucket snapshot reported by the API
- Per-request retry bookkeeping
"""

import math
import time
from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Bucket defaults used until the API reports its own values
DEFAULT_BUCKET_SIZE = 60.0
DEFAULT_DRIP_RATE = 1.0

READ_COST = 1
WRITE_COST = 10
READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class Credentials(BaseModel):
    """OAuth client credentials for one Lightspeed Retail account.

    Supplied once when a client is constructed and never mutated. Numeric
    account IDs are accepted and stored as strings.

    :param account_id: The Lightspeed Retail account ID
    :type account_id: str
    :param client_id: The OAuth client ID
    :type client_id: str
    :param client_secret: The OAuth client secret
    :type client_secret: str
    :param refresh_token: Long-lived refresh token for the account
    :type refresh_token: str
    """

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    account_id: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., repr=False)
    refresh_token: str = Field(..., repr=False)


@dataclass(frozen=True)
class RateBucket:
    """Snapshot of the API's leaky bucket.

    ``available`` is ``size - level``. ``drip`` is the number of units the
    bucket drains per second. ``last_request_time`` is a monotonic
    timestamp of the last observed request, or None before any.
    """

    level: float = 0.0
    size: float = DEFAULT_BUCKET_SIZE
    drip: float = DEFAULT_DRIP_RATE
    last_request_time: Optional[float] = None

    @property
    def available(self) -> float:
        return self.size - self.level


@dataclass
class RetryState:
    """Retry bookkeeping for a single logical request."""

    attempt: int = 0
    started_at: float = field(default_factory=time.monotonic)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


def request_cost(method: str) -> int:
    """Return the bucket cost of a request.

    Reads cost one unit; anything that mutates (POST, PUT, PATCH,
    DELETE) costs ten.

    :param method: HTTP method
    :type method: str
    :return: Cost in bucket units
    :rtype: int
    """
    return READ_COST if method.upper() in READ_METHODS else WRITE_COST


def seconds_since(timestamp: Optional[float], now: float) -> float:
    """Return elapsed seconds, or infinity when nothing was observed yet."""
    if timestamp is None:
        return math.inf
    return now - timestamp
