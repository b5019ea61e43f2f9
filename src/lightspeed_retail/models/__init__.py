"""Lightspeed Retail client models package.

This package contains the data models shared by the client
components: credentials, the rate bucket snapshot and retry state.
"""

from .base_models import (
    DEFAULT_BUCKET_SIZE,
    DEFAULT_DRIP_RATE,
    Credentials,
    RateBucket,
    RetryState,
    request_cost,
)

__all__ = [
    "Credentials",
    "RateBucket",
    "RetryState",
    "request_cost",
    "DEFAULT_BUCKET_SIZE",
    "DEFAULT_DRIP_RATE",
]
