"""HTTP utilities public API (barrel module).

This package provides:
- The transport contract and its httpx implementation
- Leaky-bucket rate limiting driven by the API's bucket headers
- Retry classification with linear backoff
- The request pipeline tying them together

Recommended import pattern for consumers:
    from lightspeed_retail.utils.http import RequestPipeline, RateLimiter

This keeps call sites stable even if internal modules are reorganized.
"""

from .pipeline import RequestPipeline
from .rate_limiter import (
    BUCKET_LEVEL_HEADER,
    DRIP_RATE_HEADER,
    RateLimiter,
    parse_bucket_level,
    parse_drip_rate,
)
from .retry import (
    RETRYABLE_STATUS_CODES,
    RetryAction,
    RetryDecision,
    RetryPolicy,
)
from .transport import (
    HttpxTransport,
    Transport,
    create_client,
    create_limits,
    create_timeout,
)

__all__ = [
    "RequestPipeline",
    "RateLimiter",
    "BUCKET_LEVEL_HEADER",
    "DRIP_RATE_HEADER",
    "parse_bucket_level",
    "parse_drip_rate",
    "RetryAction",
    "RetryDecision",
    "RetryPolicy",
    "RETRYABLE_STATUS_CODES",
    "Transport",
    "HttpxTransport",
    "create_client",
    "create_timeout",
    "create_limits",
]
