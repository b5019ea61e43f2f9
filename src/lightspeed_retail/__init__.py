"""Lightspeed Retail API client package.

This package provides an async HTTP client for the Lightspeed Retail
REST API. It takes care of OAuth access token refresh, leaky-bucket
rate limit throttling and retrying transient failures so callers can
issue plain ``get``/``post``/``put``/``delete`` calls.

:var __version__: Current package version
:type __version__: str
"""

from .client import RetailClient, ensure_success
from .config.settings import Settings
from .exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    RetailClientError,
    TokenRefreshError,
    TransportError,
)
from .utils.security import setup_secure_logging

__version__ = "0.1.0"

__all__ = [
    "RetailClient",
    "ensure_success",
    "Settings",
    "setup_secure_logging",
    "RetailClientError",
    "AuthenticationError",
    "TokenRefreshError",
    "TransportError",
    "APIError",
    "ConfigurationError",
]
