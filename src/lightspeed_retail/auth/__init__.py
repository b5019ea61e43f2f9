"""Authentication module for the Lightspeed Retail client.

Provides the in-memory access token store that refreshes OAuth access
tokens from the account's refresh token.

:var __all__: List of public exports from this module
:type __all__: List[str]
"""

from .token_store import TokenStore

__all__ = ["TokenStore"]
