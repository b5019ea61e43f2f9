"""Configuration settings for the Lightspeed Retail client.

This module defines the configuration settings for the client,
including OAuth credentials, API endpoints, and retry/throttle tuning.
Settings are loaded from environment variables and .env files.
"""

import math
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError
from ..models import Credentials

DEFAULT_API_HOST = "https://api.lightspeedapp.com/"
DEFAULT_AUTH_URL = "https://cloud.lightspeedapp.com/oauth/access_token.php"


class Settings(BaseSettings):
    """Client settings loaded from environment variables.

    :param account_id: Lightspeed Retail account ID
    :type account_id: Optional[str]
    :param client_id: OAuth client ID
    :type client_id: Optional[str]
    :param client_secret: OAuth client secret
    :type client_secret: Optional[str]
    :param refresh_token: OAuth refresh token for the account
    :type refresh_token: Optional[str]
    :param api_host: Host serving the Retail API
    :type api_host: str
    :param auth_url: OAuth token endpoint used for refreshes
    :type auth_url: str
    :param max_retries: Retry ceiling for a single logical request
    :type max_retries: int
    :param refresh_retry_limit: Last attempt index allowed to refresh on 401
    :type refresh_retry_limit: int
    :param backoff_seconds: Linear backoff step between retries
    :type backoff_seconds: float
    :param max_throttle_wait: Upper bound on a single rate limit wait
    :type max_throttle_wait: float
    :param timeout: Per-request timeout for the HTTP transport
    :type timeout: float
    :param log_level: Logging level for the application
    :type log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # OAuth credentials
    account_id: Optional[str] = Field(
        None, alias="LIGHTSPEED_ACCOUNT_ID", description="Retail account ID"
    )
    client_id: Optional[str] = Field(
        None, alias="LIGHTSPEED_CLIENT_ID", description="OAuth client ID"
    )
    client_secret: Optional[str] = Field(
        None, alias="LIGHTSPEED_CLIENT_SECRET", description="OAuth client secret"
    )
    refresh_token: Optional[str] = Field(
        None, alias="LIGHTSPEED_REFRESH_TOKEN", description="OAuth refresh token"
    )

    # Endpoints
    api_host: str = Field(
        DEFAULT_API_HOST, alias="LIGHTSPEED_API_HOST", description="API host"
    )
    auth_url: str = Field(
        DEFAULT_AUTH_URL,
        alias="LIGHTSPEED_AUTH_URL",
        description="OAuth access token endpoint",
    )

    # Retry and throttle tuning
    max_retries: int = Field(
        5, alias="LIGHTSPEED_MAX_RETRIES", description="Retry ceiling per request"
    )
    refresh_retry_limit: int = Field(
        1,
        alias="LIGHTSPEED_REFRESH_RETRY_LIMIT",
        description="Last attempt index that may trigger a token refresh",
    )
    backoff_seconds: float = Field(
        1.0, alias="LIGHTSPEED_BACKOFF_SECONDS", description="Linear backoff step"
    )
    max_throttle_wait: float = Field(
        60.0,
        alias="LIGHTSPEED_MAX_THROTTLE_WAIT",
        description="Longest single wait imposed by the rate limiter",
    )
    timeout: float = Field(
        30.0, alias="LIGHTSPEED_TIMEOUT", description="HTTP read timeout in seconds"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", alias="LOG_LEVEL", description="Logging level"
    )

    @field_validator("max_retries", "refresh_retry_limit")
    @classmethod
    def non_negative_int(cls, v: int) -> int:
        """Reject negative retry limits.

        :param v: Configured value
        :type v: int
        :return: The validated value
        :rtype: int
        :raises ValueError: If the value is negative
        """
        if v < 0:
            raise ValueError("retry limits must be >= 0")
        return v

    @field_validator("backoff_seconds", "max_throttle_wait", "timeout")
    @classmethod
    def non_negative_float(cls, v: float) -> float:
        if not math.isfinite(v) or v < 0:
            raise ValueError("durations must be finite and >= 0")
        return v

    @field_validator("api_host")
    @classmethod
    def normalize_host(cls, v: str) -> str:
        """Ensure the API host ends with a slash so paths join cleanly."""
        return v if v.endswith("/") else v + "/"

    def credentials(self) -> Credentials:
        """Build the credentials model from the loaded settings.

        :return: Immutable credentials for the configured account
        :rtype: Credentials
        :raises ConfigurationError: If any credential field is missing
        """
        required = {
            "account_id": "LIGHTSPEED_ACCOUNT_ID",
            "client_id": "LIGHTSPEED_CLIENT_ID",
            "client_secret": "LIGHTSPEED_CLIENT_SECRET",
            "refresh_token": "LIGHTSPEED_REFRESH_TOKEN",
        }
        for field_name, env_name in required.items():
            if not getattr(self, field_name):
                raise ConfigurationError(
                    f"Missing required setting {env_name}", setting=env_name
                )
        return Credentials(
            account_id=self.account_id,
            client_id=self.client_id,
            client_secret=self.client_secret,
            refresh_token=self.refresh_token,
        )

    def base_url(self) -> str:
        """Return the account-scoped API base URL."""
        if not self.account_id:
            raise ConfigurationError(
                "Missing required setting LIGHTSPEED_ACCOUNT_ID",
                setting="LIGHTSPEED_ACCOUNT_ID",
            )
        return account_base_url(self.api_host, self.account_id)


def account_base_url(api_host: str, account_id: str) -> str:
    """Build ``<host>API/Account/<account_id>/``."""
    host = api_host if api_host.endswith("/") else api_host + "/"
    return f"{host}API/Account/{account_id}/"
