"""Structured exception classes for the Lightspeed Retail client."""

import json
from typing import Any, Dict, Optional


class RetailClientError(Exception):
    """Base exception for all Lightspeed Retail client errors.

    This exception serves as the parent class for every error the
    client raises, providing a consistent interface for error
    handling by callers.

    :param message: Human-readable error message
    :param code: Optional error code for programmatic handling
    :param details: Optional dictionary containing additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the exception with message, code, and details."""
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format.

        :return: Dictionary containing error code, message, and details
        """
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }

    def to_json(self) -> str:
        """Convert exception to JSON string.

        :return: JSON-encoded string representation of the exception
        """
        return json.dumps(self.to_dict())


class AuthenticationError(RetailClientError):
    """Raised when authentication fails.

    :param message: Description of the authentication failure
    :param details: Optional additional context about the failure
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize authentication error with message and optional details."""
        super().__init__(message=message, code="AUTHENTICATION_ERROR", details=details)


class TokenRefreshError(AuthenticationError):
    """Raised when exchanging the refresh token for an access token fails.

    The previously stored access token is left untouched when this is
    raised. Inside the request pipeline it ends the retry loop at once.

    :param message: Description of the refresh failure
    :param status_code: Optional HTTP status returned by the auth endpoint
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        """Initialize token refresh error with message and optional status."""
        details = {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message=message, details=details)
        self.code = "TOKEN_REFRESH_ERROR"
        self.status_code = status_code


class TransportError(RetailClientError):
    """Raised when a request could not be delivered after all retries.

    Wraps the last connection-level error seen by the pipeline; the
    original ``httpx`` exception is available as ``__cause__``.

    :param message: Description of the transport failure
    :param method: Optional HTTP method of the failed request
    :param url: Optional URL of the failed request
    :param attempts: Optional number of send attempts made
    """

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        url: Optional[str] = None,
        attempts: Optional[int] = None,
    ):
        """Initialize transport error with message and request context."""
        details: Dict[str, Any] = {}
        if method:
            details["method"] = method
        if url:
            details["url"] = url
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(message=message, code="TRANSPORT_ERROR", details=details)
        self.attempts = attempts


class APIError(RetailClientError):
    """Raised for API-level errors a caller chose to treat as exceptions.

    The pipeline returns error responses verbatim; this exception is
    raised by :func:`lightspeed_retail.client.ensure_success` so callers
    can opt in to exception-style handling.

    :param message: Description of the API error
    :param status_code: Optional HTTP status code from the API response
    :param response_body: Optional response body from the failed request
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ):
        """Initialize API error with message and optional response details."""
        details: Dict[str, Any] = {}
        if status_code:
            details["status_code"] = status_code
        if response_body:
            details["response_body"] = response_body
        super().__init__(message=message, code="API_ERROR", details=details)
        self.status_code = status_code
        self.response_body = response_body


class ConfigurationError(RetailClientError):
    """Raised for configuration-related errors.

    :param message: Description of the configuration error
    :param setting: Optional name of the problematic setting
    """

    def __init__(self, message: str, setting: Optional[str] = None):
        """Initialize configuration error with message and optional setting."""
        details = {}
        if setting:
            details["setting"] = setting
        super().__init__(message=message, code="CONFIGURATION_ERROR", details=details)
