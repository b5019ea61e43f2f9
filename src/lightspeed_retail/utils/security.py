"""Security utilities for redaction and secure logging.

This module consolidates the sanitization used by the client:
- Token previews that never reveal more than a short prefix
- Header and string sanitization for log output
- A logging formatter that redacts bearer tokens automatically
"""

import copy
import logging
import re
import sys
from typing import Any, Dict

TOKEN_PREVIEW_LENGTH = 8
TOKEN_MASK = "************"

# Patterns for sensitive data detection
SENSITIVE_PATTERNS = {
    "bearer_token": re.compile(r"Bearer\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE),
    "access_token": re.compile(
        r"\"?(access_token|refresh_token|client_secret)\"?\s*[:=]\s*\"?[^\s\",&]+",
        re.IGNORECASE,
    ),
}

# Headers that should never be logged
SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-access-token",
    "x-refresh-token",
}

# =============================================================================
# String and Log Sanitization
# =============================================================================


def redact_token(token: str) -> str:
    """Return a short preview of a token safe for logs.

    Only the first eight characters are kept; the rest is masked.

    :param token: Full token value
    :type token: str
    :return: Redacted preview such as ``abc123xy************``
    :rtype: str
    """
    if not token:
        return "<empty>"
    return token[:TOKEN_PREVIEW_LENGTH] + TOKEN_MASK


def sanitize_string(value: str) -> str:
    """Sanitize a string containing potential sensitive data.

    Replaces bearer tokens and OAuth secrets with a redacted marker.

    :param value: String to sanitize
    :type value: str
    :return: Sanitized string with sensitive data redacted
    :rtype: str
    """
    if not value:
        return value
    for pattern_name, pattern in SENSITIVE_PATTERNS.items():
        value = pattern.sub(f"<{pattern_name}:REDACTED>", value)
    return value


def sanitize_headers(headers: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize HTTP headers for logging.

    :param headers: Dictionary of HTTP headers
    :type headers: Dict[str, Any]
    :return: Sanitized headers dictionary
    :rtype: Dict[str, Any]
    """
    if not headers:
        return headers
    sanitized = copy.deepcopy(dict(headers))
    for key, value in sanitized.items():
        if key.lower() in SENSITIVE_HEADERS:
            if isinstance(value, str) and len(value) > 0:
                sanitized[key] = f"<REDACTED:length={len(value)}>"
            else:
                sanitized[key] = "<REDACTED>"
        elif isinstance(value, str):
            sanitized[key] = sanitize_string(value)
    return sanitized


# =============================================================================
# Secure Logging Setup
# =============================================================================


class SanitizingFormatter(logging.Formatter):
    """Formatter that automatically sanitizes sensitive data.

    Formats the record message with its arguments first, then removes
    bearer tokens and OAuth secrets from the result.
    """

    def format(self, record: logging.LogRecord) -> str:
        if record.args:
            try:
                record.msg = sanitize_string(record.msg % record.args)
                record.args = None
            except (TypeError, ValueError):
                record.msg = sanitize_string(str(record.msg))
        else:
            record.msg = sanitize_string(str(record.msg))
        return super().format(record)


# Global flag to track if logging has been set up
_LOGGING_CONFIGURED = False


def setup_secure_logging(level: str = "INFO") -> None:
    """Set up logging with automatic sanitization.

    Installs a :class:`SanitizingFormatter` on the root logger. Calling
    it again is a no-op.

    :param level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    :type level: str
    """
    global _LOGGING_CONFIGURED

    if _LOGGING_CONFIGURED:
        logging.getLogger(__name__).debug(
            "Logging already configured, skipping duplicate setup"
        )
        return

    formatter = SanitizingFormatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )

    # httpx logs every request URL at INFO; keep it quieter than ours
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _LOGGING_CONFIGURED = True
