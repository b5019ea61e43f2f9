"""Retry classification for Lightspeed Retail API requests.

This module decides, for each attempt of a logical request, whether to
retry it, refresh the access token and retry it, or give up. The
decision is a pure function of the attempt index and the outcome, so it
can be tested without a network.

Retried outcomes:
- Connection errors (no response received)
- 429 Too Many Requests, and 502/503/504, which the API also returns
  for transient connection problems
- 401 Unauthorized on the first two attempts, after a token refresh

Backoff is linear: ``backoff * attempt`` seconds, except for 401 and 429
which are retried without delay.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({429, 502, 503, 504})
NO_DELAY_STATUS_CODES: FrozenSet[int] = frozenset({401, 429})

# Longest response body included in a log record
MAX_LOGGED_BODY = 2000


class RetryAction(Enum):
    """Possible outcomes of a retry decision."""

    RETRY = "retry"
    REFRESH_AND_RETRY = "refresh_and_retry"
    GIVE_UP = "give_up"


@dataclass(frozen=True)
class RetryDecision:
    """What to do after an attempt, and how long to wait first."""

    action: RetryAction
    delay: float = 0.0

    @property
    def should_retry(self) -> bool:
        return self.action is not RetryAction.GIVE_UP


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration and decision logic for retrying requests.

    Attributes:
        max_retries: Attempt index at which the pipeline always gives up
        refresh_retry_limit: Last attempt index on which a 401 triggers a
            token refresh
        backoff: Linear backoff step in seconds

    Example:
        >>> policy = RetryPolicy()
        >>> policy.decide(2, status_code=503)
        RetryDecision(action=<RetryAction.RETRY: 'retry'>, delay=2.0)
    """

    max_retries: int = 5
    refresh_retry_limit: int = 1
    backoff: float = 1.0

    def classify(
        self,
        attempt: int,
        error: Optional[BaseException] = None,
        status_code: Optional[int] = None,
    ) -> RetryAction:
        """Classify the outcome of attempt ``attempt`` (0-based).

        :param attempt: Number of attempts made before this one
        :type attempt: int
        :param error: Connection-level error, when no response was received
        :type error: Optional[BaseException]
        :param status_code: Response status, when a response was received
        :type status_code: Optional[int]
        :return: The action to take
        :rtype: RetryAction
        """
        if attempt >= self.max_retries:
            return RetryAction.GIVE_UP
        if error is not None or status_code is None:
            return RetryAction.RETRY
        if status_code in RETRYABLE_STATUS_CODES:
            return RetryAction.RETRY
        if status_code == 401 and attempt <= self.refresh_retry_limit:
            return RetryAction.REFRESH_AND_RETRY
        return RetryAction.GIVE_UP

    def delay_for(self, attempt: int, status_code: Optional[int] = None) -> float:
        """Return the backoff before retrying attempt ``attempt``.

        :param attempt: Pre-increment attempt index
        :type attempt: int
        :param status_code: Response status, if any
        :type status_code: Optional[int]
        :return: Delay in seconds
        :rtype: float
        """
        if status_code in NO_DELAY_STATUS_CODES:
            return 0.0
        return self.backoff * attempt

    def decide(
        self,
        attempt: int,
        error: Optional[BaseException] = None,
        status_code: Optional[int] = None,
    ) -> RetryDecision:
        """Classify an outcome and attach the delay to wait before retrying."""
        action = self.classify(attempt, error=error, status_code=status_code)
        if action is RetryAction.GIVE_UP:
            return RetryDecision(action)
        return RetryDecision(action, self.delay_for(attempt, status_code))


def format_response_body(response: httpx.Response) -> str:
    """Pretty-print a JSON body for logs, falling back to truncated text."""
    try:
        body = json.dumps(response.json(), indent=4)
    except ValueError:
        body = response.text
    if len(body) > MAX_LOGGED_BODY:
        body = body[:MAX_LOGGED_BODY] + "..."
    return body


def log_decision(
    decision: RetryDecision,
    attempt: int,
    error: Optional[BaseException] = None,
    response: Optional[httpx.Response] = None,
) -> None:
    """Log an attempt outcome that was an error, along with the decision.

    Successful responses are not logged. Logging never affects control flow.
    """
    if error is not None:
        logger.warning(f"Connection Error: {error}")
    elif response is not None and response.status_code >= 400:
        logger.warning(
            f"HTTP Error {response.status_code}:\n{format_response_body(response)}"
        )
    else:
        return

    if decision.action is RetryAction.REFRESH_AND_RETRY:
        logger.info("Refreshing Access Token...")
    elif decision.should_retry:
        logger.info(f"Retry {attempt + 1} in {decision.delay:.2f}s...")
    else:
        logger.error(f"Giving up after {attempt + 1} attempt(s)")
