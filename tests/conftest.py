import sys
from pathlib import Path
from typing import List

import httpx
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def pytest_configure(config):
    # Register the asyncio marker so pytest doesn't warn when it's used.
    config.addinivalue_line(
        "markers", "asyncio: mark test to run in an asyncio event loop"
    )
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Set the environment variables the Settings class reads.

    Keeps tests independent from any .env file or real credentials on
    the machine running them.
    """
    monkeypatch.setenv("LIGHTSPEED_ACCOUNT_ID", "12345")
    monkeypatch.setenv("LIGHTSPEED_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("LIGHTSPEED_CLIENT_SECRET", "test-client-secret")
    monkeypatch.setenv("LIGHTSPEED_REFRESH_TOKEN", "test-refresh-token")
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    yield


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Stands in for asyncio.sleep and records every requested delay."""

    def __init__(self, events: List[tuple] = None):
        self.calls: List[float] = []
        self.events = events if events is not None else []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        self.events.append(("sleep", delay))


class FakeTransport:
    """Transport returning scripted outcomes in order.

    Each outcome is either an ``httpx.Response`` or an exception to raise.
    The last outcome repeats once the script runs out.
    """

    def __init__(self, outcomes, events: List[tuple] = None):
        self.outcomes = list(outcomes)
        self.requests: List[dict] = []
        self.events = events if events is not None else []

    async def send(self, method, url, headers, **kwargs):
        self.requests.append(
            {
                "method": method,
                "url": url,
                "headers": httpx.Headers(headers),
                **kwargs,
            }
        )
        self.events.append(("send", method))
        index = min(len(self.requests) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeTokenStore:
    """Token store handing out ``token-1``, ``token-2``, ... on refresh."""

    def __init__(self, token: str = "", error: Exception = None):
        self.token = token
        self.error = error
        self.refresh_calls = 0
        self.stale_tokens: List[str] = []

    def current_token(self) -> str:
        return self.token

    async def refresh(self, stale_token: str = None) -> str:
        self.stale_tokens.append(stale_token)
        self.refresh_calls += 1
        if self.error is not None:
            raise self.error
        self.token = f"token-{self.refresh_calls}"
        return self.token


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def events():
    return []


@pytest.fixture
def sleep_recorder(events):
    return SleepRecorder(events)


@pytest.fixture
def make_transport(events):
    def _make(*outcomes):
        return FakeTransport(outcomes, events)

    return _make


@pytest.fixture
def sample_bucket_headers():
    """Rate limit headers as sent by the Retail API."""
    return {"X-LS-API-Bucket-Level": "3/60", "X-LS-API-Drip-Rate": "2"}


@pytest.fixture
def make_token_store():
    return FakeTokenStore
