"""Unit tests for the request pipeline.

The transport, token store and sleep are replaced with fakes so that
every retry path runs instantly and deterministically.
"""

import asyncio
import logging
import math

import httpx
import pytest

from lightspeed_retail.exceptions import TokenRefreshError, TransportError
from lightspeed_retail.models import RateBucket
from lightspeed_retail.utils.http import RateLimiter, RequestPipeline, RetryPolicy

URL = "https://api.lightspeedapp.com/API/Account/12345/Item.json"


@pytest.fixture
def build_pipeline(fake_clock, sleep_recorder, make_token_store):
    def _build(transport, token_store=None, bucket=None, **kwargs):
        return RequestPipeline(
            transport=transport,
            token_store=token_store or make_token_store("token-0"),
            rate_limiter=RateLimiter(bucket=bucket, clock=fake_clock),
            retry_policy=kwargs.pop("retry_policy", RetryPolicy()),
            sleep=sleep_recorder,
            **kwargs,
        )

    return _build


@pytest.mark.asyncio
class TestHappyPath:
    """Test single-attempt requests."""

    async def test_returns_response(self, build_pipeline, make_transport, sleep_recorder):
        transport = make_transport(httpx.Response(200, json={"Item": []}))
        pipeline = build_pipeline(transport)

        response = await pipeline.execute("get", URL, params={"limit": 5})

        assert response.status_code == 200
        assert len(transport.requests) == 1
        sent = transport.requests[0]
        assert sent["method"] == "GET"
        assert sent["params"] == {"limit": 5}
        assert sent["headers"]["Authorization"] == "Bearer token-0"
        assert sent["headers"]["Accept"] == "application/json"
        assert sleep_recorder.calls == []

    async def test_caller_headers_are_kept(self, build_pipeline, make_transport):
        transport = make_transport(httpx.Response(200))
        pipeline = build_pipeline(transport)

        await pipeline.execute(
            "GET",
            URL,
            headers={"X-Custom": "1", "Authorization": "Bearer spoofed"},
        )

        sent = transport.requests[0]["headers"]
        assert sent["X-Custom"] == "1"
        assert sent["Authorization"] == "Bearer token-0"

    async def test_no_authorization_header_without_token(
        self, build_pipeline, make_transport, make_token_store
    ):
        transport = make_transport(httpx.Response(200))
        pipeline = build_pipeline(transport, token_store=make_token_store(""))

        await pipeline.execute("GET", URL)

        assert "Authorization" not in transport.requests[0]["headers"]

    async def test_caller_headers_are_matched_case_insensitively(
        self, build_pipeline, make_transport
    ):
        transport = make_transport(httpx.Response(200))
        pipeline = build_pipeline(transport)

        await pipeline.execute(
            "GET",
            URL,
            headers={"authorization": "Bearer spoofed", "accept": "text/csv"},
        )

        sent = transport.requests[0]["headers"]
        assert sent.get_list("Authorization") == ["Bearer token-0"]
        assert sent.get_list("Accept") == ["text/csv"]

    async def test_lowercase_caller_authorization_dropped_without_token(
        self, build_pipeline, make_transport, make_token_store
    ):
        transport = make_transport(httpx.Response(200))
        pipeline = build_pipeline(transport, token_store=make_token_store(""))

        await pipeline.execute("GET", URL, headers={"authorization": "Bearer old"})

        assert "Authorization" not in transport.requests[0]["headers"]

    async def test_terminal_errors_are_returned_verbatim(
        self, build_pipeline, make_transport
    ):
        transport = make_transport(httpx.Response(404, json={"message": "Not Found"}))
        pipeline = build_pipeline(transport)

        response = await pipeline.execute("GET", URL)

        assert response.status_code == 404
        assert response.json() == {"message": "Not Found"}
        assert len(transport.requests) == 1

    async def test_observes_every_response(
        self, build_pipeline, make_transport, sample_bucket_headers
    ):
        transport = make_transport(httpx.Response(200, headers=sample_bucket_headers))
        pipeline = build_pipeline(transport)

        await pipeline.execute("GET", URL)

        assert pipeline.rate_limiter.bucket.available == 57
        assert pipeline.rate_limiter.bucket.drip == 2


@pytest.mark.asyncio
class TestThrottling:
    """Test waiting for the rate limit bucket."""

    async def test_sleeps_before_send_when_bucket_full(
        self, build_pipeline, make_transport, fake_clock, sleep_recorder, events
    ):
        bucket = RateBucket(level=60, size=60, drip=1, last_request_time=fake_clock())
        transport = make_transport(httpx.Response(200))
        pipeline = build_pipeline(transport, bucket=bucket)

        await pipeline.execute("GET", URL)

        assert sleep_recorder.calls == [pytest.approx(1.0)]
        assert events[0] == ("sleep", pytest.approx(1.0))
        assert events[1] == ("send", "GET")

    async def test_write_costs_more(
        self, build_pipeline, make_transport, fake_clock, sleep_recorder
    ):
        bucket = RateBucket(level=55, size=60, drip=1, last_request_time=fake_clock())
        pipeline = build_pipeline(make_transport(httpx.Response(200)), bucket=bucket)

        await pipeline.execute("GET", URL)
        assert sleep_recorder.calls == []

        pipeline.rate_limiter = RateLimiter(bucket=bucket, clock=fake_clock)
        await pipeline.execute("POST", URL, json={"Item": {}})
        assert sleep_recorder.calls == [pytest.approx(5.0)]

    async def test_infinite_wait_is_capped(
        self, build_pipeline, make_transport, fake_clock, sleep_recorder
    ):
        bucket = RateBucket(level=60, size=60, drip=0, last_request_time=fake_clock())
        pipeline = build_pipeline(
            make_transport(httpx.Response(200)), bucket=bucket, max_throttle_wait=7.5
        )

        await pipeline.execute("GET", URL)

        assert sleep_recorder.calls == [7.5]

    async def test_uncapped_infinite_wait_is_logged(
        self, build_pipeline, make_transport, fake_clock, sleep_recorder, caplog
    ):
        bucket = RateBucket(level=60, size=60, drip=0, last_request_time=fake_clock())
        pipeline = build_pipeline(
            make_transport(httpx.Response(200)),
            bucket=bucket,
            max_throttle_wait=math.inf,
        )

        with caplog.at_level(logging.WARNING):
            response = await pipeline.execute("GET", URL)

        assert response.status_code == 200
        assert sleep_recorder.calls == []
        assert "unbounded" in caplog.text


@pytest.mark.asyncio
class TestRetries:
    """Test the retry loop."""

    async def test_refreshes_twice_on_repeated_unauthorized(
        self, build_pipeline, make_transport, make_token_store, sleep_recorder
    ):
        token_store = make_token_store("")
        transport = make_transport(
            httpx.Response(401),
            httpx.Response(401),
            httpx.Response(201, json={"Item": {"itemID": "1"}}),
        )
        pipeline = build_pipeline(transport, token_store=token_store)

        response = await pipeline.execute("POST", URL, json={"Item": {}})

        assert response.status_code == 201
        assert token_store.refresh_calls == 2
        assert len(transport.requests) == 3
        assert transport.requests[1]["headers"]["Authorization"] == "Bearer token-1"
        assert transport.requests[2]["headers"]["Authorization"] == "Bearer token-2"
        assert sleep_recorder.calls == []

    async def test_refresh_receives_rejected_token(
        self, build_pipeline, make_transport, make_token_store
    ):
        token_store = make_token_store("token-0")
        transport = make_transport(httpx.Response(401), httpx.Response(200))
        pipeline = build_pipeline(transport, token_store=token_store)

        await pipeline.execute("GET", URL)

        assert token_store.stale_tokens == ["token-0"]

    async def test_third_unauthorized_is_returned(
        self, build_pipeline, make_transport, make_token_store
    ):
        token_store = make_token_store("")
        transport = make_transport(httpx.Response(401))
        pipeline = build_pipeline(transport, token_store=token_store)

        response = await pipeline.execute("GET", URL)

        assert response.status_code == 401
        assert token_store.refresh_calls == 2
        assert len(transport.requests) == 3

    async def test_unauthorized_after_other_retries_is_not_refreshed(
        self, build_pipeline, make_transport, make_token_store
    ):
        token_store = make_token_store("stale")
        transport = make_transport(
            httpx.Response(503), httpx.Response(503), httpx.Response(401)
        )
        pipeline = build_pipeline(transport, token_store=token_store)

        response = await pipeline.execute("GET", URL)

        assert response.status_code == 401
        assert token_store.refresh_calls == 0

    async def test_persistent_service_unavailable_returns_last_response(
        self, build_pipeline, make_transport, sleep_recorder
    ):
        transport = make_transport(httpx.Response(503, json={"message": "down"}))
        pipeline = build_pipeline(transport)

        response = await pipeline.execute("GET", URL)

        assert response.status_code == 503
        assert len(transport.requests) == 6
        assert sleep_recorder.calls == [1.0, 2.0, 3.0, 4.0]

    async def test_too_many_requests_retries_without_delay(
        self, build_pipeline, make_transport, sleep_recorder
    ):
        transport = make_transport(
            httpx.Response(429), httpx.Response(429), httpx.Response(200)
        )
        pipeline = build_pipeline(transport)

        response = await pipeline.execute("GET", URL)

        assert response.status_code == 200
        assert len(transport.requests) == 3
        assert sleep_recorder.calls == []

    async def test_connection_error_then_success(
        self, build_pipeline, make_transport, sleep_recorder, fake_clock
    ):
        transport = make_transport(
            httpx.ConnectError("refused"),
            httpx.ConnectError("refused"),
            httpx.Response(200),
        )
        pipeline = build_pipeline(transport)
        fake_clock.advance(1)

        response = await pipeline.execute("GET", URL)

        assert response.status_code == 200
        assert sleep_recorder.calls == [1.0]
        assert pipeline.rate_limiter.bucket.last_request_time == fake_clock()

    async def test_connection_errors_exhaust_retries(
        self, build_pipeline, make_transport
    ):
        transport = make_transport(httpx.ConnectError("refused"))
        pipeline = build_pipeline(transport)

        with pytest.raises(TransportError) as exc_info:
            await pipeline.execute("DELETE", URL)

        assert len(transport.requests) == 6
        assert exc_info.value.attempts == 6
        assert exc_info.value.details["method"] == "DELETE"
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    async def test_read_timeout_is_retried(self, build_pipeline, make_transport):
        transport = make_transport(httpx.ReadTimeout("slow"), httpx.Response(200))
        pipeline = build_pipeline(transport)

        response = await pipeline.execute("GET", URL)

        assert response.status_code == 200
        assert len(transport.requests) == 2

    async def test_refresh_failure_short_circuits(
        self, build_pipeline, make_transport, make_token_store
    ):
        token_store = make_token_store("", error=TokenRefreshError("invalid_grant"))
        transport = make_transport(httpx.Response(401))
        pipeline = build_pipeline(transport, token_store=token_store)

        with pytest.raises(TokenRefreshError):
            await pipeline.execute("GET", URL)

        assert len(transport.requests) == 1
        assert token_store.refresh_calls == 1

    async def test_retry_ceiling_is_configurable(self, build_pipeline, make_transport):
        transport = make_transport(httpx.Response(502))
        pipeline = build_pipeline(transport, retry_policy=RetryPolicy(max_retries=2))

        response = await pipeline.execute("GET", URL)

        assert response.status_code == 502
        assert len(transport.requests) == 3


@pytest.mark.asyncio
async def test_concurrent_requests_share_state(
    build_pipeline, make_transport, sample_bucket_headers
):
    transport = make_transport(httpx.Response(200, headers=sample_bucket_headers))
    pipeline = build_pipeline(transport)

    responses = await asyncio.gather(*(pipeline.execute("GET", URL) for _ in range(10)))

    assert [r.status_code for r in responses] == [200] * 10
    assert len(transport.requests) == 10
    assert pipeline.rate_limiter.bucket.available == 57
