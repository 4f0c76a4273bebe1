"""
tests/test_client/test_read_api.py — Request coalescing, 429 backoff, and
soft-failure fallback of ReadApiClient.

Sleeping is injected so backoff delays are recorded, never waited out.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx

from mgnrega_pipeline.client.read_api import ReadApiClient, parse_retry_after, request_signature
from mgnrega_pipeline.utils.cache import TTLCache

READ_URL = "https://read.test/api"


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


def _client(sleep: SleepRecorder, **kwargs) -> ReadApiClient:
    return ReadApiClient(
        READ_URL,
        max_retries=kwargs.pop("max_retries", 4),
        sleep=sleep.sleep,
        jitter=kwargs.pop("jitter", lambda: 0.0),
        **kwargs,
    )


class TestParseRetryAfter:
    def test_seconds(self):
        assert parse_retry_after("5") == 5.0

    def test_http_date(self):
        now = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
        assert parse_retry_after("Sat, 15 Jun 2024 12:00:10 GMT", now=now) == 10.0

    def test_past_date_waits_one_second(self):
        now = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
        assert parse_retry_after("Sat, 15 Jun 2024 11:00:00 GMT", now=now) == 1.0

    def test_missing(self):
        assert parse_retry_after(None) is None
        assert parse_retry_after("") is None


class TestSignature:
    def test_param_order_irrelevant(self):
        assert request_signature("/d", "GET", {"a": 1, "b": 2}) == request_signature(
            "/d", "get", {"b": 2, "a": 1}
        )

    def test_distinct_endpoints(self):
        assert request_signature("/districts") != request_signature("/metrics")


class TestBackoff:
    def test_exponential_with_jitter(self, sleep):
        client = _client(sleep, jitter=lambda: 0.25)
        assert [client.backoff_delay(n) for n in range(4)] == [1.25, 2.25, 4.25, 8.25]

    def test_capped(self, sleep):
        assert _client(sleep).backoff_delay(10) == 30.0

    def test_retry_after_wins(self, sleep):
        assert _client(sleep).backoff_delay(3, retry_after=7.0) == 7.0


class TestRateLimiting:
    @pytest.mark.asyncio
    async def test_honours_retry_after(self, sleep):
        client = _client(sleep)
        with respx.mock() as router:
            route = router.get(f"{READ_URL}/districts").mock(
                side_effect=[
                    httpx.Response(429, headers={"Retry-After": "2"}),
                    httpx.Response(200, json={"districts": ["D1"]}),
                ]
            )
            result = await client.request("/districts")
        await client.aclose()

        assert result == {"districts": ["D1"]}
        assert route.call_count == 2
        assert sleep.delays == [2.0]

    @pytest.mark.asyncio
    async def test_exponential_without_header(self, sleep):
        client = _client(sleep, jitter=lambda: 0.5)
        with respx.mock() as router:
            router.get(f"{READ_URL}/metrics").mock(
                side_effect=[
                    httpx.Response(429),
                    httpx.Response(429),
                    httpx.Response(200, json=[]),
                ]
            )
            result = await client.request("/metrics")
        await client.aclose()

        assert result == []
        assert sleep.delays == [1.5, 2.5]

    @pytest.mark.asyncio
    async def test_exhausted_retries_soft_fail(self, sleep):
        client = _client(sleep)
        with respx.mock() as router:
            route = router.get(f"{READ_URL}/metrics").mock(return_value=httpx.Response(429))
            result = await client.request("/metrics")
        await client.aclose()

        assert result is None
        assert route.call_count == 5
        assert sleep.delays == [1.0, 2.0, 4.0, 8.0]

    @pytest.mark.asyncio
    async def test_server_error_not_retried(self, sleep):
        client = _client(sleep)
        with respx.mock() as router:
            route = router.get(f"{READ_URL}/metrics").mock(return_value=httpx.Response(500))
            result = await client.request("/metrics")
        await client.aclose()

        assert result is None
        assert route.call_count == 1
        assert sleep.delays == []


class TestCoalescing:
    @pytest.mark.asyncio
    async def test_identical_concurrent_requests_share_one_call(self, sleep):
        gate = asyncio.Event()

        async def slow_request(method, url, **kwargs):
            await gate.wait()
            return httpx.Response(200, json={"ok": True}, request=httpx.Request(method, url))

        http = MagicMock()
        http.request = AsyncMock(side_effect=slow_request)
        client = _client(sleep, http_client=http)

        calls = [
            asyncio.create_task(client.request("/districts", params={"state": "Kerala", "page": 1}))
            for _ in range(3)
        ]
        calls.append(
            asyncio.create_task(client.request("/districts", params={"page": 1, "state": "Kerala"}))
        )
        await asyncio.sleep(0)
        assert client.in_flight == 1
        gate.set()
        results = await asyncio.gather(*calls)

        assert http.request.await_count == 1
        assert results == [{"ok": True}] * 4
        assert client.in_flight == 0

    @pytest.mark.asyncio
    async def test_different_params_not_coalesced(self, sleep):
        http = MagicMock()
        http.request = AsyncMock(
            side_effect=lambda method, url, **kw: httpx.Response(
                200, json=kw["params"], request=httpx.Request(method, url)
            )
        )
        client = _client(sleep, http_client=http)

        first, second = await asyncio.gather(
            client.request("/districts", params={"state": "Kerala"}),
            client.request("/districts", params={"state": "Bihar"}),
        )

        assert http.request.await_count == 2
        assert first == {"state": "Kerala"}
        assert second == {"state": "Bihar"}

    @pytest.mark.asyncio
    async def test_completed_request_not_reused(self, sleep):
        http = MagicMock()
        http.request = AsyncMock(
            return_value=httpx.Response(200, json=1, request=httpx.Request("GET", READ_URL))
        )
        client = _client(sleep, http_client=http)

        await client.request("/districts")
        await client.request("/districts")

        assert http.request.await_count == 2


def _ok(payload) -> httpx.Response:
    return httpx.Response(200, json=payload, request=httpx.Request("GET", READ_URL))


def _unavailable() -> httpx.Response:
    return httpx.Response(503, request=httpx.Request("GET", READ_URL))


class TestFallback:
    @pytest.mark.asyncio
    async def test_live_cache_hit_returns_without_waiting_on_network(self, sleep):
        http = MagicMock()
        http.request = AsyncMock(side_effect=[_ok({"v": 1}), _ok({"v": 2})])
        cache = TTLCache(default_ttl=60)
        client = _client(sleep, http_client=http, cache=cache)

        assert await client.get_with_fallback("/districts") == {"v": 1}
        assert await client.get_with_fallback("/districts") == {"v": 1}
        assert http.request.await_count == 1
        assert client.refreshing == 1

        await client.drain()

        assert http.request.await_count == 2
        assert client.refreshing == 0
        assert cache.get(request_signature("/districts", "GET", None)) == {"v": 2}

    @pytest.mark.asyncio
    async def test_repeated_hits_schedule_one_refresh(self, sleep):
        http = MagicMock()
        http.request = AsyncMock(side_effect=[_ok({"v": 1}), _ok({"v": 2})])
        client = _client(sleep, http_client=http, cache=TTLCache(default_ttl=60))
        await client.get_with_fallback("/districts")

        for _ in range(3):
            assert await client.get_with_fallback("/districts") == {"v": 1}
        assert client.refreshing == 1

        await client.drain()
        assert http.request.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_cached_value(self, sleep):
        http = MagicMock()
        http.request = AsyncMock(side_effect=[_ok({"v": 1}), _unavailable()])
        cache = TTLCache(default_ttl=60)
        client = _client(sleep, http_client=http, cache=cache)
        await client.get_with_fallback("/districts")

        assert await client.get_with_fallback("/districts", default="demo") == {"v": 1}
        await client.drain()

        assert http.request.await_count == 2
        assert cache.get(request_signature("/districts", "GET", None)) == {"v": 1}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_expired_entry_falls_back_to_default(self, sleep):
        ticks = [0.0]
        cache = TTLCache(default_ttl=60, clock=lambda: ticks[0])
        http = MagicMock()
        http.request = AsyncMock(side_effect=[_ok({"v": 1}), _unavailable()])
        client = _client(sleep, http_client=http, cache=cache)

        assert await client.get_with_fallback("/districts", default="demo") == {"v": 1}
        ticks[0] = 120.0
        assert await client.get_with_fallback("/districts", default="demo") == "demo"
        assert http.request.await_count == 2
        assert client.refreshing == 0
