"""
client/read_api.py — Deduplicating, rate-limit-aware client for the read API.

Used by the presentation tier against this service's own read endpoints.

  - Concurrent calls with the same (endpoint, method, params, body)
    signature share one in-flight request and receive the same result.
  - A 429 response is retried after the server's Retry-After hint, or after
    min(30 s, 1 s × 2^attempt + jitter) when there is none, up to
    max_retries times.
  - Anything that still fails resolves to None (a soft failure) so the
    caller can fall back to default data instead of crashing.
  - get_with_fallback() answers from a live cache entry (younger than
    client_cache_ttl_s) without waiting on the network, and refreshes that
    entry in the background.

Usage:
    async with ReadApiClient() as api:
        data = await api.request("/districts", params={"state": "Kerala"})
        data = await api.get_with_fallback("/districts", default=DEMO_DISTRICTS)
"""

from __future__ import annotations

import asyncio
import json
import random
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from mgnrega_shared.config import settings
from mgnrega_shared.exceptions import RateLimitError
from mgnrega_pipeline.utils.cache import TTLCache

log = structlog.get_logger(__name__)

BASE_DELAY_S = 1.0
MAX_DELAY_S = 30.0
REQUEST_TIMEOUT_S = 10.0


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> float | None:
    """
    Seconds to wait from a Retry-After header (delta-seconds or HTTP-date).

    An HTTP-date in the past, or a header that is neither form, waits one second.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(int(value)))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return 1.0
    if when is None:
        return 1.0
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max(1.0, (when - current).total_seconds())


def request_signature(
    endpoint: str,
    method: str = "GET",
    params: dict[str, Any] | None = None,
    body: Any = None,
) -> str:
    """Stable dedupe key; dict ordering does not matter."""
    return "|".join(
        (
            endpoint,
            method.upper(),
            json.dumps(params or {}, sort_keys=True, default=str),
            json.dumps(body or {}, sort_keys=True, default=str),
        )
    )


class ReadApiClient:
    """Coalesces identical concurrent reads and backs off on rate limiting."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        max_retries: int | None = None,
        base_delay: float = BASE_DELAY_S,
        max_delay: float = MAX_DELAY_S,
        timeout: float = REQUEST_TIMEOUT_S,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
        cache: TTLCache | None = None,
    ) -> None:
        self._base_url = (base_url or settings.read_api_url).rstrip("/")
        self._max_retries = max_retries if max_retries is not None else settings.client_max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
        self._owns_http = http_client is None
        self._sleep = sleep
        self._jitter = jitter
        self._cache = cache if cache is not None else TTLCache(default_ttl=settings.client_cache_ttl_s)
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._refreshing: dict[str, asyncio.Task[None]] = {}

    async def __aenter__(self) -> "ReadApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.drain()
        if self._owns_http:
            await self._http.aclose()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def request(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        params: dict[str, Any] | None = None,
        json_body: Any = None,
    ) -> Any | None:
        """
        Issue (or join) a request and return the decoded JSON body, or None.

        Never raises for HTTP, transport, or rate-limit failures.
        """
        key = request_signature(endpoint, method, params, json_body)
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self._request_with_backoff(endpoint, method, params, json_body)
            )
            self._in_flight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        else:
            log.debug("read_api_request_coalesced", endpoint=endpoint)
        # shield: one caller being cancelled must not cancel the shared request
        return await asyncio.shield(task)

    async def get_with_fallback(
        self,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        default: Any = None,
    ) -> Any:
        """
        Cache-first GET.

        A live cache entry is returned at once and refreshed in the
        background. On a miss the request is awaited; a successful response
        is cached, a soft failure returns `default`.
        """
        key = request_signature(endpoint, "GET", params)
        cached = self._cache.get(key)
        if cached is not None:
            log.debug("read_api_cache_hit", endpoint=endpoint)
            self._schedule_refresh(key, endpoint, params)
            return cached

        fresh = await self.request(endpoint, params=params)
        if fresh is not None:
            self._cache.set(key, fresh)
            return fresh
        log.info("read_api_using_default_data", endpoint=endpoint)
        return default

    async def drain(self) -> None:
        """Wait for outstanding background refreshes."""
        pending = list(self._refreshing.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    @property
    def refreshing(self) -> int:
        return len(self._refreshing)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _forget(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    def _schedule_refresh(
        self, key: str, endpoint: str, params: dict[str, Any] | None
    ) -> None:
        if key in self._refreshing:
            return
        task = asyncio.ensure_future(self._refresh(key, endpoint, params))
        self._refreshing[key] = task
        task.add_done_callback(lambda done, key=key: self._forget_refresh(key, done))

    def _forget_refresh(self, key: str, task: asyncio.Task[None]) -> None:
        if self._refreshing.get(key) is task:
            del self._refreshing[key]

    async def _refresh(
        self, key: str, endpoint: str, params: dict[str, Any] | None
    ) -> None:
        fresh = await self.request(endpoint, params=params)
        if fresh is not None:
            self._cache.set(key, fresh)
            log.debug("read_api_cache_refreshed", endpoint=endpoint)

    def backoff_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Delay before retry number `attempt` (0-based)."""
        if retry_after is not None:
            return retry_after
        delay = self._base_delay * (2 ** attempt) + self._jitter()
        return min(self._max_delay, delay)

    def _wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = exc.retry_after if isinstance(exc, RateLimitError) else None
        delay = self.backoff_delay(retry_state.attempt_number - 1, retry_after)
        log.warning(
            "read_api_rate_limited",
            endpoint=getattr(exc, "endpoint", None),
            attempt=retry_state.attempt_number,
            delay_s=round(delay, 3),
        )
        return delay

    async def _send(
        self,
        endpoint: str,
        method: str,
        params: dict[str, Any] | None,
        json_body: Any,
    ) -> Any:
        response = await self._http.request(
            method,
            f"{self._base_url}{endpoint}",
            params=params,
            json=json_body,
        )
        if response.status_code == 429:
            raise RateLimitError(endpoint, parse_retry_after(response.headers.get("Retry-After")))
        response.raise_for_status()
        return response.json()

    async def _request_with_backoff(
        self,
        endpoint: str,
        method: str,
        params: dict[str, Any] | None,
        json_body: Any,
    ) -> Any | None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_retries + 1),
                wait=self._wait,
                retry=retry_if_exception_type(RateLimitError),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    return await self._send(endpoint, method, params, json_body)
        except RateLimitError:
            log.warning("read_api_retries_exhausted", endpoint=endpoint, retries=self._max_retries)
            return None
        except (httpx.HTTPError, ValueError) as exc:
            log.warning("read_api_call_failed", endpoint=endpoint, error=str(exc))
            return None
        return None
