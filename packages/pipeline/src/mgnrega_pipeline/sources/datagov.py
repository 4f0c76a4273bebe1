"""
sources/datagov.py — data.gov.in open-data API source adapter.

Four logical resources are served under settings.data_gov_base_url:

  GET /mgnrega-districts        ?api-key=…&format=json&limit=1000
  GET /mgnrega-employment-data  ?api-key=…&format=json&limit=1000
  GET /mgnrega-works-data       ?api-key=…&format=json&limit=1000
  GET /mgnrega-wages-data       ?api-key=…&format=json&limit=1000

Response shape:
  { "records": [ { "district_id": "D1", ... }, ... ], ... }

DataGovClient.fetch() performs exactly one request and raises
UpstreamFetchError on any transport or HTTP failure. Retrying is the
caller's job: fetch_all() wraps each endpoint with with_retry() and then
settles all four independently, so one failing feed yields an empty list
instead of voiding the run.

Usage:
    async with DataGovClient() as client:
        result = await fetch_all(client)
    result.records["employment"]      # list[dict]
    result.failed                     # {"works": "Upstream request ... timed out"}
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from mgnrega_shared.config import settings
from mgnrega_shared.constants import ENDPOINTS, USER_AGENT
from mgnrega_shared.exceptions import ConfigurationError, UpstreamFetchError
from mgnrega_pipeline.utils.retry import with_retry

log = structlog.get_logger(__name__)

RawRecord = dict[str, Any]


@dataclass
class FetchResult:
    """Raw records per endpoint kind, plus the endpoints that failed."""

    records: dict[str, list[RawRecord]] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    duration_ms: int = 0

    @property
    def total_records(self) -> int:
        return sum(len(rows) for rows in self.records.values())

    def counts(self) -> dict[str, int]:
        return {kind: len(rows) for kind, rows in self.records.items()}


class DataGovClient:
    """
    Thin async client for the data.gov.in MGNREGA resources.

    The underlying httpx.AsyncClient is shared across calls; pass one in to
    reuse a connection pool, or use the client as an async context manager.
    """

    name = "data.gov.in"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        page_size: int | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = (base_url or settings.data_gov_base_url).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.data_gov_api_key
        self._timeout = timeout if timeout is not None else settings.upstream_timeout_s
        self._page_size = page_size or settings.upstream_page_size
        self._http = http_client
        self._owns_http = http_client is None
        self._log = log.bind(source_name=self.name)

    async def __aenter__(self) -> "DataGovClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    def ensure_configured(self) -> None:
        """Fail fast, before any network call, when no API key is set."""
        if not self._api_key:
            raise ConfigurationError("DATA_GOV_API_KEY is not configured")

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"User-Agent": USER_AGENT},
            )
        return self._http

    async def fetch(
        self,
        kind: str,
        params: dict[str, Any] | None = None,
    ) -> list[RawRecord]:
        """
        GET one endpoint and return its `records` array.

        Args:
            kind:   One of ENDPOINTS ("districts", "employment", "works", "wages").
            params: Extra query params; override the api-key/format/limit defaults.

        Returns:
            Raw record dicts. A body without `records` yields [].

        Raises:
            ConfigurationError: no API key configured.
            UpstreamFetchError: network failure, timeout, non-2xx, or bad JSON.
        """
        self.ensure_configured()
        if kind not in ENDPOINTS:
            raise ValueError(f"Unknown endpoint kind: {kind!r}")

        url = f"{self._base_url}{ENDPOINTS[kind]}"
        query: dict[str, Any] = {
            "api-key": self._api_key,
            "format": "json",
            "limit": self._page_size,
            **(params or {}),
        }

        self._log.info("fetch_start", endpoint=kind, url=url)
        try:
            response = await self._client().get(url, params=query, timeout=self._timeout)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            self._log.error(
                "fetch_failed",
                endpoint=kind,
                status=exc.response.status_code,
                error=str(exc),
            )
            raise UpstreamFetchError(kind, exc) from exc
        except (httpx.HTTPError, ValueError) as exc:
            self._log.error("fetch_failed", endpoint=kind, error=repr(exc))
            raise UpstreamFetchError(kind, exc) from exc

        records = payload.get("records") if isinstance(payload, dict) else None
        if not isinstance(records, list):
            self._log.warning("fetch_no_records", endpoint=kind)
            return []

        self._log.info("fetch_complete", endpoint=kind, records=len(records))
        return records


async def fetch_all(
    client: DataGovClient,
    *,
    params: dict[str, Any] | None = None,
    max_attempts: int | None = None,
    base_delay: float = 1.0,
) -> FetchResult:
    """
    Fetch all four endpoints concurrently, settling each one independently.

    Each endpoint gets up to `max_attempts` tries on UpstreamFetchError. An
    endpoint that still fails contributes [] and is listed in
    FetchResult.failed; the others are unaffected.

    Raises:
        ConfigurationError: before any request when no API key is set.
    """
    client.ensure_configured()
    attempts = max_attempts or settings.upstream_max_attempts
    fetch = with_retry(
        max_attempts=attempts,
        base_delay=base_delay,
        retry_on=(UpstreamFetchError,),
    )(client.fetch)

    t0 = time.monotonic()
    kinds = list(ENDPOINTS)
    outcomes = await asyncio.gather(
        *(fetch(kind, params) for kind in kinds),
        return_exceptions=True,
    )

    result = FetchResult()
    for kind, outcome in zip(kinds, outcomes):
        if isinstance(outcome, ConfigurationError):
            raise outcome
        if isinstance(outcome, BaseException):
            log.error("endpoint_fetch_failed", endpoint=kind, error=str(outcome))
            result.records[kind] = []
            result.failed[kind] = str(outcome)
        else:
            result.records[kind] = outcome

    result.duration_ms = int((time.monotonic() - t0) * 1000)
    log.info(
        "fetch_all_complete",
        counts=result.counts(),
        failed=sorted(result.failed),
        duration_ms=result.duration_ms,
    )
    return result
