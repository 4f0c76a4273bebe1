"""
loaders/supabase_repository.py — MetricsRepository backed by Supabase (PostgREST).

Each upsert is a single INSERT … ON CONFLICT DO UPDATE through PostgREST.
Only the columns present in the payload are updated on conflict, which is
what makes the upsert a field-wise merge. New rows get column defaults
(0 for counts, rates, and amounts) from the table DDL.

Usage:
    provider = SupabaseConnectionProvider()
    provider.open()
    repo = SupabaseRepository(provider)
    await repo.upsert_metric(MetricKey("D1", 2024, 3), metric.to_upsert_dict())
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

import httpx
import structlog
from postgrest.exceptions import APIError

from mgnrega_shared.constants import (
    DISTRICT_CONFLICT_COLUMNS,
    DISTRICTS_TABLE,
    METRIC_CONFLICT_COLUMNS,
    METRICS_TABLE,
)
from mgnrega_shared.db import SupabaseConnectionProvider
from mgnrega_shared.exceptions import RecordReconciliationError
from mgnrega_shared.models import District, Metric, MetricKey, StateAggregate
from mgnrega_shared.time_utils import ensure_utc
from mgnrega_pipeline.loaders.repository import EntityKind, MetricsRepository, aggregate_by_state

log = structlog.get_logger(__name__)

PAGE_SIZE = 1000  # PostgREST default max-rows

_STORE_ERRORS = (APIError, httpx.HTTPError)


class SupabaseRepository(MetricsRepository):
    """Reads and writes the districts/metrics tables through one shared client."""

    def __init__(self, provider: SupabaseConnectionProvider, *, page_size: int = PAGE_SIZE) -> None:
        self._provider = provider
        self._page_size = page_size

    @property
    def _client(self) -> Any:
        return self._provider.client

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert_district(self, district_id: str, fields: Mapping[str, Any]) -> None:
        row = {**fields, "district_id": district_id}
        try:
            self._client.table(DISTRICTS_TABLE).upsert(
                row,
                on_conflict=",".join(DISTRICT_CONFLICT_COLUMNS),
            ).execute()
        except _STORE_ERRORS as exc:
            raise RecordReconciliationError("district", district_id, exc) from exc

    async def upsert_metric(self, key: MetricKey, fields: Mapping[str, Any]) -> None:
        row = {**fields, **key._asdict()}
        try:
            self._client.table(METRICS_TABLE).upsert(
                row,
                on_conflict=",".join(METRIC_CONFLICT_COLUMNS),
            ).execute()
        except _STORE_ERRORS as exc:
            raise RecordReconciliationError("metric", key, exc) from exc

    async def _delete_all(self, entity: EntityKind) -> int:
        table = DISTRICTS_TABLE if entity == "districts" else METRICS_TABLE
        # PostgREST refuses an unfiltered DELETE; match every row explicitly.
        result = (
            self._client.table(table)
            .delete(count="exact")
            .neq("district_id", "")
            .execute()
        )
        return result.count or 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_district_by_id(self, district_id: str) -> District | None:
        result = (
            self._client.table(DISTRICTS_TABLE)
            .select("*")
            .eq("district_id", district_id)
            .limit(1)
            .execute()
        )
        rows = result.data or []
        return District.from_db_row(rows[0]) if rows else None

    async def count_districts(self, *, state_name: str | None = None) -> int:
        query = self._client.table(DISTRICTS_TABLE).select("*", count="exact")
        if state_name is not None:
            query = query.eq("state_name", state_name)
        return query.limit(0).execute().count or 0

    async def count_metrics(
        self,
        *,
        state_name: str | None = None,
        updated_since: datetime | None = None,
    ) -> int:
        query = self._client.table(METRICS_TABLE).select("*", count="exact")
        if state_name is not None:
            query = query.eq("state_name", state_name)
        if updated_since is not None:
            query = query.gte("last_updated", ensure_utc(updated_since).isoformat())
        return query.limit(0).execute().count or 0

    async def aggregate_metrics_by_state(self) -> list[StateAggregate]:
        rows: list[dict[str, Any]] = []
        start = 0
        while True:
            page = (
                self._client.table(METRICS_TABLE)
                .select("state_name,last_updated")
                .order("district_id")
                .order("year")
                .order("month")
                .range(start, start + self._page_size - 1)
                .execute()
            ).data or []
            rows.extend(page)
            if len(page) < self._page_size:
                break
            start += self._page_size
        log.debug("metrics_aggregate_rows", rows=len(rows))
        return aggregate_by_state(rows)

    async def list_metrics(
        self,
        *,
        state_name: str | None = None,
        year: int | None = None,
        month: int | None = None,
        limit: int = 1000,
    ) -> list[Metric]:
        query = self._client.table(METRICS_TABLE).select("*")
        if state_name:
            query = query.ilike("state_name", f"%{state_name}%")
        if year is not None:
            query = query.eq("year", year)
        if month is not None:
            query = query.eq("month", month)
        result = (
            query.order("state_name")
            .order("district_name")
            .order("year", desc=True)
            .order("month", desc=True)
            .limit(limit)
            .execute()
        )
        return [Metric.from_db_row(row) for row in (result.data or [])]
