"""
loaders/repository.py — Store contract plus a dict-backed implementation.

Upserts are field-wise merges keyed by natural identity:
  districts  district_id
  metrics    (district_id, year, month)
Only keys present in `fields` are written. A row created by an upsert
starts from METRIC_DEFAULTS, so metrics never report a missing count as
null.

Usage:
    repo = InMemoryRepository()
    await repo.upsert_district("D1", {"district_name": "Alpha"})
    await repo.upsert_metric(MetricKey("D1", 2024, 3), {"total_households": 100})
    await repo.aggregate_metrics_by_state()
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Literal

import polars as pl
import structlog

from mgnrega_shared.constants import CLEAR_CONFIRMATION_TOKEN
from mgnrega_shared.exceptions import ConfirmationRequiredError, RecordReconciliationError
from mgnrega_shared.models import METRIC_DEFAULTS, District, Metric, MetricKey, StateAggregate
from mgnrega_shared.time_utils import ensure_utc, parse_timestamp

log = structlog.get_logger(__name__)

EntityKind = Literal["districts", "metrics"]


def aggregate_by_state(rows: Iterable[Mapping[str, Any]]) -> list[StateAggregate]:
    """
    Group (state_name, last_updated) rows into per-state count/oldest/newest.

    Sorted by count descending, then state name.
    """
    records = [
        {
            "state_name": row.get("state_name"),
            "last_updated": parse_timestamp(row.get("last_updated")),
        }
        for row in rows
    ]
    if not records:
        return []

    df = pl.DataFrame(
        records,
        schema={"state_name": pl.String, "last_updated": pl.Datetime("us", "UTC")},
    )
    grouped = (
        df.group_by("state_name")
        .agg(
            pl.len().alias("count"),
            pl.col("last_updated").min().alias("oldest"),
            pl.col("last_updated").max().alias("newest"),
        )
        .sort(["count", "state_name"], descending=[True, False], nulls_last=True)
    )
    return [StateAggregate(**row) for row in grouped.to_dicts()]


class MetricsRepository(ABC):
    """Async repository contract over the districts and metrics collections."""

    @abstractmethod
    async def find_district_by_id(self, district_id: str) -> District | None: ...

    @abstractmethod
    async def upsert_district(self, district_id: str, fields: Mapping[str, Any]) -> None:
        """Create or field-wise update one district. Raises RecordReconciliationError."""

    @abstractmethod
    async def upsert_metric(self, key: MetricKey, fields: Mapping[str, Any]) -> None:
        """Create or field-wise update one metric row. Raises RecordReconciliationError."""

    @abstractmethod
    async def count_districts(self, *, state_name: str | None = None) -> int: ...

    @abstractmethod
    async def count_metrics(
        self,
        *,
        state_name: str | None = None,
        updated_since: datetime | None = None,
    ) -> int: ...

    @abstractmethod
    async def aggregate_metrics_by_state(self) -> list[StateAggregate]: ...

    @abstractmethod
    async def list_metrics(
        self,
        *,
        state_name: str | None = None,
        year: int | None = None,
        month: int | None = None,
        limit: int = 1000,
    ) -> list[Metric]:
        """Metrics ordered by state, district, then newest period first."""

    @abstractmethod
    async def _delete_all(self, entity: EntityKind) -> int: ...

    async def delete_all(self, entity: EntityKind, *, confirm: str | None) -> int:
        """
        Delete every row of one entity kind. Administrative only.

        Raises:
            ConfirmationRequiredError: confirm is not CLEAR_CONFIRMATION_TOKEN.
        """
        if confirm != CLEAR_CONFIRMATION_TOKEN:
            raise ConfirmationRequiredError(
                f'Confirmation required. Pass confirm="{CLEAR_CONFIRMATION_TOKEN}".'
            )
        deleted = await self._delete_all(entity)
        log.warning("entity_cleared", entity=entity, deleted=deleted)
        return deleted


def _metric_sort_key(row: Mapping[str, Any]) -> tuple[Any, ...]:
    return (
        row.get("state_name") or "",
        row.get("district_name") or "",
        -int(row["year"]),
        -int(row["month"]),
    )


class InMemoryRepository(MetricsRepository):
    """Dict-backed repository. Rows are stored as JSON-safe dicts."""

    def __init__(self) -> None:
        self.districts: dict[str, dict[str, Any]] = {}
        self.metrics: dict[MetricKey, dict[str, Any]] = {}

    async def find_district_by_id(self, district_id: str) -> District | None:
        row = self.districts.get(district_id)
        return District.from_db_row(row) if row is not None else None

    async def upsert_district(self, district_id: str, fields: Mapping[str, Any]) -> None:
        if not district_id:
            raise RecordReconciliationError("district", district_id, "empty district_id")
        row = {**self.districts.get(district_id, {}), **fields, "district_id": district_id}
        if not row.get("district_name"):
            raise RecordReconciliationError("district", district_id, "district_name is required")
        self.districts[district_id] = row

    async def upsert_metric(self, key: MetricKey, fields: Mapping[str, Any]) -> None:
        if not 1 <= key.month <= 12:
            raise RecordReconciliationError("metric", key, f"month out of range: {key.month}")
        existing = self.metrics.get(key)
        base = existing if existing is not None else dict(METRIC_DEFAULTS)
        self.metrics[key] = {
            **base,
            **fields,
            "district_id": key.district_id,
            "year": key.year,
            "month": key.month,
        }

    async def count_districts(self, *, state_name: str | None = None) -> int:
        return sum(
            1
            for row in self.districts.values()
            if state_name is None or row.get("state_name") == state_name
        )

    async def count_metrics(
        self,
        *,
        state_name: str | None = None,
        updated_since: datetime | None = None,
    ) -> int:
        since = ensure_utc(updated_since) if updated_since is not None else None
        count = 0
        for row in self.metrics.values():
            if state_name is not None and row.get("state_name") != state_name:
                continue
            if since is not None:
                updated = parse_timestamp(row.get("last_updated"))
                if updated is None or updated < since:
                    continue
            count += 1
        return count

    async def aggregate_metrics_by_state(self) -> list[StateAggregate]:
        return aggregate_by_state(self.metrics.values())

    async def list_metrics(
        self,
        *,
        state_name: str | None = None,
        year: int | None = None,
        month: int | None = None,
        limit: int = 1000,
    ) -> list[Metric]:
        needle = state_name.lower() if state_name else None
        rows = [
            row
            for row in self.metrics.values()
            if (needle is None or needle in (row.get("state_name") or "").lower())
            and (year is None or row["year"] == year)
            and (month is None or row["month"] == month)
        ]
        rows.sort(key=_metric_sort_key)
        return [Metric.from_db_row(row) for row in rows[:limit]]

    async def _delete_all(self, entity: EntityKind) -> int:
        table = self.districts if entity == "districts" else self.metrics
        deleted = len(table)
        table.clear()
        return deleted
