"""
models/cache.py — Read-side views over the store: per-state aggregates,
cache status, and freshness. None of these are persisted.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class StateAggregate(BaseModel):
    """One row of aggregate_metrics_by_state()."""

    state_name: str | None
    count: int
    oldest: datetime | None = None
    newest: datetime | None = None


class CacheHealth(BaseModel):
    districts: bool
    metrics: bool
    recent: bool


class CacheStatus(BaseModel):
    total_districts: int
    total_metrics: int
    latest_update: datetime | None
    data_by_state: list[StateAggregate]
    cache_health: CacheHealth
    is_fresh: bool


class OverallFreshness(BaseModel):
    oldest: datetime | None = None
    newest: datetime | None = None
    count: int | None = None
    age_in_hours: int | None = None
    is_stale: bool | None = None


class FreshnessReport(BaseModel):
    overall: OverallFreshness
    by_state: list[StateAggregate]
    generated_at: datetime
