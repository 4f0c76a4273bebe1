"""
reporting/freshness.py — Cache statistics and data freshness.

Pure reads over the repository; nothing here writes. Freshness is computed
from the NEWEST last_updated across all metrics: a store where any region
was refreshed an hour ago is one hour old, however stale other regions are.
An empty store has unknown freshness (None), not zero.

Usage:
    reporter = FreshnessReporter(repository)
    status = await reporter.get_cache_status()
    report = await reporter.get_freshness()
    report.overall.age_in_hours, report.overall.is_stale
"""

from __future__ import annotations

import math
from datetime import datetime

import structlog

from mgnrega_shared.config import settings
from mgnrega_shared.models import (
    CacheHealth,
    CacheStatus,
    FreshnessReport,
    OverallFreshness,
    StateAggregate,
)
from mgnrega_shared.time_utils import Clock, hours_since, utc_now
from mgnrega_pipeline.loaders.repository import MetricsRepository

log = structlog.get_logger(__name__)


class FreshnessReporter:
    """Aggregates counts and update times from a MetricsRepository."""

    def __init__(
        self,
        repository: MetricsRepository,
        *,
        clock: Clock = utc_now,
        staleness_hours: float | None = None,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._staleness_hours = (
            staleness_hours if staleness_hours is not None else settings.staleness_hours
        )

    async def get_cache_status(self) -> CacheStatus:
        total_districts = await self._repository.count_districts()
        total_metrics = await self._repository.count_metrics()
        by_state = await self._repository.aggregate_metrics_by_state()

        latest = max((s.newest for s in by_state if s.newest is not None), default=None)
        recent = (
            latest is not None
            and hours_since(latest, self._clock()) < self._staleness_hours
        )

        status = CacheStatus(
            total_districts=total_districts,
            total_metrics=total_metrics,
            latest_update=latest,
            data_by_state=by_state,
            cache_health=CacheHealth(
                districts=total_districts > 0,
                metrics=total_metrics > 0,
                recent=recent,
            ),
            is_fresh=recent,
        )
        log.info(
            "cache_status",
            total_districts=total_districts,
            total_metrics=total_metrics,
            is_fresh=recent,
        )
        return status

    async def get_freshness(self) -> FreshnessReport:
        now = self._clock()
        by_state = await self._repository.aggregate_metrics_by_state()
        by_state = sorted(by_state, key=_newest_first)
        return FreshnessReport(
            overall=self._overall(by_state, now),
            by_state=by_state,
            generated_at=now,
        )

    def _overall(self, by_state: list[StateAggregate], now: datetime) -> OverallFreshness:
        newest = max((s.newest for s in by_state if s.newest is not None), default=None)
        if newest is None:
            return OverallFreshness()

        oldest = min((s.oldest for s in by_state if s.oldest is not None), default=None)
        age = hours_since(newest, now)
        return OverallFreshness(
            oldest=oldest,
            newest=newest,
            count=sum(s.count for s in by_state),
            age_in_hours=math.floor(age),
            is_stale=age > self._staleness_hours,
        )


def _newest_first(aggregate: StateAggregate) -> tuple[bool, float]:
    if aggregate.newest is None:
        return (True, 0.0)
    return (False, -aggregate.newest.timestamp())
