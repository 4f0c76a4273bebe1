"""
pipelines/data_sync.py — One full synchronization run.

Orchestrates:
  1. data.gov.in → districts, employment, works, wages (parallel, settle-all)
  2. Normalize → District rows; Metric rows from employment + works + wages
  3. Reconcile → districts first, then metrics (metrics carry denormalized
     district/state names expected to agree with the district rows)
  4. Return a SyncRun summary (never persisted)

A run that gets zero raw records from every endpoint raises NoDataError:
the upstream source is unreachable or empty, not a normalization problem.
Per-endpoint and per-record failures are absorbed and counted.

Usage:
    from mgnrega_pipeline.pipelines.data_sync import run
    async with DataGovClient() as client:
        sync_run = await run(client=client, repository=repo)
    print(sync_run.status, sync_run.metrics.succeeded)
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from mgnrega_shared.constants import METRIC_FEEDS
from mgnrega_shared.exceptions import NoDataError
from mgnrega_shared.time_utils import Clock, utc_now
from mgnrega_pipeline.loaders.reconciler import Reconciler, ReconcileResult
from mgnrega_pipeline.loaders.repository import MetricsRepository
from mgnrega_pipeline.sources.datagov import DataGovClient, fetch_all
from mgnrega_pipeline.transforms.normalize import normalize_districts, normalize_metrics
from mgnrega_pipeline.utils.logging import get_logger

log = get_logger(__name__, pipeline="data_sync")

# SyncRun.status values
SUCCESS = "success"
PARTIAL_FAILURE = "partial_failure"
FAILURE = "failure"
NO_DATA = "no_data"
ALREADY_CURRENT = "already_current"
SKIPPED = "skipped"


@dataclass
class SyncRun:
    """Outcome of one synchronization attempt. Returned and logged, never stored."""

    run_id: str
    trigger: str
    status: str
    started_at: datetime
    finished_at: datetime | None = None
    duration_ms: int = 0
    districts: ReconcileResult = field(default_factory=lambda: ReconcileResult("districts"))
    metrics: ReconcileResult = field(default_factory=lambda: ReconcileResult("metrics"))
    endpoint_counts: dict[str, int] = field(default_factory=dict)
    failed_endpoints: dict[str, str] = field(default_factory=dict)
    message: str | None = None
    error: str | None = None
    last_updated: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status in (SUCCESS, PARTIAL_FAILURE, ALREADY_CURRENT)

    @classmethod
    def short_circuit(
        cls,
        status: str,
        *,
        trigger: str,
        now: datetime,
        message: str,
        run_id: str | None = None,
        error: str | None = None,
        last_updated: datetime | None = None,
    ) -> "SyncRun":
        """A run that ended before (or instead of) reconciling anything."""
        return cls(
            run_id=run_id or str(uuid.uuid4()),
            trigger=trigger,
            status=status,
            started_at=now,
            finished_at=now,
            message=message,
            error=error,
            last_updated=last_updated,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "trigger": self.trigger,
            "status": self.status,
            "success": self.ok,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
            "districts": self.districts.to_dict(),
            "metrics": self.metrics.to_dict(),
            "endpoint_counts": dict(self.endpoint_counts),
            "failed_endpoints": dict(self.failed_endpoints),
            "message": self.message,
            "error": self.error,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


async def run(
    *,
    client: DataGovClient,
    repository: MetricsRepository,
    clock: Clock = utc_now,
    run_id: str | None = None,
    trigger: str = "manual",
    max_attempts: int | None = None,
    retry_base_delay: float = 1.0,
) -> SyncRun:
    """
    Run one full synchronization end-to-end.

    Args:
        client:           Upstream client (API key checked before any request).
        repository:       Store to reconcile into.
        clock:            Time source; stamps last_updated on every metric.
        run_id:           Identifier for logging; generated when omitted.
        trigger:          "scheduled" or "manual", for the summary and logs.
        max_attempts:     Per-endpoint fetch attempts (default from settings).
        retry_base_delay: First retry delay in seconds.

    Returns:
        SyncRun with per-entity success/failure counts.

    Raises:
        ConfigurationError: no API key configured.
        NoDataError:        every endpoint returned zero records.
    """
    run_id = run_id or str(uuid.uuid4())
    run_log = log.bind(run_id=run_id, trigger=trigger)
    started_at = clock()
    t0 = time.monotonic()
    run_log.info("data_sync_start")

    fetched = await fetch_all(client, max_attempts=max_attempts, base_delay=retry_base_delay)
    if fetched.total_records == 0:
        run_log.error("data_sync_no_data", failed_endpoints=fetched.failed)
        raise NoDataError()

    now = clock()
    districts = normalize_districts(fetched.records.get("districts", []))
    metric_rows = [row for feed in METRIC_FEEDS for row in fetched.records.get(feed, [])]
    metrics = normalize_metrics(metric_rows, now=now)
    run_log.info(
        "normalize_complete",
        districts=len(districts),
        metrics=len(metrics),
        raw_metrics=len(metric_rows),
    )

    reconciler = Reconciler(repository)
    district_result = await reconciler.upsert_districts(districts)
    metric_result = await reconciler.upsert_metrics(metrics)

    failed = district_result.failed + metric_result.failed
    succeeded = district_result.succeeded + metric_result.succeeded
    if failed == 0:
        status = SUCCESS
    elif succeeded > 0:
        status = PARTIAL_FAILURE
    else:
        status = FAILURE

    sync_run = SyncRun(
        run_id=run_id,
        trigger=trigger,
        status=status,
        started_at=started_at,
        finished_at=clock(),
        duration_ms=int((time.monotonic() - t0) * 1000),
        districts=district_result,
        metrics=metric_result,
        endpoint_counts=fetched.counts(),
        failed_endpoints=dict(fetched.failed),
        message="Data synchronization completed",
        last_updated=now if metrics else None,
    )
    run_log.info(
        "data_sync_complete",
        status=status,
        districts_synced=district_result.succeeded,
        metrics_synced=metric_result.succeeded,
        errors=failed,
        duration_ms=sync_run.duration_ms,
    )
    return sync_run
