"""
loaders/reconciler.py — Idempotent, record-level fault-isolated upserts.

Every normalized record is upserted on its own. A failing record is
counted, logged, and skipped; the rest of the batch still lands.
Re-running with the same input leaves the store unchanged.

Usage:
    reconciler = Reconciler(repository)
    districts = await reconciler.upsert_districts(normalized_districts)
    metrics = await reconciler.upsert_metrics(normalized_metrics)
    print(metrics.succeeded, metrics.failed, metrics.status)
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from mgnrega_shared.models import District, Metric
from mgnrega_pipeline.loaders.repository import MetricsRepository

log = structlog.get_logger(__name__)

MAX_ERRORS_KEPT = 50


@dataclass
class ReconcileResult:
    """Summary of one upsert batch."""

    entity: str
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def status(self) -> str:
        if self.failed == 0:
            return "success"
        if self.succeeded > 0:
            return "partial_failure"
        return "failure"

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "status": self.status,
            "errors": list(self.errors),
            "duration_ms": self.duration_ms,
        }


class Reconciler:
    """Upserts normalized records into a MetricsRepository, one at a time."""

    def __init__(self, repository: MetricsRepository) -> None:
        self._repository = repository

    async def upsert_districts(self, districts: Sequence[District]) -> ReconcileResult:
        result = ReconcileResult(entity="districts", attempted=len(districts))
        t0 = time.monotonic()
        log.info("reconcile_start", entity="districts", records=len(districts))

        for district in districts:
            try:
                await self._repository.upsert_district(
                    district.district_id, district.to_upsert_dict()
                )
                result.succeeded += 1
            except Exception as exc:
                log.error("district_upsert_failed", district_id=district.district_id, error=str(exc))
                self._record_failure(result, f"{district.district_id}: {exc}")

        return self._finish(result, t0)

    async def upsert_metrics(self, metrics: Sequence[Metric]) -> ReconcileResult:
        result = ReconcileResult(entity="metrics", attempted=len(metrics))
        t0 = time.monotonic()
        log.info("reconcile_start", entity="metrics", records=len(metrics))

        for metric in metrics:
            try:
                await self._repository.upsert_metric(metric.key, metric.to_upsert_dict())
                result.succeeded += 1
            except Exception as exc:
                log.error(
                    "metric_upsert_failed",
                    district_id=metric.district_id,
                    year=metric.year,
                    month=metric.month,
                    error=str(exc),
                )
                self._record_failure(
                    result, f"{metric.district_id}/{metric.year}-{metric.month:02d}: {exc}"
                )

        return self._finish(result, t0)

    @staticmethod
    def _record_failure(result: ReconcileResult, message: str) -> None:
        result.failed += 1
        if len(result.errors) < MAX_ERRORS_KEPT:
            result.errors.append(message)

    @staticmethod
    def _finish(result: ReconcileResult, t0: float) -> ReconcileResult:
        result.duration_ms = int((time.monotonic() - t0) * 1000)
        log.info(
            "reconcile_complete",
            entity=result.entity,
            succeeded=result.succeeded,
            failed=result.failed,
            duration_ms=result.duration_ms,
            status=result.status,
        )
        return result
