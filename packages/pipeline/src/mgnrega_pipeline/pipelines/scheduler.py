"""
pipelines/scheduler.py — Calendar-triggered and manual sync runs.

State machine:

    IDLE ──trigger──▶ RUNNING ──run completes or fails──▶ IDLE

At most one run is RUNNING. A trigger that fires while a run is in flight
is dropped (not queued) and reported as a "skipped" SyncRun. Manual
triggers without force short-circuit with "already_current" when any
metric was updated within the staleness window.

The timer is an APScheduler AsyncIOScheduler with a CronTrigger; tests
inject their own scheduler (or none) and call run_scheduled() directly.

Usage:
    scheduler = SyncScheduler.for_pipeline(client, repository)
    scheduler.start()                        # inside a running event loop
    result = await scheduler.trigger_sync(force=False)
    scheduler.status()
"""

from __future__ import annotations

import enum
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger

from mgnrega_shared.config import settings
from mgnrega_shared.exceptions import ConfigurationError, NoDataError
from mgnrega_shared.time_utils import Clock, utc_now
from mgnrega_pipeline.loaders.repository import MetricsRepository
from mgnrega_pipeline.pipelines import data_sync
from mgnrega_pipeline.pipelines.data_sync import SyncRun
from mgnrega_pipeline.sources.datagov import DataGovClient
from mgnrega_pipeline.utils.logging import get_logger, sync_run_context

log = get_logger(__name__, component="scheduler")

JOB_ID = "data_sync"

# (run_id, trigger) -> SyncRun
SyncRunner = Callable[[str, str], Awaitable[SyncRun]]


class SyncState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


class SyncScheduler:
    """Single-run-at-a-time guard around a sync runner, driven by a cron trigger."""

    def __init__(
        self,
        runner: SyncRunner,
        repository: MetricsRepository,
        *,
        cron: str | None = None,
        timezone: str | None = None,
        staleness_hours: float | None = None,
        clock: Clock = utc_now,
        scheduler: BaseScheduler | None = None,
    ) -> None:
        self._runner = runner
        self._repository = repository
        self._cron = cron or settings.sync_cron
        self._timezone = timezone or settings.sync_timezone
        hours = staleness_hours if staleness_hours is not None else settings.staleness_hours
        self._staleness = timedelta(hours=hours)
        self._clock = clock
        self._scheduler = scheduler
        self._state = SyncState.IDLE
        self._current_run_id: str | None = None
        self._last_run: SyncRun | None = None

    @classmethod
    def for_pipeline(
        cls,
        client: DataGovClient,
        repository: MetricsRepository,
        *,
        clock: Clock = utc_now,
        **kwargs: Any,
    ) -> "SyncScheduler":
        """Build a scheduler whose runner is data_sync.run() on this client/store."""

        async def runner(run_id: str, trigger: str) -> SyncRun:
            return await data_sync.run(
                client=client,
                repository=repository,
                clock=clock,
                run_id=run_id,
                trigger=trigger,
            )

        return cls(runner, repository, clock=clock, **kwargs)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def current_run_id(self) -> str | None:
        return self._current_run_id

    @property
    def last_run(self) -> SyncRun | None:
        return self._last_run

    def build_trigger(self) -> CronTrigger:
        try:
            return CronTrigger.from_crontab(self._cron, timezone=self._timezone)
        except (ValueError, LookupError) as exc:
            raise ConfigurationError(f"Invalid cron schedule {self._cron!r}: {exc}") from exc

    # ------------------------------------------------------------------
    # Timer lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Register the cron job and start the timer. Needs a running event loop."""
        trigger = self.build_trigger()
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._scheduler.add_job(
            self.run_scheduled,
            trigger=trigger,
            id=JOB_ID,
            name="MGNREGA data sync",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        log.info("scheduler_started", schedule=self._cron, timezone=self._timezone)

    def stop(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            log.info("scheduler_stopped")

    def status(self) -> dict[str, Any]:
        job = self._scheduler.get_job(JOB_ID) if self._scheduler is not None else None
        next_run = getattr(job, "next_run_time", None) if job is not None else None
        return {
            "state": self._state.value,
            "schedule": self._cron,
            "timezone": self._timezone,
            "scheduled": job is not None,
            "next_run_time": next_run.isoformat() if next_run else None,
            "current_run_id": self._current_run_id,
            "last_run": self._last_run.to_dict() if self._last_run else None,
        }

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def run_scheduled(self) -> SyncRun:
        """Timer callback: run unconditionally unless a run is already in flight."""
        log.info("scheduled_sync_fired")
        result = await self._execute("scheduled")
        if result.ok:
            log.info(
                "scheduled_sync_complete",
                status=result.status,
                districts_synced=result.districts.succeeded,
                metrics_synced=result.metrics.succeeded,
                duration_ms=result.duration_ms,
            )
        else:
            log.error("scheduled_sync_failed", status=result.status, error=result.error)
        return result

    async def trigger_sync(self, force: bool = False) -> SyncRun:
        """
        Manual trigger.

        Without force, skips the upstream entirely when any metric was
        updated within the staleness window.
        """
        now = self._clock()
        if self._state is SyncState.RUNNING:
            return self._skipped(now, "manual")

        if not force:
            try:
                recent = await self._repository.count_metrics(updated_since=now - self._staleness)
            except Exception as exc:
                log.error("sync_staleness_check_failed", error=str(exc), exc_info=True)
                return SyncRun.short_circuit(
                    data_sync.FAILURE,
                    trigger="manual",
                    now=now,
                    message="Could not read data freshness from the store",
                    error=str(exc),
                )
            if recent > 0:
                log.info("manual_sync_already_current", recent_metrics=recent)
                return SyncRun.short_circuit(
                    data_sync.ALREADY_CURRENT,
                    trigger="manual",
                    now=now,
                    message="Data is already up to date",
                )

        return await self._execute("manual")

    async def _execute(self, trigger: str) -> SyncRun:
        # Check-and-set happens before the first await, so it is atomic on the loop.
        if self._state is SyncState.RUNNING:
            return self._skipped(self._clock(), trigger)

        run_id = str(uuid.uuid4())
        self._state = SyncState.RUNNING
        self._current_run_id = run_id
        with sync_run_context(run_id, trigger):
            try:
                result = await self._runner(run_id, trigger)
            except NoDataError as exc:
                result = SyncRun.short_circuit(
                    data_sync.NO_DATA,
                    trigger=trigger,
                    now=self._clock(),
                    run_id=run_id,
                    message="No data available from API",
                    error=str(exc),
                )
            except ConfigurationError as exc:
                log.error("sync_configuration_error", error=str(exc))
                result = SyncRun.short_circuit(
                    data_sync.FAILURE,
                    trigger=trigger,
                    now=self._clock(),
                    run_id=run_id,
                    message="Sync is not configured",
                    error=str(exc),
                )
            except Exception as exc:
                log.error("sync_run_crashed", error=str(exc), exc_info=True)
                result = SyncRun.short_circuit(
                    data_sync.FAILURE,
                    trigger=trigger,
                    now=self._clock(),
                    run_id=run_id,
                    message="Data synchronization failed",
                    error=str(exc),
                )
            finally:
                self._state = SyncState.IDLE
                self._current_run_id = None

        self._last_run = result
        return result

    def _skipped(self, now: datetime, trigger: str) -> SyncRun:
        log.warning("sync_already_running", run_id=self._current_run_id, trigger=trigger)
        return SyncRun.short_circuit(
            data_sync.SKIPPED,
            trigger=trigger,
            now=now,
            message=f"A sync run is already in progress ({self._current_run_id})",
        )
