"""
reporting/export.py — Export cached metrics and the administrative clear.

CSV output is rendered with polars so column order is stable and quoting
is correct; JSON output is a plain dict for the routing layer to serialize.

Usage:
    payload = await export_metrics(repo, fmt="json", state_name="Kerala", year=2024)
    csv_text = await export_metrics(repo, fmt="csv")
    deleted = await clear_cache(repo, confirm="CLEAR_CACHE")
"""

from __future__ import annotations

from typing import Any, Literal

import polars as pl
import structlog

from mgnrega_shared.time_utils import Clock, utc_now
from mgnrega_pipeline.loaders.repository import MetricsRepository

log = structlog.get_logger(__name__)

EXPORT_LIMIT = 1000

CSV_COLUMNS: dict[str, str] = {
    "district_id": "District ID",
    "district_name": "District Name",
    "state_name": "State Name",
    "year": "Year",
    "month": "Month",
    "total_households": "Total Households",
    "households_provided_work": "Households Provided Work",
    "total_persons": "Total Persons",
    "persons_provided_work": "Persons Provided Work",
    "total_workdays": "Total Workdays",
    "workdays_generated": "Workdays Generated",
    "total_wages": "Total Wages",
    "wages_paid": "Wages Paid",
    "employment_rate": "Employment Rate",
    "work_completion_rate": "Work Completion Rate",
    "wage_payment_rate": "Wage Payment Rate",
    "performance_score": "Performance Score",
    "last_updated": "Last Updated",
}


async def export_metrics(
    repository: MetricsRepository,
    *,
    fmt: Literal["json", "csv"] = "json",
    state_name: str | None = None,
    year: int | None = None,
    month: int | None = None,
    limit: int = EXPORT_LIMIT,
    clock: Clock = utc_now,
) -> dict[str, Any] | str:
    """
    Dump up to `limit` cached metrics matching the filters.

    Returns:
        fmt="json": {"records", "count", "exported_at", "criteria"}
        fmt="csv":  CSV text with a human-readable header row.
    """
    metrics = await repository.list_metrics(
        state_name=state_name, year=year, month=month, limit=limit
    )
    records = [m.to_response_dict() for m in metrics]
    log.info("metrics_export", fmt=fmt, records=len(records))

    if fmt == "csv":
        if not records:
            df = pl.DataFrame(schema={label: pl.String for label in CSV_COLUMNS.values()})
        else:
            df = (
                pl.DataFrame(records, infer_schema_length=None)
                .select(list(CSV_COLUMNS))
                .rename(CSV_COLUMNS)
            )
        return df.write_csv()

    return {
        "records": records,
        "count": len(records),
        "exported_at": clock().isoformat(),
        "criteria": {"state": state_name, "year": year, "month": month},
    }


async def clear_cache(repository: MetricsRepository, *, confirm: str | None) -> dict[str, int]:
    """
    Delete all metrics, then all districts.

    Raises:
        ConfirmationRequiredError: confirm is not the CLEAR_CACHE token.
    """
    metrics_deleted = await repository.delete_all("metrics", confirm=confirm)
    districts_deleted = await repository.delete_all("districts", confirm=confirm)
    return {"metrics": metrics_deleted, "districts": districts_deleted}
