"""
mgnrega_shared.models — Pydantic models matching each store table and the
derived read-side views.

Table models provide:
  .from_db_row(row: dict) -> Model
  .to_upsert_dict() -> dict
"""

from mgnrega_shared.models.cache import (
    CacheHealth,
    CacheStatus,
    FreshnessReport,
    OverallFreshness,
    StateAggregate,
)
from mgnrega_shared.models.district import District
from mgnrega_shared.models.metrics import METRIC_DEFAULTS, Metric, MetricKey

__all__ = [
    "District",
    "Metric",
    "MetricKey",
    "METRIC_DEFAULTS",
    "StateAggregate",
    "CacheHealth",
    "CacheStatus",
    "OverallFreshness",
    "FreshnessReport",
]
