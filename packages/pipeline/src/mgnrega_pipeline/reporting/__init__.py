"""
mgnrega_pipeline.reporting — read-side views over the store.

    FreshnessReporter.get_cache_status()  counts, per-state breakdown, health flags
    FreshnessReporter.get_freshness()     newest/oldest update, age, staleness
    export_metrics()                      JSON or CSV dump of cached metrics
    clear_cache()                         administrative wipe (token required)
"""

from mgnrega_pipeline.reporting.export import clear_cache, export_metrics
from mgnrega_pipeline.reporting.freshness import FreshnessReporter

__all__ = ["FreshnessReporter", "export_metrics", "clear_cache"]
