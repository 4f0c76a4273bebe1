"""
constants.py — Upstream endpoints and store naming shared across packages.

Usage:
    from mgnrega_shared.constants import ENDPOINTS, METRIC_FEEDS
"""

from __future__ import annotations

# Logical endpoint kind → resource path under settings.data_gov_base_url
ENDPOINTS: dict[str, str] = {
    "districts": "/mgnrega-districts",
    "employment": "/mgnrega-employment-data",
    "works": "/mgnrega-works-data",
    "wages": "/mgnrega-wages-data",
}

# Feeds that carry Metric rows, in the order they are normalized
METRIC_FEEDS: tuple[str, ...] = ("employment", "works", "wages")

DATA_SOURCE = "data.gov.in"
USER_AGENT = "MGNREGA-Data-Sync/0.1"

# Store tables and their natural keys
DISTRICTS_TABLE = "districts"
METRICS_TABLE = "metrics"
DISTRICT_CONFLICT_COLUMNS: list[str] = ["district_id"]
METRIC_CONFLICT_COLUMNS: list[str] = ["district_id", "year", "month"]

CLEAR_CONFIRMATION_TOKEN = "CLEAR_CACHE"

# Performance score weights (employment, work completion, wage payment)
SCORE_WEIGHTS: tuple[float, float, float] = (0.4, 0.3, 0.3)
