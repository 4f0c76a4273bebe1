"""
transforms/normalize.py — Map raw upstream records onto District and Metric.

The upstream feeds disagree on naming ("district_id" vs "districtId",
"fin_year" vs "financial_year") and ship numbers as strings, sometimes with
thousands separators. Each canonical field has an ordered alias list;
the first alias present with a non-empty value wins.

Pure functions: the only outside input is the clock, passed in as `now`.

Usage:
    from mgnrega_pipeline.transforms.normalize import normalize_districts, normalize_metrics

    districts = normalize_districts(raw["districts"])
    metrics = normalize_metrics([*raw["employment"], *raw["works"], *raw["wages"]], now=clock())
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

import structlog

from mgnrega_shared.constants import DATA_SOURCE
from mgnrega_shared.models import District, Metric
from mgnrega_shared.models.metrics import AMOUNT_FIELDS, COUNT_FIELDS
from mgnrega_shared.time_utils import financial_year_label, parse_month, utc_now

log = structlog.get_logger(__name__)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "district_id": ("district_id", "districtId", "district_code"),
    "district_name": ("district_name", "districtName"),
    "state_name": ("state_name", "stateName"),
    "state_code": ("state_code", "stateCode"),
    "latitude": ("latitude", "lat"),
    "longitude": ("longitude", "lng", "lon"),
    "population": ("population",),
    "area": ("area",),
    "year": ("year",),
    "month": ("month",),
    "financial_year": ("financial_year", "financialYear", "fin_year"),
    **{name: (name, _camel(name)) for name in (*COUNT_FIELDS, *AMOUNT_FIELDS)},
}

# rate field → (numerator, denominator)
RATE_SOURCES: dict[str, tuple[str, str]] = {
    "employment_rate": ("households_provided_work", "total_households"),
    "work_completion_rate": ("workdays_generated", "total_workdays"),
    "wage_payment_rate": ("wages_paid", "total_wages"),
}

_MISSING = object()


def resolve(record: Mapping[str, Any], canonical: str) -> Any:
    """Return the first non-empty alias value for `canonical`, else _MISSING."""
    for alias in FIELD_ALIASES.get(canonical, (canonical,)):
        value = record.get(alias)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return _MISSING


def _text(value: Any) -> str | None:
    if value is _MISSING:
        return None
    s = str(value).strip()
    return s or None


def to_float(value: Any) -> float | None:
    """Lenient float parse: "1,234.5" → 1234.5; garbage → None."""
    if value is _MISSING or value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    else:
        try:
            result = float(str(value).replace(",", "").strip())
        except ValueError:
            return None
    if result != result or result in (float("inf"), float("-inf")):
        return None
    return result


def to_int(value: Any) -> int | None:
    """Lenient int parse via float, truncating: "12.0" → 12; garbage → None."""
    result = to_float(value)
    return int(result) if result is not None else None


def compute_rate(numerator: float | None, denominator: float | None) -> float:
    """
    numerator / denominator × 100, clamped to [0, 100] and rounded half-up
    to 2 places. 0 when the denominator is not positive.
    """
    num = numerator or 0.0
    den = denominator or 0.0
    if den <= 0:
        return 0.0
    rate = min(max(num / den * 100.0, 0.0), 100.0)
    return math.floor(rate * 100 + 0.5) / 100


# ---------------------------------------------------------------------------
# Districts
# ---------------------------------------------------------------------------


def normalize_district(record: Mapping[str, Any]) -> District | None:
    """One raw record → District, or None when id or name is missing."""
    district_id = _text(resolve(record, "district_id"))
    district_name = _text(resolve(record, "district_name"))
    if not district_id or not district_name:
        return None
    return District(
        district_id=district_id,
        district_name=district_name,
        state_name=_text(resolve(record, "state_name")),
        state_code=_text(resolve(record, "state_code")),
        latitude=to_float(resolve(record, "latitude")),
        longitude=to_float(resolve(record, "longitude")),
        population=to_int(resolve(record, "population")),
        area=to_float(resolve(record, "area")),
    )


def normalize_districts(raw: Iterable[Mapping[str, Any]]) -> list[District]:
    """Normalize raw district records, dropping any without id and name."""
    districts: list[District] = []
    dropped = 0
    for record in raw:
        district = normalize_district(record)
        if district is None:
            dropped += 1
            continue
        districts.append(district)
    if dropped:
        log.warning("districts_dropped", dropped=dropped, kept=len(districts))
    return districts


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def normalize_metric(record: Mapping[str, Any], *, now: datetime) -> Metric | None:
    """
    One raw record → Metric, or None when district_id is missing.

    Fields absent from the record stay unset so the field-wise upsert does
    not overwrite values another feed supplied for the same key. A field
    that is present but unparseable becomes 0.
    """
    district_id = _text(resolve(record, "district_id"))
    if not district_id:
        return None

    year = to_int(resolve(record, "year"))
    if year is None or year <= 0:
        year = now.year
    month = parse_month(_text(resolve(record, "month"))) or now.month

    fields: dict[str, Any] = {}
    for name in COUNT_FIELDS:
        raw_value = resolve(record, name)
        if raw_value is not _MISSING:
            fields[name] = to_int(raw_value) or 0
    for name in AMOUNT_FIELDS:
        raw_value = resolve(record, name)
        if raw_value is not _MISSING:
            fields[name] = to_float(raw_value) or 0.0

    for rate_field, (num_field, den_field) in RATE_SOURCES.items():
        if num_field in fields or den_field in fields:
            fields[rate_field] = compute_rate(fields.get(num_field), fields.get(den_field))

    return Metric(
        district_id=district_id,
        district_name=_text(resolve(record, "district_name")),
        state_name=_text(resolve(record, "state_name")),
        year=year,
        month=month,
        financial_year=_text(resolve(record, "financial_year")) or financial_year_label(year),
        data_source=DATA_SOURCE,
        last_updated=now,
        **fields,
    )


def normalize_metrics(
    raw: Iterable[Mapping[str, Any]],
    *,
    now: datetime | None = None,
) -> list[Metric]:
    """
    Normalize raw employment/works/wages records, preserving input order.

    Args:
        raw: Raw records from any of the metric feeds, concatenated.
        now: Processing time; stamps last_updated and supplies the default
             year/month. Defaults to the current UTC time.
    """
    stamp = now or utc_now()
    metrics: list[Metric] = []
    dropped = 0
    for record in raw:
        metric = normalize_metric(record, now=stamp)
        if metric is None:
            dropped += 1
            continue
        metrics.append(metric)
    if dropped:
        log.warning("metrics_dropped", dropped=dropped, kept=len(metrics))
    return metrics
