"""
time_utils.py — Clock, month parsing, and financial-year helpers.

Upstream records spell months as numbers ("3", "03") or English names
("Mar", "March", "Sept."). Financial years run April–March and are labelled
"2024-25".

Usage:
    from mgnrega_shared.time_utils import utc_now, parse_month, financial_year_label

    parse_month("Apr")              # 4
    parse_month("13")               # None
    financial_year_label(2024)      # "2024-25"
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]

_MONTH_NAMES: dict[str, int] = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}


def utc_now() -> datetime:
    """Timezone-aware current time in UTC. The default Clock."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(raw: object) -> datetime | None:
    """Parse an ISO-8601 string (or pass through a datetime) as aware UTC."""
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return ensure_utc(datetime.fromisoformat(raw.strip().replace("Z", "+00:00")))
    except ValueError:
        return None


def parse_month(raw: object) -> int | None:
    """
    Parse a month number or English month name into 1..12.

    Returns None for anything unparseable or out of range.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = int(raw)
        return value if 1 <= value <= 12 else None
    s = str(raw).strip().lower().rstrip(".")
    if not s:
        return None
    if s in _MONTH_NAMES:
        return _MONTH_NAMES[s]
    try:
        value = int(float(s))
    except ValueError:
        return None
    return value if 1 <= value <= 12 else None


def financial_year_label(year: int) -> str:
    """Fiscal-year label for the year starting in April of `year`."""
    return f"{year}-{(year + 1) % 100:02d}"


def hours_since(then: datetime, now: datetime) -> float:
    """Elapsed hours between two datetimes (naive values treated as UTC)."""
    return (ensure_utc(now) - ensure_utc(then)).total_seconds() / 3600.0
