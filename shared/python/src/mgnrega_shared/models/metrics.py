"""
models/metrics.py — Pydantic model for the metrics table.

A Metric row is identified by (district_id, year, month). Count and amount
fields are optional on the model: an unset field means "not reported by
this feed" and is left untouched by the field-wise upsert. Rows created in
the store receive METRIC_DEFAULTS for anything never reported.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, NamedTuple

from pydantic import BaseModel, Field

from mgnrega_shared.constants import DATA_SOURCE, SCORE_WEIGHTS

COUNT_FIELDS: tuple[str, ...] = (
    "total_households",
    "households_demanded_work",
    "households_provided_work",
    "total_persons",
    "persons_demanded_work",
    "persons_provided_work",
    "total_workdays",
    "workdays_generated",
)

AMOUNT_FIELDS: tuple[str, ...] = (
    "total_wages",
    "wages_paid",
    "material_cost",
    "administrative_cost",
)

RATE_FIELDS: tuple[str, ...] = (
    "employment_rate",
    "work_completion_rate",
    "wage_payment_rate",
)

METRIC_DEFAULTS: dict[str, Any] = {
    **{name: 0 for name in COUNT_FIELDS},
    **{name: 0.0 for name in AMOUNT_FIELDS},
    **{name: 0.0 for name in RATE_FIELDS},
    "data_source": DATA_SOURCE,
}


class MetricKey(NamedTuple):
    district_id: str
    year: int
    month: int


class Metric(BaseModel):
    """Matches the metrics table row. Unique on (district_id, year, month)."""

    district_id: str = Field(min_length=1)
    district_name: str | None = None
    state_name: str | None = None
    year: int
    month: int = Field(ge=1, le=12)
    financial_year: str | None = None

    total_households: int | None = None
    households_demanded_work: int | None = None
    households_provided_work: int | None = None
    total_persons: int | None = None
    persons_demanded_work: int | None = None
    persons_provided_work: int | None = None
    total_workdays: int | None = None
    workdays_generated: int | None = None
    total_wages: float | None = None
    wages_paid: float | None = None
    material_cost: float | None = None
    administrative_cost: float | None = None

    employment_rate: float | None = None
    work_completion_rate: float | None = None
    wage_payment_rate: float | None = None

    data_source: str = DATA_SOURCE
    last_updated: datetime | None = None

    @property
    def key(self) -> MetricKey:
        return MetricKey(self.district_id, self.year, self.month)

    @property
    def performance_score(self) -> int:
        """
        Weighted 0.4/0.3/0.3 blend of the three rates, half-up to an int.

        Derived on every read; never written to the store.
        """
        w_emp, w_work, w_wage = SCORE_WEIGHTS
        score = (
            (self.employment_rate or 0.0) * w_emp
            + (self.work_completion_rate or 0.0) * w_work
            + (self.wage_payment_rate or 0.0) * w_wage
        )
        return math.floor(score + 0.5)

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "Metric":
        return cls(**row)

    def to_upsert_dict(self) -> dict[str, Any]:
        """JSON-safe dict of the populated fields (nulls omitted)."""
        return self.model_dump(mode="json", exclude_none=True)

    def to_response_dict(self) -> dict[str, Any]:
        """Full record plus the computed performance_score, for readers."""
        data = self.model_dump(mode="json")
        data["performance_score"] = self.performance_score
        return data
