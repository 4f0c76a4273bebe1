"""
models/district.py — Pydantic model for the districts table.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class District(BaseModel):
    """
    Matches the districts table row.

    Primary key is district_id. Rows are only ever written by the
    Reconciler's upsert and removed by the administrative clear.
    """

    district_id: str = Field(min_length=1)
    district_name: str = Field(min_length=1)
    state_name: str | None = None
    state_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    population: int | None = None
    area: float | None = None
    last_updated: datetime | None = None

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "District":
        return cls(**row)

    def to_upsert_dict(self) -> dict[str, Any]:
        """JSON-safe dict of the populated fields (nulls omitted)."""
        return self.model_dump(mode="json", exclude_none=True)
