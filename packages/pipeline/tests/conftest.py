"""
tests/conftest.py — Shared pytest fixtures for the sync test suite.

Provides:
  now / clock           — a frozen processing time and a Clock returning it
  repo                  — empty InMemoryRepository
  datagov_client        — DataGovClient pointed at a fake host with a test key
  mock_http             — respx router for faking upstream HTTP responses
  upstream_pattern      — kind → url regex for one upstream endpoint
  make_chain            — chainable MagicMock factory mimicking the PostgREST builder
  *_records             — one raw record per upstream feed
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock

import pytest
import respx

from mgnrega_pipeline.loaders.repository import InMemoryRepository
from mgnrega_pipeline.sources.datagov import DataGovClient
from mgnrega_shared.constants import ENDPOINTS

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
BASE_URL = "https://api.test/resource"


def endpoint_pattern(kind: str) -> str:
    return rf".*api\.test/resource{ENDPOINTS[kind]}.*"


def _make_chain(data: list[dict[str, Any]] | None = None, count: int = 0) -> MagicMock:
    """Create a chainable mock that returns given data on execute()."""
    chain = MagicMock()
    chain.execute.return_value = MagicMock(data=data or [], count=count)
    for method in (
        "select", "eq", "neq", "gte", "ilike",
        "order", "limit", "range", "upsert", "delete",
    ):
        getattr(chain, method).return_value = chain
    return chain


# ---------------------------------------------------------------------------
# Clock / store / client fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def make_chain():
    return _make_chain


@pytest.fixture
def upstream_pattern():
    return endpoint_pattern


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def datagov_client() -> DataGovClient:
    return DataGovClient(base_url=BASE_URL, api_key="test-key", timeout=5.0)


@pytest.fixture
def mock_http():
    """
    Activate the respx mock router for all httpx requests.

    Usage in tests:
        def test_something(mock_http, upstream_pattern):
            mock_http.get(url__regex=upstream_pattern("works")).mock(
                return_value=httpx.Response(200, json={"records": []})
            )
    """
    with respx.mock(assert_all_called=False) as router:
        yield router


# ---------------------------------------------------------------------------
# Sample upstream payloads
# ---------------------------------------------------------------------------

@pytest.fixture
def district_records() -> list[dict[str, Any]]:
    return [{"district_id": "D1", "district_name": "Alpha", "state_name": "S1"}]


@pytest.fixture
def employment_records() -> list[dict[str, Any]]:
    return [
        {
            "district_id": "D1",
            "district_name": "Alpha",
            "state_name": "S1",
            "year": 2024,
            "month": 3,
            "total_households": 100,
            "households_provided_work": 80,
        }
    ]


@pytest.fixture
def works_records() -> list[dict[str, Any]]:
    return [
        {
            "districtId": "D1",
            "districtName": "Alpha",
            "stateName": "S1",
            "year": "2024",
            "month": "Mar",
            "totalWorkdays": "1,000",
            "workdaysGenerated": "750",
        }
    ]


@pytest.fixture
def wages_records() -> list[dict[str, Any]]:
    return [
        {
            "district_id": "D1",
            "state_name": "S1",
            "year": 2024,
            "month": "03",
            "total_wages": "5000",
            "wages_paid": "4500",
        }
    ]
