"""
tests/test_loaders/test_supabase_repository.py — SupabaseRepository against a
mocked PostgREST query builder, plus the connection provider lifecycle.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock, call

import pytest
from postgrest.exceptions import APIError

from mgnrega_pipeline.loaders.supabase_repository import SupabaseRepository
from mgnrega_shared.db import SupabaseConnectionProvider
from mgnrega_shared.exceptions import (
    ConfigurationError,
    ConfirmationRequiredError,
    RecordReconciliationError,
)
from mgnrega_shared.models import MetricKey


def _repository(chain, page_size: int = 1000) -> tuple[SupabaseRepository, MagicMock]:
    client = MagicMock()
    client.table.return_value = chain
    provider = SupabaseConnectionProvider(
        "https://db.test", "service-key", client_factory=lambda url, key: client
    )
    provider.open()
    return SupabaseRepository(provider, page_size=page_size), client


class TestWrites:
    @pytest.mark.asyncio
    async def test_upsert_metric_on_composite_key(self, make_chain):
        chain = make_chain()
        repo, client = _repository(chain)

        await repo.upsert_metric(MetricKey("D1", 2024, 3), {"total_households": 100})

        client.table.assert_called_with("metrics")
        row = chain.upsert.call_args.args[0]
        assert row == {"total_households": 100, "district_id": "D1", "year": 2024, "month": 3}
        assert chain.upsert.call_args.kwargs["on_conflict"] == "district_id,year,month"

    @pytest.mark.asyncio
    async def test_upsert_district_on_id(self, make_chain):
        chain = make_chain()
        repo, client = _repository(chain)

        await repo.upsert_district("D1", {"district_name": "Alpha"})

        client.table.assert_called_with("districts")
        assert chain.upsert.call_args.kwargs["on_conflict"] == "district_id"

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self, make_chain):
        chain = make_chain()
        chain.execute.side_effect = APIError({"message": "violates check constraint", "code": "23514"})
        repo, _ = _repository(chain)

        with pytest.raises(RecordReconciliationError) as exc_info:
            await repo.upsert_metric(MetricKey("D1", 2024, 3), {})
        assert exc_info.value.entity == "metric"

    @pytest.mark.asyncio
    async def test_delete_all_filters_every_row(self, make_chain):
        chain = make_chain(count=7)
        repo, client = _repository(chain)

        assert await repo.delete_all("districts", confirm="CLEAR_CACHE") == 7
        client.table.assert_called_with("districts")
        chain.delete.assert_called_once_with(count="exact")
        chain.neq.assert_called_once_with("district_id", "")

    @pytest.mark.asyncio
    async def test_delete_all_without_token(self, make_chain):
        chain = make_chain()
        repo, client = _repository(chain)

        with pytest.raises(ConfirmationRequiredError):
            await repo.delete_all("metrics", confirm=None)
        client.table.assert_not_called()


class TestReads:
    @pytest.mark.asyncio
    async def test_count_metrics_updated_since(self, make_chain):
        chain = make_chain(count=3)
        repo, _ = _repository(chain)
        since = datetime(2024, 6, 14, 12, 0, tzinfo=timezone.utc)

        assert await repo.count_metrics(updated_since=since) == 3
        chain.select.assert_called_with("*", count="exact")
        chain.gte.assert_called_once_with("last_updated", since.isoformat())
        chain.limit.assert_called_with(0)

    @pytest.mark.asyncio
    async def test_count_districts_none_count(self, make_chain):
        chain = make_chain()
        chain.execute.return_value = MagicMock(data=[], count=None)
        repo, _ = _repository(chain)

        assert await repo.count_districts() == 0

    @pytest.mark.asyncio
    async def test_aggregate_pages_through_rows(self, make_chain):
        chain = make_chain()
        chain.execute.side_effect = [
            MagicMock(data=[
                {"state_name": "Kerala", "last_updated": "2024-06-15T10:00:00+00:00"},
                {"state_name": "Kerala", "last_updated": "2024-06-15T11:00:00+00:00"},
            ]),
            MagicMock(data=[
                {"state_name": "Bihar", "last_updated": "2024-06-14T06:00:00+00:00"},
            ]),
        ]
        repo, _ = _repository(chain, page_size=2)

        by_state = await repo.aggregate_metrics_by_state()

        assert chain.range.call_args_list[0].args == (0, 1)
        assert chain.order.call_args_list[:3] == [call("district_id"), call("year"), call("month")]
        assert chain.range.call_args_list[1].args == (2, 3)
        assert [(s.state_name, s.count) for s in by_state] == [("Kerala", 2), ("Bihar", 1)]

    @pytest.mark.asyncio
    async def test_find_district(self, make_chain):
        chain = make_chain(data=[{"district_id": "D1", "district_name": "Alpha"}])
        repo, _ = _repository(chain)

        district = await repo.find_district_by_id("D1")
        assert district.district_name == "Alpha"
        chain.eq.assert_called_with("district_id", "D1")

    @pytest.mark.asyncio
    async def test_list_metrics_filters(self, make_chain):
        chain = make_chain(data=[{"district_id": "D1", "year": 2024, "month": 3, "employment_rate": 50.0}])
        repo, _ = _repository(chain)

        metrics = await repo.list_metrics(state_name="Kerala", year=2024, limit=10)

        assert metrics[0].employment_rate == 50.0
        chain.ilike.assert_called_once_with("state_name", "%Kerala%")
        chain.eq.assert_called_once_with("year", 2024)
        chain.limit.assert_called_with(10)


class TestConnectionProvider:
    def test_open_without_key(self):
        provider = SupabaseConnectionProvider("https://db.test", "", client_factory=MagicMock())
        with pytest.raises(ConfigurationError):
            provider.open()
        assert not provider.is_open

    def test_open_is_idempotent(self):
        factory = MagicMock()
        provider = SupabaseConnectionProvider("https://db.test", "key", client_factory=factory)

        first = provider.open()
        second = provider.open()

        assert first is second
        factory.assert_called_once_with("https://db.test", "key")

    def test_client_before_open(self):
        provider = SupabaseConnectionProvider("https://db.test", "key", client_factory=MagicMock())
        with pytest.raises(RuntimeError):
            provider.client

    def test_health_check(self, make_chain):
        client = MagicMock()
        client.table.return_value = make_chain()
        provider = SupabaseConnectionProvider("https://db.test", "key", client_factory=lambda u, k: client)

        assert provider.health_check() is False
        provider.open()
        assert provider.health_check() is True

        client.table.return_value.execute.side_effect = APIError({"message": "down"})
        assert provider.health_check() is False

    def test_close(self):
        provider = SupabaseConnectionProvider("https://db.test", "key", client_factory=MagicMock())
        provider.open()
        provider.close()
        assert not provider.is_open
