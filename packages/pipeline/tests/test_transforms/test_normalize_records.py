"""
tests/test_transforms/test_normalize_records.py — Unit tests for transforms/normalize.py.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from mgnrega_pipeline.transforms.normalize import (
    compute_rate,
    normalize_district,
    normalize_districts,
    normalize_metric,
    normalize_metrics,
    to_float,
    to_int,
)


class TestNumberParsing:
    def test_thousands_separator(self):
        assert to_float("1,234.5") == 1234.5
        assert to_int("12,000") == 12000

    def test_garbage_is_none(self):
        assert to_float("n/a") is None
        assert to_int("") is None
        assert to_float(None) is None

    def test_int_truncates(self):
        assert to_int("12.9") == 12


class TestComputeRate:
    def test_basic_percentage(self):
        assert compute_rate(80, 100) == 80.0

    @pytest.mark.parametrize("denominator", [0, 0.0, None, -5])
    def test_non_positive_denominator_gives_zero(self, denominator):
        assert compute_rate(10, denominator) == 0.0

    def test_clamped_to_hundred(self):
        assert compute_rate(150, 100) == 100.0

    def test_rounded_to_two_places(self):
        assert compute_rate(1, 3) == 33.33

    @pytest.mark.parametrize(
        ("numerator", "denominator", "expected"),
        [(1, 32, 3.13), (3, 32, 9.38), (5, 32, 15.63)],
    )
    def test_halves_round_up(self, numerator, denominator, expected):
        assert compute_rate(numerator, denominator) == expected


class TestNormalizeDistrict:
    def test_canonical_names(self):
        district = normalize_district(
            {"district_id": "D1", "district_name": "Alpha", "state_name": "S1", "latitude": "10.5"}
        )
        assert district is not None
        assert district.district_id == "D1"
        assert district.district_name == "Alpha"
        assert district.state_name == "S1"
        assert district.latitude == 10.5

    def test_camel_case_aliases(self):
        district = normalize_district({"districtId": "D2", "districtName": "Beta", "stateName": "S2"})
        assert district is not None
        assert (district.district_id, district.district_name, district.state_name) == ("D2", "Beta", "S2")

    def test_district_code_alias(self):
        district = normalize_district({"district_code": "D3", "district_name": "Gamma"})
        assert district is not None
        assert district.district_id == "D3"

    def test_blank_alias_falls_through(self):
        district = normalize_district({"district_id": "  ", "districtId": "D4", "district_name": "Delta"})
        assert district is not None
        assert district.district_id == "D4"

    def test_missing_name_dropped(self):
        assert normalize_district({"district_id": "D1"}) is None

    def test_batch_drops_invalid(self):
        districts = normalize_districts(
            [
                {"district_id": "D1", "district_name": "Alpha"},
                {"district_name": "No id"},
            ]
        )
        assert [d.district_id for d in districts] == ["D1"]


class TestNormalizeMetric:
    def test_employment_rate(self, now, employment_records):
        metric = normalize_metric(employment_records[0], now=now)
        assert metric is not None
        assert metric.key == ("D1", 2024, 3)
        assert metric.employment_rate == 80.0
        assert metric.last_updated == now

    def test_absent_fields_stay_unset(self, now, employment_records):
        metric = normalize_metric(employment_records[0], now=now)
        assert metric.total_wages is None
        assert metric.work_completion_rate is None
        assert "total_wages" not in metric.to_upsert_dict()

    def test_camel_case_strings_and_month_name(self, now, works_records):
        metric = normalize_metric(works_records[0], now=now)
        assert metric.district_id == "D1"
        assert metric.month == 3
        assert metric.total_workdays == 1000
        assert metric.workdays_generated == 750
        assert metric.work_completion_rate == 75.0

    def test_wage_payment_rate(self, now, wages_records):
        metric = normalize_metric(wages_records[0], now=now)
        assert metric.wage_payment_rate == 90.0

    def test_zero_denominators_give_zero_rates(self, now):
        metric = normalize_metric(
            {
                "district_id": "D1",
                "year": 2024,
                "month": 3,
                "total_households": 0,
                "households_provided_work": 5,
                "total_workdays": 0,
                "total_wages": 0,
            },
            now=now,
        )
        assert metric.employment_rate == 0
        assert metric.work_completion_rate == 0
        assert metric.wage_payment_rate == 0

    def test_unparseable_present_field_becomes_zero(self, now):
        metric = normalize_metric(
            {"district_id": "D1", "year": 2024, "month": 3, "total_households": "n/a"},
            now=now,
        )
        assert metric.total_households == 0

    def test_year_and_month_default_to_now(self, now):
        metric = normalize_metric({"district_id": "D1", "month": "thirteen"}, now=now)
        assert metric.year == now.year
        assert metric.month == now.month

    def test_financial_year_label(self, now):
        metric = normalize_metric({"district_id": "D1", "year": 2024, "month": 5}, now=now)
        assert metric.financial_year == "2024-25"

    def test_financial_year_alias_preferred(self, now):
        metric = normalize_metric(
            {"district_id": "D1", "year": 2024, "month": 5, "fin_year": "2023-2024"}, now=now
        )
        assert metric.financial_year == "2023-2024"

    def test_missing_district_id_dropped(self, now):
        assert normalize_metric({"year": 2024, "month": 3}, now=now) is None

    def test_pure_same_input_same_output(self, now, employment_records):
        first = normalize_metrics(employment_records, now=now)
        second = normalize_metrics(employment_records, now=now)
        assert first == second

    def test_batch_preserves_order(self, now, employment_records, works_records, wages_records):
        metrics = normalize_metrics([*employment_records, *works_records, *wages_records], now=now)
        assert len(metrics) == 3
        assert metrics[0].employment_rate == 80.0
        assert metrics[2].wage_payment_rate == 90.0

    def test_default_clock_is_utc(self, employment_records):
        metric = normalize_metrics(employment_records)[0]
        assert metric.last_updated.tzinfo is not None
        assert metric.last_updated <= datetime.now(timezone.utc)
