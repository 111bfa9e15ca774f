"""
Unit Tests - Exhibition ROI
"""
import pytest

from valuation_engine.analytics import (
    ExhibitionROICalculator,
    compute_summary,
    filter_by_store,
    group_by_store,
    top_by_roi,
)
from valuation_engine.analytics.models import ExhibitionParams, ExhibitionROIItem
from valuation_engine.exceptions import UpstreamDataError


def make_item(store_id, sku, roi, units=1.0, value=10.0) -> ExhibitionROIItem:
    return ExhibitionROIItem(
        store_id=store_id,
        sku=sku,
        roi_pesos=roi,
        avg_daily_sales=1.0,
        final_inventory=0.0,
        extraordinary_order_units=units,
        extraordinary_order_value=value,
    )


@pytest.fixture
def items(roi_rows):
    return ExhibitionROICalculator(lambda params: roi_rows).to_items(roi_rows)


class TestGroupByStore:
    """Tests for store grouping and ranking"""

    def test_scenario(self, items):
        """Test store 10 (two SKUs at 500) and store 20 (one SKU at 800)"""
        groups = group_by_store(items)

        assert [g.store_id for g in groups] == [20, 10]
        assert groups[1].roi_pesos == 500.0
        assert groups[1].total_units == 40.0
        assert groups[1].total_order_value == 1150.0
        assert len(groups[1].sku_items) == 2

    def test_group_roi_matches_members(self, items):
        """Test every member carries the store ROI"""
        for group in group_by_store(items):
            assert all(i.roi_pesos == group.roi_pesos for i in group.sku_items)

    def test_inconsistent_roi_keeps_first(self):
        """Test the first member's ROI wins"""
        groups = group_by_store([make_item("A", "1", 300), make_item("A", "2", 900)])

        assert groups[0].roi_pesos == 300

    def test_ties_keep_first_appearance(self):
        """Test equal ROI stores keep input order"""
        groups = group_by_store([
            make_item("B", "1", 100),
            make_item("A", "1", 100),
            make_item("C", "1", 200),
        ])

        assert [g.store_id for g in groups] == ["C", "B", "A"]

    def test_mixed_id_types_are_one_store(self):
        """Test int and str ids of one store group together"""
        groups = group_by_store([make_item(10, "1", 500), make_item("10", "2", 500)])

        assert len(groups) == 1
        assert groups[0].store_id == 10
        assert len(groups[0].sku_items) == 2

    def test_empty(self):
        assert group_by_store([]) == []


class TestTopAndFilter:
    """Tests for top-N and per-store views"""

    def test_top_one(self, items):
        """Test the best store is store 20"""
        top = top_by_roi(items, 1)

        assert len(top) == 1
        assert top[0].store_id == 20
        assert top[0].roi_pesos == 800.0

    def test_top_n_is_prefix(self):
        """Test top-N is a prefix of the full ranking for every N"""
        items = [make_item(s % 7, str(s), roi=(s * 37) % 11) for s in range(20)]
        ranking = group_by_store(items)

        for n in range(0, len(ranking) + 6):
            assert top_by_roi(items, n) == ranking[:n]

    def test_negative_n(self, items):
        assert top_by_roi(items, -3) == []

    def test_filter_by_store(self, items):
        """Test the flat item list of one store"""
        selected = filter_by_store(items, 10)

        assert [i.sku for i in selected] == ["SKU-1", "SKU-2"]
        assert filter_by_store(items, 999) == []

    def test_filter_by_store_id_as_string(self, items):
        """Test a string id selects a store delivered with int ids"""
        assert [i.sku for i in filter_by_store(items, "10")] == ["SKU-1", "SKU-2"]


class TestSummary:
    """Tests for ROI summary"""

    def test_avg_roi_is_per_store(self, items):
        """Test the scenario average is (500 + 800) / 2"""
        summary = compute_summary(items)

        assert summary.avg_roi == pytest.approx(650.0)
        assert summary.total_stores == 2
        assert summary.total_skus == 3
        assert summary.total_units == 80.0
        assert summary.total_order_value == 2350.0

    def test_sku_count_does_not_weight_average(self):
        """Test a store with five SKUs counts once"""
        one_sku = [make_item("A", "1", 500), make_item("B", "1", 800)]
        five_skus = [make_item("A", str(i), 500) for i in range(5)] + [make_item("B", "1", 800)]

        assert compute_summary(one_sku).avg_roi == compute_summary(five_skus).avg_roi

    def test_empty(self):
        """Test zero stores"""
        summary = compute_summary([])

        assert summary.total_stores == 0
        assert summary.avg_roi == 0.0


class TestExhibitionROICalculator:
    """Tests for ExhibitionROICalculator"""

    @pytest.mark.asyncio
    async def test_compute(self, roi_rows, default_params):
        """Test report consistency from a single fetch"""
        calls = []

        async def roi_source(params):
            calls.append(params)
            return roi_rows

        report = await ExhibitionROICalculator(roi_source).compute(default_params)

        assert len(calls) == 1
        assert calls[0] == default_params
        assert len(report.items) == 3
        assert report.items[1].roi_pesos == 500.0
        assert [g.store_id for g in report.grouped_by_store] == [20, 10]
        assert report.summary.avg_roi == pytest.approx(650.0)
        assert report.params == default_params

    @pytest.mark.asyncio
    async def test_top_stores_and_for_store(self, roi_rows, default_params):
        """Test views with a sync ROI source"""
        calculator = ExhibitionROICalculator(lambda params: roi_rows)

        top = await calculator.top_stores(1, default_params)
        detail = await calculator.for_store(20, default_params)

        assert [g.store_id for g in top] == [20]
        assert [i.sku for i in detail] == ["SKU-1"]

    @pytest.mark.asyncio
    async def test_empty_source(self, default_params):
        """Test no viable rows"""
        report = await ExhibitionROICalculator(lambda params: None).compute(default_params)

        assert report.items == ()
        assert report.summary.total_stores == 0

    @pytest.mark.asyncio
    async def test_source_failure(self, default_params):
        """Test a failing source surfaces as UpstreamDataError"""
        async def roi_source(params):
            raise ConnectionError("connection reset")

        calculator = ExhibitionROICalculator(roi_source)

        with pytest.raises(UpstreamDataError) as exc_info:
            await calculator.compute(default_params)
        assert exc_info.value.source == "roi_source"
        assert "connection reset" in str(exc_info.value)


class TestExhibitionParams:
    """Tests for scenario parameters"""

    def test_defaults(self):
        params = ExhibitionParams()

        assert params.cost_per_exhibition == 500.0
        assert params.sales_lift_fraction == 0.5
        assert params.days_in_month == 30

    @pytest.mark.parametrize("overrides", [
        {"cost_per_exhibition": 0},
        {"sales_lift_fraction": -0.1},
        {"days_in_month": 32},
        {"days_in_month": 0},
    ])
    def test_invalid(self, overrides):
        """Test out-of-range parameters are rejected"""
        with pytest.raises(ValueError):
            ExhibitionParams(**overrides)

    def test_from_settings(self, test_settings):
        """Test None overrides keep the configured default"""
        params = ExhibitionParams.from_settings(test_settings.engine, cost_per_exhibition=650, days_in_month=None)

        assert params.cost_per_exhibition == 650
        assert params.days_in_month == 30
