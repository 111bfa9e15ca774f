"""
Unit Tests - Promotion Calculator
"""
import pytest
from pydantic import ValidationError

from valuation_engine.analytics import PromotionCalculator
from valuation_engine.analytics.models import PromotionItem, PromotionRequest
from valuation_engine.analytics.promotion import risk_reduction
from valuation_engine.exceptions import MissingInputError


ITEMS = [
    {"category": "CHIPS", "elasticity": 1.5},
    {"category": "NACHOS", "elasticity": 2.0},
]


class TestRiskReduction:
    """Tests for the risk reduction fraction"""

    def test_fraction(self):
        assert risk_reduction(1000, 300) == pytest.approx(0.30)

    def test_zero_inventory(self):
        """Test no inventory means no reduction"""
        assert risk_reduction(0, 50) == 0.0


class TestPromotionCalculator:
    """Tests for PromotionCalculator"""

    @pytest.mark.asyncio
    async def test_scenario(self):
        """Test 1000 units with 300 incremental"""
        def pricing(discount_rate, elasticity, category):
            return {
                "inventory_initial_total": 1000,
                "incremental_units": "300",
                "original_sales": 6000,
                "promotion_cost": 1200,
                "captured_value": 4800,
            }

        calculator = PromotionCalculator(pricing)
        batch = await calculator.compute_promotion(0.2, [{"category": "CHIPS", "elasticity": 1.5}])

        result = batch.results["CHIPS"]
        assert result.risk_reduction_fraction == pytest.approx(0.30)
        assert result.inventory_post == pytest.approx(700.0)
        assert result.promotion_cost == 1200.0
        assert result.degraded is False

    @pytest.mark.asyncio
    async def test_batch_independence(self, fake_pricing):
        """Test a category's result does not depend on the rest of the batch"""
        calculator = PromotionCalculator(fake_pricing)

        together = await calculator.compute_promotion(0.3, ITEMS)
        chips_alone = await calculator.compute_promotion(0.3, ITEMS[:1])
        nachos_alone = await calculator.compute_promotion(0.3, ITEMS[1:])

        assert together.results["CHIPS"] == chips_alone.results["CHIPS"]
        assert together.results["NACHOS"] == nachos_alone.results["NACHOS"]

    @pytest.mark.asyncio
    async def test_partial_failure(self, make_pricing):
        """Test a failing category degrades to zero without aborting the batch"""
        pricing = make_pricing({"CHIPS": 1000.0, "NACHOS": 400.0}, failing=["NACHOS"])
        calculator = PromotionCalculator(pricing)

        batch = await calculator.compute_promotion(0.2, ITEMS)

        assert batch.results["CHIPS"].incremental_units == pytest.approx(300.0)
        nachos = batch.results["NACHOS"]
        assert nachos.degraded is True
        assert nachos.incremental_units == 0.0
        assert nachos.risk_reduction_fraction == 0.0
        assert nachos.inventory_post == 0.0
        assert batch.degraded_categories == ["NACHOS"]

    @pytest.mark.asyncio
    async def test_zero_inventory_category(self, fake_pricing):
        """Test risk reduction is zero without inventory"""
        calculator = PromotionCalculator(fake_pricing)
        batch = await calculator.compute_promotion(0.5, [{"category": "SAUCES", "elasticity": 3}])

        assert batch.results["SAUCES"].risk_reduction_fraction == 0.0
        assert batch.results["SAUCES"].degraded is False

    @pytest.mark.asyncio
    async def test_config_echo(self, fake_pricing):
        """Test the request is echoed back"""
        calculator = PromotionCalculator(fake_pricing)
        batch = await calculator.compute_promotion(0.41, ITEMS)

        assert batch.config.max_discount_pct == pytest.approx(41.0)
        assert [i.category for i in batch.config.items] == ["CHIPS", "NACHOS"]
        assert list(batch.results) == ["CHIPS", "NACHOS"]

    @pytest.mark.asyncio
    async def test_repeated_category_keeps_last(self, fake_pricing):
        """Test a repeated category keeps the last item's result"""
        calculator = PromotionCalculator(fake_pricing)
        batch = await calculator.compute_promotion(0.1, [
            {"category": "CHIPS", "elasticity": 1.0},
            {"category": "CHIPS", "elasticity": 2.0},
        ])

        assert len(batch.results) == 1
        assert batch.results["CHIPS"].elasticity == 2.0

    @pytest.mark.asyncio
    async def test_calls_run_concurrently(self, make_pricing):
        """Test category calls overlap and respect the concurrency limit"""
        pricing = make_pricing({c: 10.0 for c in "ABCDEF"}, delay=0.01)
        calculator = PromotionCalculator(pricing, max_concurrency=3)

        await calculator.compute_promotion(0.1, [{"category": c, "elasticity": 1} for c in "ABCDEF"])

        assert len(pricing.calls) == 6
        assert 1 < pricing.max_in_flight <= 3

    @pytest.mark.asyncio
    async def test_empty_items(self, fake_pricing):
        """Test no items is rejected"""
        calculator = PromotionCalculator(fake_pricing)

        with pytest.raises(MissingInputError):
            await calculator.compute_promotion(0.2, [])
        assert fake_pricing.calls == []

    @pytest.mark.asyncio
    async def test_invalid_discount(self, fake_pricing):
        """Test discount outside [0, 1]"""
        calculator = PromotionCalculator(fake_pricing)

        with pytest.raises(ValidationError):
            await calculator.compute_promotion(1.5, ITEMS)

    def test_invalid_item(self):
        """Test negative elasticity and empty category"""
        with pytest.raises(ValidationError):
            PromotionItem(category="CHIPS", elasticity=-1)
        with pytest.raises(ValidationError):
            PromotionRequest(discount_rate=0.1, items=[{"category": "", "elasticity": 1}])


class TestComparePromotions:
    """Tests for comparing discount rates"""

    @pytest.mark.asyncio
    async def test_one_batch_per_rate(self, fake_pricing):
        """Test batches come back in rate order"""
        calculator = PromotionCalculator(fake_pricing)
        batches = await calculator.compare([0.1, 0.3, 0.2], ITEMS)

        assert [b.config.max_discount_pct for b in batches] == pytest.approx([10.0, 30.0, 20.0])
        assert batches[1].results["CHIPS"].incremental_units == pytest.approx(1000 * 1.5 * 0.3)

    @pytest.mark.asyncio
    async def test_empty_rates(self, fake_pricing):
        with pytest.raises(MissingInputError):
            await PromotionCalculator(fake_pricing).compare([], ITEMS)

    @pytest.mark.asyncio
    async def test_empty_items(self, fake_pricing):
        with pytest.raises(MissingInputError):
            await PromotionCalculator(fake_pricing).compare([0.1], [])

    @pytest.mark.asyncio
    async def test_concurrency_limit_spans_all_rates(self, make_pricing):
        """Test the concurrency limit bounds pricing calls across every rate"""
        pricing = make_pricing({c: 10.0 for c in "ABCD"}, delay=0.02)
        calculator = PromotionCalculator(pricing, max_concurrency=2)

        batches = await calculator.compare(
            [0.1, 0.2, 0.3],
            [{"category": c, "elasticity": 1} for c in "ABCD"],
        )

        assert len(batches) == 3
        assert len(pricing.calls) == 12
        assert pricing.max_in_flight == 2
