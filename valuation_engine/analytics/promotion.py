"""
Elasticity Promotion Calculator

Projects the outcome of a discount per product category. The pricing model
itself is an external pure function (a stored procedure or pricing
service); this module fans the per-category calls out concurrently, derives
risk reduction and post-promotion inventory, and assembles the results.

Reference model used by the pricing function:
    incremental_units = inventory_initial * elasticity * discount_rate

A failing category degrades to an all-zero result; it never aborts the
other categories in the batch.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import structlog

from valuation_engine.exceptions import MissingInputError
from valuation_engine.transformation.normalizer import MetricNormalizer, PRICING_RESULT
from .models import (
    PromotionBatch,
    PromotionConfig,
    PromotionItem,
    PromotionRequest,
    PromotionResult,
)

logger = structlog.get_logger(__name__)

PricingCallable = Callable[[float, float, str], Union[Mapping[str, Any], Awaitable[Mapping[str, Any]]]]


def risk_reduction(inventory_initial_total: float, incremental_units: float) -> float:
    """Fraction of the initial inventory sold by the promotion (0 with no inventory)"""
    if inventory_initial_total == 0:
        return 0.0
    return incremental_units / inventory_initial_total


class PromotionCalculator:
    """
    Concurrent per-category promotion projection.

    Example:
        calculator = PromotionCalculator(pricing_function)
        batch = await calculator.compute_promotion(0.2, [{"category": "CHIPS", "elasticity": 1.5}])
    """

    def __init__(
        self,
        pricing_function: PricingCallable,
        max_concurrency: int = 8,
        normalizer: Optional[MetricNormalizer] = None,
    ):
        self.pricing_function = pricing_function
        self.max_concurrency = max(1, max_concurrency)
        self.normalizer = normalizer or MetricNormalizer()

    async def _price(self, discount_rate: float, item: PromotionItem) -> Dict[str, float]:
        raw = self.pricing_function(discount_rate, item.elasticity, item.category)
        if inspect.isawaitable(raw):
            raw = await raw
        return self.normalizer.normalize_record(raw, PRICING_RESULT)

    async def _compute_category(
        self,
        discount_rate: float,
        item: PromotionItem,
        semaphore: asyncio.Semaphore,
    ) -> PromotionResult:
        async with semaphore:
            try:
                metrics = await self._price(discount_rate, item)
            except Exception as e:
                logger.error(
                    "Pricing failed, substituting zero result",
                    category=item.category,
                    discount_rate=discount_rate,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return PromotionResult.zero(item.category, discount_rate, item.elasticity)

        inventory_total = metrics["inventory_initial_total"]
        incremental = metrics["incremental_units"]

        return PromotionResult(
            category=item.category,
            discount_rate=discount_rate,
            elasticity=item.elasticity,
            inventory_initial_total=inventory_total,
            incremental_units=incremental,
            original_sales=metrics["original_sales"],
            promotion_cost=metrics["promotion_cost"],
            captured_value=metrics["captured_value"],
            risk_reduction_fraction=risk_reduction(inventory_total, incremental),
            inventory_post=inventory_total - incremental,
        )

    async def _compute(self, request: PromotionRequest, semaphore: asyncio.Semaphore) -> PromotionBatch:
        if not request.items:
            raise MissingInputError("Promotion items cannot be empty")

        results = await asyncio.gather(*[
            self._compute_category(request.discount_rate, item, semaphore)
            for item in request.items
        ])

        # Keyed in request order; a repeated category keeps its last result
        by_category: Dict[str, PromotionResult] = {}
        for item, result in zip(request.items, results):
            by_category[item.category] = result

        batch = PromotionBatch(
            results=by_category,
            config=PromotionConfig(
                max_discount_pct=request.discount_rate * 100,
                items=tuple(request.items),
            ),
        )

        logger.info(
            "Promotion computed",
            discount_rate=request.discount_rate,
            categories=len(by_category),
            degraded=batch.degraded_categories,
        )
        return batch

    async def compute(self, request: PromotionRequest) -> PromotionBatch:
        """
        Compute every category of the request concurrently.

        Raises:
            MissingInputError: If the request has no items
        """
        return await self._compute(request, asyncio.Semaphore(self.max_concurrency))

    async def compute_promotion(
        self,
        discount_rate: float,
        items: Iterable[Union[PromotionItem, Mapping[str, Any]]],
    ) -> PromotionBatch:
        """Validate a discount rate and items, then compute"""
        request = PromotionRequest(discount_rate=discount_rate, items=list(items))
        return await self.compute(request)

    async def compare(
        self,
        discount_rates: Sequence[float],
        items: Iterable[Union[PromotionItem, Mapping[str, Any]]],
    ) -> List[PromotionBatch]:
        """
        Compute the same item set independently for each discount rate.

        Returns:
            One PromotionBatch per rate, in the order the rates were given

        Raises:
            MissingInputError: If no rates or no items are given
        """
        if not discount_rates:
            raise MissingInputError("Discount rates cannot be empty")

        item_list = list(items)
        requests = [PromotionRequest(discount_rate=rate, items=item_list) for rate in discount_rates]
        if not item_list:
            raise MissingInputError("Promotion items cannot be empty")

        # One limit across every rate, not one per batch
        semaphore = asyncio.Semaphore(self.max_concurrency)
        return list(await asyncio.gather(*[self._compute(r, semaphore) for r in requests]))
