"""
Opportunity Valuation Engine

Facade over the analytics components. Pure aggregation operations take
already-fetched rows; the ``load_*`` / ``compute_*`` coroutines pull rows
from the injected collaborators first. The engine holds no per-request
state and can be reused across requests.

Example:
    engine = OpportunityEngine.from_database()
    analysis = await engine.analyze_exhibition(engine.exhibition_params(cost_per_exhibition=650))
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Sequence, Union

import structlog

from valuation_engine.analytics.exhibition import (
    ExhibitionROICalculator,
    top_by_roi,
)
from valuation_engine.analytics.models import (
    CategoryStatsReport,
    ExhibitionAnalysis,
    ExhibitionParams,
    ExhibitionROIItem,
    ExhibitionROIReport,
    ExhibitionSummary,
    ExpirationCategoryReport,
    PromotionBatch,
    PromotionItem,
    RiskCategory,
    RiskValuation,
    SegmentMetrics,
    SegmentRanking,
    SegmentSummary,
    StoreROIGroup,
    ViabilityVerdict,
)
from valuation_engine.analytics.promotion import PromotionCalculator
from valuation_engine.analytics.risk import BUCKET_ORDER, RiskAggregator
from valuation_engine.analytics.segmentation import SegmentationAggregator, StoreFactInput
from valuation_engine.analytics.viability import analyze_viability, summary_from_row
from valuation_engine.config import get_settings
from valuation_engine.config.settings import Settings
from valuation_engine.database.connection import get_db
from valuation_engine.exceptions import MissingInputError, UpstreamDataError, ValuationError
from valuation_engine.sources.interfaces import (
    ExhibitionSummarySource,
    FactSource,
    PricingFunction,
    ROISource,
)
from valuation_engine.sources.sql import (
    SessionScope,
    SqlExhibitionSummarySource,
    SqlFactSource,
    SqlPricingFunction,
    SqlROISource,
)
from valuation_engine.transformation.normalizer import MetricNormalizer

logger = structlog.get_logger(__name__)


async def _gather_or_cancel(*coros: Awaitable[Any]) -> List[Any]:
    """
    Await coroutines concurrently; on the first failure cancel and drain the
    rest, then re-raise that failure.
    """
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        # Retrieve sibling outcomes so none is reported as never retrieved
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class OpportunityEngine:
    """
    Opportunity valuation and promotion ROI engine.

    Collaborators are optional; an operation that needs a missing one
    raises ValuationError.
    """

    def __init__(
        self,
        fact_source: Optional[FactSource] = None,
        pricing_function: Optional[PricingFunction] = None,
        roi_source: Optional[ROISource] = None,
        summary_source: Optional[ExhibitionSummarySource] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.fact_source = fact_source
        self.pricing_function = pricing_function
        self.roi_source = roi_source
        self.summary_source = summary_source

        normalizer = MetricNormalizer()
        self.normalizer = normalizer
        self.segmentation = SegmentationAggregator(
            weeks_in_period=self.settings.engine.weeks_in_period,
            normalizer=normalizer,
        )
        self.risk = RiskAggregator(normalizer=normalizer)

    @classmethod
    def from_database(
        cls,
        session_scope: SessionScope = get_db,
        settings: Optional[Settings] = None,
    ) -> "OpportunityEngine":
        """Engine wired to the SQL collaborators"""
        settings = settings or get_settings()
        return cls(
            fact_source=SqlFactSource(session_scope, settings),
            pricing_function=SqlPricingFunction(session_scope, settings),
            roi_source=SqlROISource(session_scope, settings),
            summary_source=SqlExhibitionSummarySource(session_scope, settings),
            settings=settings,
        )

    # =========================================================================
    # COLLABORATORS
    # =========================================================================

    @staticmethod
    def _require(collaborator: Any, name: str) -> Any:
        if collaborator is None:
            raise ValuationError(f"No {name} configured")
        return collaborator

    async def _call_source(self, name: str, func: Callable, *args: Any) -> Any:
        """Call a collaborator; any failure becomes one UpstreamDataError"""
        try:
            result = func(*args)
            if inspect.isawaitable(result):
                result = await result
        except UpstreamDataError:
            raise
        except Exception as e:
            logger.error("Data source failed", source=name, error=str(e), error_type=type(e).__name__)
            raise UpstreamDataError(name, str(e)) from e
        return result

    @property
    def promotions(self) -> PromotionCalculator:
        return PromotionCalculator(
            self._require(self.pricing_function, "pricing function"),
            max_concurrency=self.settings.engine.pricing_concurrency,
            normalizer=self.normalizer,
        )

    @property
    def exhibitions(self) -> ExhibitionROICalculator:
        return ExhibitionROICalculator(
            self._require(self.roi_source, "ROI source"),
            normalizer=self.normalizer,
        )

    # =========================================================================
    # SEGMENTATION
    # =========================================================================

    def aggregate_segments(
        self,
        store_facts: Iterable[StoreFactInput],
        weeks_in_period: Optional[float] = None,
    ) -> List[SegmentMetrics]:
        """Segments ranked by sales value, with contribution and participation"""
        return self.segmentation.aggregate(store_facts, weeks_in_period)

    def segment_metrics(
        self,
        segment_rows: Iterable[Mapping[str, Any]],
        weeks_in_period: Optional[float] = None,
    ) -> List[SegmentMetrics]:
        """Metrics from pre-aggregated {segment, sales_value, sales_units, num_stores} rows"""
        totals = self.segmentation.totals_from_rows(segment_rows)
        return self.segmentation.compute_metrics(totals, weeks_in_period)

    def top_segments(
        self,
        store_facts: Iterable[StoreFactInput],
        n: Optional[int] = None,
    ) -> List[SegmentMetrics]:
        limit = self.settings.engine.top_segments_limit if n is None else n
        return self.segmentation.top_segments(self.aggregate_segments(store_facts), limit)

    def compare_segments(self, store_facts: Iterable[StoreFactInput]) -> List[SegmentRanking]:
        return self.segmentation.compare_segments(self.aggregate_segments(store_facts))

    def summarize_segments(self, store_facts: Iterable[StoreFactInput]) -> SegmentSummary:
        return self.segmentation.summarize(self.aggregate_segments(store_facts))

    async def load_store_facts(self) -> List[Mapping[str, Any]]:
        source = self._require(self.fact_source, "fact source")
        return await self._call_source("store_facts", source.fetch_store_facts)

    async def load_segments(self, top_n: Optional[int] = None) -> List[SegmentMetrics]:
        """Fetch store facts and aggregate them; top_n truncates the ranking"""
        metrics = self.aggregate_segments(await self.load_store_facts())
        if top_n is not None:
            return self.segmentation.top_segments(metrics, top_n)
        return metrics

    # =========================================================================
    # PROMOTIONS
    # =========================================================================

    async def compute_promotion(
        self,
        discount_rate: float,
        items: Iterable[Union[PromotionItem, Mapping[str, Any]]],
    ) -> PromotionBatch:
        """Per-category promotion projection for one discount rate"""
        return await self.promotions.compute_promotion(discount_rate, items)

    async def compare_promotions(
        self,
        discount_rates: Sequence[float],
        items: Iterable[Union[PromotionItem, Mapping[str, Any]]],
    ) -> List[PromotionBatch]:
        """One independent PromotionBatch per discount rate"""
        return await self.promotions.compare(discount_rates, items)

    # =========================================================================
    # EXHIBITIONS
    # =========================================================================

    def exhibition_params(self, **overrides: Any) -> ExhibitionParams:
        """Scenario from configured defaults; None overrides are ignored"""
        return ExhibitionParams.from_settings(self.settings.engine, **overrides)

    async def compute_exhibition_roi(self, params: Optional[ExhibitionParams] = None) -> ExhibitionROIReport:
        """Items, store grouping and summary for a scenario"""
        return await self.exhibitions.compute(params or self.exhibition_params())

    async def top_stores_by_roi(
        self,
        n: Optional[int] = None,
        params: Optional[ExhibitionParams] = None,
    ) -> List[StoreROIGroup]:
        limit = self.settings.engine.top_stores_limit if n is None else n
        return await self.exhibitions.top_stores(limit, params or self.exhibition_params())

    async def roi_for_store(
        self,
        store_id: Any,
        params: Optional[ExhibitionParams] = None,
    ) -> List[ExhibitionROIItem]:
        return await self.exhibitions.for_store(store_id, params or self.exhibition_params())

    def analyze_viability(
        self,
        summary: Union[ExhibitionSummary, Mapping[str, Any]],
        params: Optional[ExhibitionParams] = None,
    ) -> ViabilityVerdict:
        """Verdict for a summary object or a raw summary row"""
        if not isinstance(summary, ExhibitionSummary):
            summary = summary_from_row(summary, self.normalizer)
        return analyze_viability(summary, params)

    async def load_exhibition_summary(self, params: ExhibitionParams) -> ExhibitionSummary:
        source = self._require(self.summary_source, "exhibition summary source")
        row = await self._call_source("exhibition_summary", source, params)
        return summary_from_row(row, self.normalizer)

    async def analyze_exhibition(self, params: Optional[ExhibitionParams] = None) -> ExhibitionAnalysis:
        """
        Summary and ROI detail fetched concurrently, then verdict and top stores.

        Raises:
            UpstreamDataError: If either fetch fails
        """
        params = params or self.exhibition_params()
        calculator = self.exhibitions

        summary, items = await _gather_or_cancel(
            self.load_exhibition_summary(params),
            calculator.compute_all(params),
        )

        viability = analyze_viability(summary, params)
        top_stores = top_by_roi(items, self.settings.engine.top_stores_limit)

        return ExhibitionAnalysis(
            summary=summary,
            items=tuple(items),
            viability=viability,
            top_stores=tuple(top_stores),
            params=params,
        )

    # =========================================================================
    # RISK VALORIZATION
    # =========================================================================

    def aggregate_risk(
        self,
        buckets: Mapping[Union[RiskCategory, str], Optional[Iterable[Mapping[str, Any]]]],
    ) -> RiskValuation:
        """
        Three independent risk buckets.

        total_affected_stores is not deduplicated across buckets and is an
        upper bound on distinct affected stores.
        """
        return self.risk.aggregate(buckets)

    async def load_risk_valuation(self) -> RiskValuation:
        """Fetch the three detail sets concurrently and aggregate them"""
        source = self._require(self.fact_source, "fact source")

        detail_sets = await _gather_or_cancel(*[
            self._call_source(f"risk_{category.value}", source.fetch_risk_details, category)
            for category in BUCKET_ORDER
        ])
        return self.aggregate_risk(dict(zip(BUCKET_ORDER, detail_sets)))

    async def top_expiration_categories(self, limit: Optional[int] = None) -> ExpirationCategoryReport:
        """Product categories ranked by expiration impact"""
        source = self._require(self.fact_source, "fact source")
        rows = await self._call_source("expiration_categories", source.fetch_expiration_details)
        limit = self.settings.engine.top_expiration_categories_limit if limit is None else limit
        return self.risk.top_expiration_categories(rows, limit)

    async def category_stats(self, categories: Sequence[str]) -> CategoryStatsReport:
        """
        Distinct products and stores per category.

        Raises:
            MissingInputError: If no categories are given
        """
        if not categories:
            raise MissingInputError("Categories cannot be empty")

        source = self._require(self.fact_source, "fact source")
        rows = await self._call_source("category_products", source.fetch_category_products, list(categories))
        return self.risk.category_stats(rows, categories)
