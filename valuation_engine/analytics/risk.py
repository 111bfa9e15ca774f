"""
Valorization Risk Aggregator

Sums monetary impact and distinct affected stores for the stockout,
expiration and no-sale risk detail sets. The three buckets are aggregated
independently: a store present in two buckets counts fully in both, so the
cross-bucket store total is an upper bound, not a union.
"""

from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

import polars as pl
import structlog

from valuation_engine.exceptions import MissingInputError
from valuation_engine.transformation.normalizer import (
    CATEGORY_PRODUCT,
    MetricNormalizer,
    RISK_DETAIL,
)
from .models import (
    CategoryImpact,
    CategoryStats,
    CategoryStatsReport,
    ExpirationCategoryReport,
    RiskBucket,
    RiskCategory,
    RiskValuation,
)

logger = structlog.get_logger(__name__)

BUCKET_ORDER = (RiskCategory.STOCKOUT, RiskCategory.EXPIRATION, RiskCategory.NO_SALE)

RiskRows = Iterable[Mapping[str, Any]]


class RiskAggregator:
    """
    Aggregates risk detail rows into valorization buckets.

    Example:
        aggregator = RiskAggregator()
        valuation = aggregator.aggregate({
            RiskCategory.STOCKOUT: stockout_rows,
            RiskCategory.EXPIRATION: expiration_rows,
            RiskCategory.NO_SALE: no_sale_rows,
        })
    """

    def __init__(self, normalizer: Optional[MetricNormalizer] = None):
        self.normalizer = normalizer or MetricNormalizer()

    def bucket(self, category: Union[RiskCategory, str], rows: Optional[RiskRows]) -> RiskBucket:
        """Distinct stores and summed impact of one detail set"""
        frame = self.normalizer.to_frame(rows, RISK_DETAIL)

        return RiskBucket(
            category=RiskCategory(category),
            affected_store_count=frame["store_id"].n_unique() if frame.height else 0,
            total_impact=float(frame["impact"].sum() or 0.0),
        )

    def aggregate(self, buckets: Mapping[Union[RiskCategory, str], Optional[RiskRows]]) -> RiskValuation:
        """
        Build the three risk buckets.

        Args:
            buckets: Detail rows ({store_id, impact}) keyed by risk category;
                a missing category is an empty bucket

        Returns:
            RiskValuation with buckets in stockout, expiration, no-sale order
        """
        rows_by_category = {RiskCategory(k): v for k, v in buckets.items()}
        results = tuple(self.bucket(c, rows_by_category.get(c)) for c in BUCKET_ORDER)

        valuation = RiskValuation(
            buckets=results,
            total_affected_stores=sum(b.affected_store_count for b in results),
            total_impact=sum(b.total_impact for b in results),
        )

        logger.info(
            "Risk valorization aggregated",
            total_impact=valuation.total_impact,
            total_affected_stores=valuation.total_affected_stores,
        )
        return valuation

    def top_expiration_categories(
        self,
        rows: Optional[RiskRows],
        limit: int = 2,
    ) -> ExpirationCategoryReport:
        """
        Product categories ranked by expiration impact.

        Rows without a category are skipped. The total and shares refer to
        the returned categories only.
        """
        frame = self.normalizer.to_frame(rows, RISK_DETAIL)

        ranked = (
            frame.filter(pl.col("category").is_not_null() & (pl.col("category") != ""))
            .group_by("category", maintain_order=True)
            .agg(pl.col("impact").sum().alias("impact"))
            .sort("impact", descending=True, maintain_order=True)
            .head(max(limit, 0))
        )

        total = float(ranked["impact"].sum() or 0.0)
        categories = tuple(
            CategoryImpact(
                category=row["category"],
                impact=row["impact"],
                share_pct=row["impact"] / total * 100 if total > 0 else 0.0,
            )
            for row in ranked.iter_rows(named=True)
        )

        return ExpirationCategoryReport(categories=categories, total_impact=total)

    def category_stats(
        self,
        rows: Optional[Iterable[Mapping[str, Any]]],
        categories: Sequence[str],
    ) -> CategoryStatsReport:
        """
        Distinct products and stores per requested category.

        Raises:
            MissingInputError: If no categories are given
        """
        if not categories:
            raise MissingInputError("Categories cannot be empty")

        frame = self.normalizer.to_frame(rows, CATEGORY_PRODUCT)

        stats: List[CategoryStats] = []
        for category in dict.fromkeys(categories):
            subset = frame.filter(pl.col("category") == category)
            stats.append(CategoryStats(
                category=category,
                unique_products=subset["sku"].drop_nulls().n_unique(),
                unique_stores=subset["store_id"].drop_nulls().n_unique(),
            ))

        return CategoryStatsReport(
            stats=tuple(stats),
            total_products=sum(s.unique_products for s in stats),
            total_stores=sum(s.unique_stores for s in stats),
        )
