"""
Segmentation Aggregator

Aggregates store facts by their externally assigned segment and derives
contribution, participation and per-store weekly averages. Segments are
ranked by sales value; ties keep the order in which segments first appear.
"""

from dataclasses import asdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import polars as pl
import structlog

from valuation_engine.transformation.normalizer import (
    MetricNormalizer,
    SEGMENT_TOTALS,
    STORE_FACT,
)
from .models import (
    PerformanceLevel,
    SegmentMetrics,
    SegmentRanking,
    SegmentSummary,
    SegmentTotals,
    StoreFact,
    StoreRiskLevel,
)

logger = structlog.get_logger(__name__)

StoreFactInput = Union[StoreFact, Mapping[str, Any]]

CRITICAL_SEGMENTS = {"critical", "criticas", "críticas"}
HOT_SEGMENT = "hot"
SLOW_SEGMENT = "slow"


def _ratio(numerator: float, denominator: float) -> float:
    """Division that returns 0 for a zero denominator"""
    if not denominator:
        return 0.0
    return numerator / denominator


def performance_level(contribution_pct: float) -> PerformanceLevel:
    """Classify a segment by its contribution percentage"""
    if contribution_pct >= 30:
        return PerformanceLevel.HIGH
    if contribution_pct >= 15:
        return PerformanceLevel.MEDIUM
    return PerformanceLevel.LOW


def classify_store_risk(segment: Optional[str], days_inventory: float) -> StoreRiskLevel:
    """
    Risk level of a store from its segment and days of inventory.

    Critical segment stores and hot stores under 30 days of stock are
    critical; slow stores over 60 days are high; everything else is medium.
    """
    normalized = (segment or "").strip().lower()

    if normalized in CRITICAL_SEGMENTS:
        return StoreRiskLevel.CRITICAL
    if normalized == HOT_SEGMENT and days_inventory < 30:
        return StoreRiskLevel.CRITICAL
    if normalized == SLOW_SEGMENT and days_inventory > 60:
        return StoreRiskLevel.HIGH
    return StoreRiskLevel.MEDIUM


class SegmentationAggregator:
    """
    Computes per-segment metrics from store facts.

    Example:
        aggregator = SegmentationAggregator(weeks_in_period=4)
        segments = aggregator.aggregate(store_facts)
    """

    def __init__(
        self,
        weeks_in_period: float = 4.0,
        normalizer: Optional[MetricNormalizer] = None,
    ):
        self.weeks_in_period = weeks_in_period
        self.normalizer = normalizer or MetricNormalizer()

    def _store_frame(self, facts: Iterable[StoreFactInput]) -> pl.DataFrame:
        rows = [asdict(f) if isinstance(f, StoreFact) else f for f in facts]
        return self.normalizer.to_frame(rows, STORE_FACT)

    def group_store_facts(self, facts: Iterable[StoreFactInput]) -> List[SegmentTotals]:
        """
        Sum store facts per segment.

        Args:
            facts: StoreFact objects or raw store rows

        Returns:
            One SegmentTotals per segment, in order of first appearance
        """
        frame = self._store_frame(facts)

        grouped = (
            frame.with_columns(pl.col("segment").fill_null(""))
            .group_by("segment", maintain_order=True)
            .agg([
                pl.col("sales_value").sum().alias("sales_value"),
                pl.col("sales_units").sum().alias("sales_units"),
                pl.len().alias("num_stores"),
                pl.col("days_inventory").mean().alias("days_inventory"),
            ])
        )

        return [
            SegmentTotals(
                segment=row["segment"],
                sales_value=float(row["sales_value"] or 0.0),
                sales_units=float(row["sales_units"] or 0.0),
                num_stores=int(row["num_stores"]),
                days_inventory=float(row["days_inventory"] or 0.0),
            )
            for row in grouped.iter_rows(named=True)
        ]

    def totals_from_rows(self, rows: Iterable[Mapping[str, Any]]) -> List[SegmentTotals]:
        """Build SegmentTotals from pre-aggregated segment rows"""
        records = self.normalizer.normalize_rows(rows, SEGMENT_TOTALS)
        return [
            SegmentTotals(
                segment=str(r["segment"] or ""),
                sales_value=r["sales_value"],
                sales_units=r["sales_units"],
                num_stores=int(r["num_stores"]),
                days_inventory=r["days_inventory"],
            )
            for r in records
        ]

    def compute_metrics(
        self,
        totals: Sequence[SegmentTotals],
        weeks_in_period: Optional[float] = None,
    ) -> List[SegmentMetrics]:
        """
        Derive contribution, participation and weekly averages.

        Every ratio with a zero denominator is 0. Result is sorted by
        sales_value descending, ties in input order.
        """
        weeks = self.weeks_in_period if weeks_in_period is None else weeks_in_period
        total_sales = sum(t.sales_value for t in totals)
        total_stores = sum(t.num_stores for t in totals)

        metrics = []
        for t in totals:
            if t.num_stores > 0:
                contribution = _ratio(t.sales_value, total_sales) * 100
                participation = _ratio(t.num_stores, total_stores) * 100
            else:
                contribution = 0.0
                participation = 0.0

            metrics.append(SegmentMetrics(
                segment=t.segment,
                sales_value=t.sales_value,
                sales_units=t.sales_units,
                num_stores=t.num_stores,
                days_inventory=t.days_inventory,
                contribution_pct=contribution,
                participation_pct=participation,
                weekly_avg_per_store_value=_ratio(_ratio(t.sales_value, t.num_stores), weeks),
                weekly_avg_per_store_units=_ratio(_ratio(t.sales_units, t.num_stores), weeks),
            ))

        # sorted() is stable: equal sales keep their input order
        return sorted(metrics, key=lambda m: -m.sales_value)

    def aggregate(
        self,
        facts: Iterable[StoreFactInput],
        weeks_in_period: Optional[float] = None,
    ) -> List[SegmentMetrics]:
        """Group store facts and compute ranked segment metrics"""
        totals = self.group_store_facts(facts)
        metrics = self.compute_metrics(totals, weeks_in_period)

        logger.info(
            "Segments aggregated",
            segments=len(metrics),
            stores=sum(m.num_stores for m in metrics),
            sales_value=sum(m.sales_value for m in metrics),
        )
        return metrics

    @staticmethod
    def top_segments(metrics: Sequence[SegmentMetrics], n: int) -> List[SegmentMetrics]:
        """First n segments of the sales-ranked ordering"""
        return list(metrics[:max(n, 0)])

    @staticmethod
    def compare_segments(metrics: Sequence[SegmentMetrics]) -> List[SegmentRanking]:
        """Rank segments by contribution, 1 = best"""
        ordered = sorted(metrics, key=lambda m: -m.contribution_pct)
        return [
            SegmentRanking(rank=index + 1, segment=m.segment, metrics=m)
            for index, m in enumerate(ordered)
        ]

    @staticmethod
    def summarize(metrics: Sequence[SegmentMetrics]) -> SegmentSummary:
        """Totals, averages and best/worst performer by contribution"""
        count = len(metrics)
        total_sales = sum(m.sales_value for m in metrics)
        total_units = sum(m.sales_units for m in metrics)

        best = worst = None
        for m in metrics:
            if best is None or m.contribution_pct > best.contribution_pct:
                best = m
            if worst is None or m.contribution_pct < worst.contribution_pct:
                worst = m

        return SegmentSummary(
            total_segments=count,
            total_sales_value=total_sales,
            total_sales_units=total_units,
            total_stores=sum(m.num_stores for m in metrics),
            avg_sales_value=_ratio(total_sales, count),
            avg_sales_units=_ratio(total_units, count),
            avg_days_inventory=_ratio(sum(m.days_inventory for m in metrics), count),
            best_performer=best,
            worst_performer=worst,
        )

    @staticmethod
    def find_segment(metrics: Sequence[SegmentMetrics], name: str) -> Optional[SegmentMetrics]:
        for m in metrics:
            if m.segment == name:
                return m
        return None

    @staticmethod
    def filter_segments(metrics: Sequence[SegmentMetrics], names: Iterable[str]) -> List[SegmentMetrics]:
        wanted = set(names)
        return [m for m in metrics if m.segment in wanted]

    def group_stores_by_segment(self, facts: Iterable[StoreFactInput]) -> Dict[str, List[StoreFact]]:
        """Store facts keyed by segment, segments in order of first appearance"""
        grouped: Dict[str, List[StoreFact]] = {}
        for fact in facts:
            if not isinstance(fact, StoreFact):
                fact = StoreFact.from_record(self.normalizer.normalize_record(fact, STORE_FACT))
            grouped.setdefault(fact.segment, []).append(fact)
        return grouped
