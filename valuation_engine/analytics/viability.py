"""
Viability Analyzer

Turns an exhibition summary into a single viable / non-viable verdict.
"""

from typing import Any, Mapping, Optional

import structlog

from valuation_engine.transformation.normalizer import EXHIBITION_SUMMARY, MetricNormalizer
from .models import ExhibitionParams, ExhibitionSummary, ViabilityVerdict

logger = structlog.get_logger(__name__)

# ROI is a multiplier; 1.0 is break-even. Fixed business rule.
BREAK_EVEN_ROI = 1.0


def summary_from_row(
    row: Optional[Mapping[str, Any]],
    normalizer: Optional[MetricNormalizer] = None,
) -> ExhibitionSummary:
    """Normalize a raw summary row"""
    record = (normalizer or MetricNormalizer()).normalize_record(row, EXHIBITION_SUMMARY)
    return ExhibitionSummary(
        viable_stores=int(record["viable_stores"]),
        net_monthly_return=record["net_monthly_return"],
        total_cost=record["total_cost"],
        total_order_units=record["total_order_units"],
        total_order_value=record["total_order_value"],
        avg_roi=record["avg_roi"],
    )


def profitability_pct(net_return: float, total_cost: float) -> float:
    """(net_return - total_cost) / total_cost as a percentage, 0 without cost"""
    if total_cost == 0:
        return 0.0
    return (net_return - total_cost) / total_cost * 100


def analyze_viability(
    summary: ExhibitionSummary,
    params: Optional[ExhibitionParams] = None,
) -> ViabilityVerdict:
    """
    Derive the verdict for a scenario summary.

    Args:
        summary: Aggregate figures of the scenario
        params: Scenario the summary was computed for (logged only)

    Returns:
        ViabilityVerdict with is_viable == (avg_roi > 1)
    """
    verdict = ViabilityVerdict(
        is_viable=summary.avg_roi > BREAK_EVEN_ROI,
        viable_store_count=summary.viable_stores,
        avg_roi=summary.avg_roi,
        net_monthly_return=summary.net_monthly_return,
        total_cost=summary.total_cost,
        profitability_pct=profitability_pct(summary.net_monthly_return, summary.total_cost),
    )

    logger.info(
        "Viability analyzed",
        is_viable=verdict.is_viable,
        avg_roi=verdict.avg_roi,
        profitability_pct=verdict.profitability_pct,
        params=params.model_dump() if params else None,
    )
    return verdict
