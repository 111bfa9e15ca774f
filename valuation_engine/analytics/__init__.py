"""
Valuation Analytics Module
"""
from .exhibition import ExhibitionROICalculator, compute_summary, filter_by_store, group_by_store, top_by_roi
from .promotion import PromotionCalculator
from .risk import RiskAggregator
from .segmentation import SegmentationAggregator, classify_store_risk, performance_level
from .viability import analyze_viability

__all__ = [
    "ExhibitionROICalculator",
    "compute_summary",
    "filter_by_store",
    "group_by_store",
    "top_by_roi",
    "PromotionCalculator",
    "RiskAggregator",
    "SegmentationAggregator",
    "classify_store_risk",
    "performance_level",
    "analyze_viability",
]
