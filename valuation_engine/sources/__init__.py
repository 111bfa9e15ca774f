"""
Data Source Module
"""
from .interfaces import ExhibitionSummarySource, FactSource, PricingFunction, ROISource
from .sql import (
    SqlExhibitionSummarySource,
    SqlFactSource,
    SqlPricingFunction,
    SqlROISource,
)

__all__ = [
    "ExhibitionSummarySource",
    "FactSource",
    "PricingFunction",
    "ROISource",
    "SqlExhibitionSummarySource",
    "SqlFactSource",
    "SqlPricingFunction",
    "SqlROISource",
]
