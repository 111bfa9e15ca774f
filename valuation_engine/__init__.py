"""
Retail Opportunity Valuation & Promotion ROI Engine

Turns per-store / per-SKU facts into promotion projections, exhibition ROI
rankings, segment contribution metrics and risk valuation.
"""
from .engine import OpportunityEngine
from .exceptions import MissingInputError, UpstreamDataError, ValuationError

__version__ = "1.0.0"

__all__ = [
    "OpportunityEngine",
    "MissingInputError",
    "UpstreamDataError",
    "ValuationError",
]
