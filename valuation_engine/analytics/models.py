"""
Valuation Domain Models

Request parameters are pydantic models validated on construction; computed
results are frozen dataclasses that are never mutated after they are built.
All monetary values are plain floats; formatting belongs to the caller.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from valuation_engine.config.settings import EngineSettings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RiskCategory(str, Enum):
    """Valorized operational risk categories"""
    STOCKOUT = "stockout"
    EXPIRATION = "expiration"
    NO_SALE = "no_sale"


class PerformanceLevel(str, Enum):
    """Segment performance by contribution"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class StoreRiskLevel(str, Enum):
    """Store risk level derived from segment and days of inventory"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


# =============================================================================
# FACTS
# =============================================================================

@dataclass(frozen=True)
class StoreFact:
    """One store for one reporting period"""
    store_id: Any
    segment: str
    sales_value: float = 0.0
    sales_units: float = 0.0
    inventory_initial: float = 0.0
    inventory_final: float = 0.0
    days_inventory: float = 0.0
    weekly_sales_value: float = 0.0
    weekly_sales_units: float = 0.0
    store_name: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "StoreFact":
        return cls(
            store_id=record.get("store_id"),
            store_name=record.get("store_name"),
            segment=str(record.get("segment") or ""),
            sales_value=record.get("sales_value", 0.0),
            sales_units=record.get("sales_units", 0.0),
            inventory_initial=record.get("inventory_initial", 0.0),
            inventory_final=record.get("inventory_final", 0.0),
            days_inventory=record.get("days_inventory", 0.0),
            weekly_sales_value=record.get("weekly_sales_value", 0.0),
            weekly_sales_units=record.get("weekly_sales_units", 0.0),
        )


@dataclass(frozen=True)
class SkuFact:
    """One SKU at one store"""
    store_id: Any
    sku: str
    daily_avg_sales_units: float = 0.0
    final_inventory: float = 0.0
    unit_price: float = 0.0
    product_name: Optional[str] = None
    category: Optional[str] = None


# =============================================================================
# SEGMENTATION
# =============================================================================

@dataclass(frozen=True)
class SegmentTotals:
    """Pre-aggregated segment sums"""
    segment: str
    sales_value: float
    sales_units: float
    num_stores: int
    days_inventory: float = 0.0


@dataclass(frozen=True)
class SegmentMetrics:
    """Segment sums plus contribution and per-store weekly averages"""
    segment: str
    sales_value: float
    sales_units: float
    num_stores: int
    days_inventory: float
    contribution_pct: float
    participation_pct: float
    weekly_avg_per_store_value: float
    weekly_avg_per_store_units: float


@dataclass(frozen=True)
class SegmentRanking:
    """Segment ranked by contribution (1 = best)"""
    rank: int
    segment: str
    metrics: SegmentMetrics


@dataclass(frozen=True)
class SegmentSummary:
    """Summary statistics across all segments"""
    total_segments: int
    total_sales_value: float
    total_sales_units: float
    total_stores: int
    avg_sales_value: float
    avg_sales_units: float
    avg_days_inventory: float
    best_performer: Optional[SegmentMetrics]
    worst_performer: Optional[SegmentMetrics]


# =============================================================================
# PROMOTIONS
# =============================================================================

class PromotionItem(BaseModel):
    """Category with its own elasticity multiplier"""
    model_config = ConfigDict(frozen=True)

    category: str = Field(min_length=1, description="Product category")
    elasticity: float = Field(ge=0, description="Units multiplier per discount fraction")


class PromotionRequest(BaseModel):
    """Discount to evaluate over a set of categories"""
    model_config = ConfigDict(frozen=True)

    discount_rate: float = Field(ge=0, le=1, description="Fraction, 0.41 = 41%")
    items: List[PromotionItem] = Field(default_factory=list)


@dataclass(frozen=True)
class PromotionResult:
    """Projected outcome of a discount for one category"""
    category: str
    discount_rate: float
    elasticity: float
    inventory_initial_total: float
    incremental_units: float
    original_sales: float
    promotion_cost: float
    captured_value: float
    risk_reduction_fraction: float
    inventory_post: float
    degraded: bool = False

    @classmethod
    def zero(cls, category: str, discount_rate: float, elasticity: float) -> "PromotionResult":
        """All-zero result substituted when the pricing call fails"""
        return cls(
            category=category,
            discount_rate=discount_rate,
            elasticity=elasticity,
            inventory_initial_total=0.0,
            incremental_units=0.0,
            original_sales=0.0,
            promotion_cost=0.0,
            captured_value=0.0,
            risk_reduction_fraction=0.0,
            inventory_post=0.0,
            degraded=True,
        )


@dataclass(frozen=True)
class PromotionConfig:
    """Echo of the request, for auditability"""
    max_discount_pct: float
    items: Tuple[PromotionItem, ...]


@dataclass(frozen=True)
class PromotionBatch:
    """Per-category results of one discount rate"""
    results: Dict[str, PromotionResult]
    config: PromotionConfig
    computed_at: datetime = field(default_factory=utc_now)

    @property
    def degraded_categories(self) -> List[str]:
        return [c for c, r in self.results.items() if r.degraded]


# =============================================================================
# EXHIBITIONS
# =============================================================================

class ExhibitionParams(BaseModel):
    """Exhibition investment scenario"""
    model_config = ConfigDict(frozen=True)

    cost_per_exhibition: float = Field(default=500.0, gt=0, description="Cost of one exhibition")
    sales_lift_fraction: float = Field(default=0.5, ge=0, description="Expected lift, 0.5 = 50%")
    days_in_month: int = Field(default=30, ge=1, le=31, description="Days in the month")

    @classmethod
    def from_settings(cls, settings: EngineSettings, **overrides: Any) -> "ExhibitionParams":
        """Build params from configured defaults, overriding any non-None value"""
        values = {
            "cost_per_exhibition": settings.cost_per_exhibition,
            "sales_lift_fraction": settings.sales_lift_fraction,
            "days_in_month": settings.days_in_month,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass(frozen=True)
class ExhibitionROIItem:
    """ROI row for one (store, sku)"""
    store_id: Any
    sku: str
    roi_pesos: float
    avg_daily_sales: float
    final_inventory: float
    extraordinary_order_units: float
    extraordinary_order_value: float


@dataclass(frozen=True)
class StoreROIGroup:
    """ROI items of one store; roi_pesos is the single store-level ROI"""
    store_id: Any
    roi_pesos: float
    total_units: float
    total_order_value: float
    sku_items: Tuple[ExhibitionROIItem, ...]


@dataclass(frozen=True)
class ROISummary:
    """Totals over an ROI item set; avg_roi is averaged across stores"""
    total_stores: int
    total_skus: int
    total_units: float
    total_order_value: float
    avg_roi: float


@dataclass(frozen=True)
class ExhibitionROIReport:
    """ROI items with their store grouping and summary"""
    items: Tuple[ExhibitionROIItem, ...]
    grouped_by_store: Tuple[StoreROIGroup, ...]
    summary: ROISummary
    params: ExhibitionParams
    computed_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class ExhibitionSummary:
    """Aggregate exhibition figures from the summary source"""
    viable_stores: int
    net_monthly_return: float
    total_cost: float
    total_order_units: float
    total_order_value: float
    avg_roi: float


@dataclass(frozen=True)
class ViabilityVerdict:
    """Viable when avg_roi exceeds break-even (1.0)"""
    is_viable: bool
    viable_store_count: int
    avg_roi: float
    net_monthly_return: float
    total_cost: float
    profitability_pct: float


@dataclass(frozen=True)
class ExhibitionAnalysis:
    """Summary, detail, verdict and top stores of one scenario"""
    summary: ExhibitionSummary
    items: Tuple[ExhibitionROIItem, ...]
    viability: ViabilityVerdict
    top_stores: Tuple[StoreROIGroup, ...]
    params: ExhibitionParams
    computed_at: datetime = field(default_factory=utc_now)


# =============================================================================
# RISK VALORIZATION
# =============================================================================

@dataclass(frozen=True)
class RiskBucket:
    """Monetary impact and distinct stores of one risk category"""
    category: RiskCategory
    affected_store_count: int
    total_impact: float


@dataclass(frozen=True)
class RiskValuation:
    """
    Three independent risk buckets.

    total_affected_stores sums bucket counts without cross-bucket
    deduplication: a store in two buckets counts twice, so the figure is an
    upper bound on distinct affected stores.
    """
    buckets: Tuple[RiskBucket, ...]
    total_affected_stores: int
    total_impact: float
    computed_at: datetime = field(default_factory=utc_now)

    def get(self, category: RiskCategory) -> RiskBucket:
        for bucket in self.buckets:
            if bucket.category == category:
                return bucket
        return RiskBucket(category=category, affected_store_count=0, total_impact=0.0)

    def share_pct(self, category: RiskCategory) -> float:
        """Bucket impact as a percentage of the total impact"""
        if self.total_impact == 0:
            return 0.0
        return self.get(category).total_impact / self.total_impact * 100

    @property
    def most_critical(self) -> Optional[RiskBucket]:
        """Bucket with the highest impact (first in bucket order on ties)"""
        best: Optional[RiskBucket] = None
        for bucket in self.buckets:
            if best is None or bucket.total_impact > best.total_impact:
                best = bucket
        return best


@dataclass(frozen=True)
class CategoryImpact:
    """Expiration impact of one product category"""
    category: str
    impact: float
    share_pct: float


@dataclass(frozen=True)
class ExpirationCategoryReport:
    categories: Tuple[CategoryImpact, ...]
    total_impact: float
    computed_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class CategoryStats:
    category: str
    unique_products: int
    unique_stores: int


@dataclass(frozen=True)
class CategoryStatsReport:
    """Per-category counts; totals are sums of the per-category counts"""
    stats: Tuple[CategoryStats, ...]
    total_products: int
    total_stores: int
    computed_at: datetime = field(default_factory=utc_now)
