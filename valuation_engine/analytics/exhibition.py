"""
Exhibition ROI Calculator

Per (store, sku) exhibition ROI rows come from an external ROI function that
already filters to economically viable rows. Everything derived from them
(store grouping, top-N ranking, per-store filtering and summary) is computed
in-process from one item set, so that the "top stores" and "per-store
detail" views of a response always agree.

ROI is a store-level figure: every SKU row of a store carries the same
roi_pesos, and a store contributes it exactly once to the average.
"""

import inspect
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import structlog

from valuation_engine.exceptions import UpstreamDataError
from valuation_engine.transformation.normalizer import MetricNormalizer, ROI_ITEM, id_key
from .models import (
    ExhibitionParams,
    ExhibitionROIItem,
    ExhibitionROIReport,
    ROISummary,
    StoreROIGroup,
)

logger = structlog.get_logger(__name__)

ROICallable = Callable[
    [ExhibitionParams],
    Union[Iterable[Mapping[str, Any]], Awaitable[Iterable[Mapping[str, Any]]]],
]


def group_by_store(items: Iterable[ExhibitionROIItem]) -> List[StoreROIGroup]:
    """
    Group ROI items by store, ranked by ROI descending.

    Store ids are matched by id_key, so 10 and "10" are one store; the group
    keeps the first member's store_id and ROI. Stores with equal ROI keep the
    order in which they first appear in the item list.
    """
    members: Dict[Optional[str], List[ExhibitionROIItem]] = {}
    for item in items:
        members.setdefault(id_key(item.store_id), []).append(item)

    groups = []
    for skus in members.values():
        store_id = skus[0].store_id
        roi = skus[0].roi_pesos
        if any(s.roi_pesos != roi for s in skus):
            logger.warning(
                "Inconsistent store ROI across SKUs, keeping first",
                store_id=store_id,
                roi_pesos=roi,
                skus=len(skus),
            )

        groups.append(StoreROIGroup(
            store_id=store_id,
            roi_pesos=roi,
            total_units=sum(s.extraordinary_order_units for s in skus),
            total_order_value=sum(s.extraordinary_order_value for s in skus),
            sku_items=tuple(skus),
        ))

    return sorted(groups, key=lambda g: -g.roi_pesos)


def top_by_roi(items: Iterable[ExhibitionROIItem], n: int) -> List[StoreROIGroup]:
    """First n stores of the ROI ranking, re-derived from the full item set"""
    return group_by_store(items)[:max(n, 0)]


def filter_by_store(items: Iterable[ExhibitionROIItem], store_id: Any) -> List[ExhibitionROIItem]:
    """Flat item list of one store, ids matched by id_key"""
    key = id_key(store_id)
    return [item for item in items if id_key(item.store_id) == key]


def compute_summary(
    items: Sequence[ExhibitionROIItem],
    groups: Optional[Sequence[StoreROIGroup]] = None,
) -> ROISummary:
    """
    Totals over an item set.

    avg_roi is averaged across stores, not SKU rows: a store with five SKUs
    contributes its ROI once.
    """
    if groups is None:
        groups = group_by_store(items)

    total_stores = len(groups)
    avg_roi = sum(g.roi_pesos for g in groups) / total_stores if total_stores else 0.0

    return ROISummary(
        total_stores=total_stores,
        total_skus=len(items),
        total_units=sum(i.extraordinary_order_units for i in items),
        total_order_value=sum(i.extraordinary_order_value for i in items),
        avg_roi=avg_roi,
    )


class ExhibitionROICalculator:
    """
    Fetches ROI rows for a scenario and derives the store-level views.

    Example:
        calculator = ExhibitionROICalculator(roi_source)
        report = await calculator.compute(ExhibitionParams(cost_per_exhibition=500))
    """

    def __init__(
        self,
        roi_source: ROICallable,
        normalizer: Optional[MetricNormalizer] = None,
    ):
        self.roi_source = roi_source
        self.normalizer = normalizer or MetricNormalizer()

    def to_items(self, rows: Iterable[Mapping[str, Any]]) -> List[ExhibitionROIItem]:
        """Normalize raw ROI rows into items"""
        return [
            ExhibitionROIItem(
                store_id=r["store_id"],
                sku=str(r["sku"] or ""),
                roi_pesos=r["roi_pesos"],
                avg_daily_sales=r["avg_daily_sales"],
                final_inventory=r["final_inventory"],
                extraordinary_order_units=r["extraordinary_order_units"],
                extraordinary_order_value=r["extraordinary_order_value"],
            )
            for r in self.normalizer.normalize_rows(rows, ROI_ITEM)
        ]

    async def compute_all(self, params: ExhibitionParams) -> List[ExhibitionROIItem]:
        """
        One item per viable (store, sku) for the scenario.

        Raises:
            UpstreamDataError: If the ROI source fails
        """
        try:
            rows = self.roi_source(params)
            if inspect.isawaitable(rows):
                rows = await rows
        except UpstreamDataError:
            raise
        except Exception as e:
            logger.error("ROI source failed", error=str(e), params=params.model_dump())
            raise UpstreamDataError("roi_source", str(e)) from e

        return self.to_items(rows or [])

    async def compute(self, params: ExhibitionParams) -> ExhibitionROIReport:
        """Items, store grouping and summary from a single fetch"""
        items = await self.compute_all(params)
        groups = group_by_store(items)
        summary = compute_summary(items, groups)

        logger.info(
            "Exhibition ROI computed",
            stores=summary.total_stores,
            skus=summary.total_skus,
            avg_roi=summary.avg_roi,
        )

        return ExhibitionROIReport(
            items=tuple(items),
            grouped_by_store=tuple(groups),
            summary=summary,
            params=params,
        )

    async def top_stores(self, n: int, params: ExhibitionParams) -> List[StoreROIGroup]:
        return top_by_roi(await self.compute_all(params), n)

    async def for_store(self, store_id: Any, params: ExhibitionParams) -> List[ExhibitionROIItem]:
        return filter_by_store(await self.compute_all(params), store_id)
