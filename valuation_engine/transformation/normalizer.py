"""
Metric Record Normalizer

Single entry point for coercing raw data-source rows into typed numeric
records. Upstream sources return heterogeneous values (numeric strings,
nulls, decimals); every expected numeric field becomes a float and anything
missing or unparseable becomes 0.0. This function never raises on malformed
numeric input.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import math

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RecordSchema:
    """Expected fields of one raw row shape"""
    name: str
    numeric_fields: Tuple[str, ...]
    id_fields: Tuple[str, ...] = ()


STORE_FACT = RecordSchema(
    name="store_fact",
    numeric_fields=(
        "sales_value",
        "sales_units",
        "inventory_initial",
        "inventory_final",
        "days_inventory",
        "weekly_sales_value",
        "weekly_sales_units",
    ),
    id_fields=("store_id", "store_name", "segment"),
)

SKU_FACT = RecordSchema(
    name="sku_fact",
    numeric_fields=("daily_avg_sales_units", "final_inventory", "unit_price"),
    id_fields=("store_id", "sku", "product_name", "category"),
)

SEGMENT_TOTALS = RecordSchema(
    name="segment_totals",
    numeric_fields=("sales_value", "sales_units", "num_stores", "days_inventory"),
    id_fields=("segment",),
)

PRICING_RESULT = RecordSchema(
    name="pricing_result",
    numeric_fields=(
        "inventory_initial_total",
        "incremental_units",
        "original_sales",
        "promotion_cost",
        "captured_value",
    ),
)

ROI_ITEM = RecordSchema(
    name="roi_item",
    numeric_fields=(
        "roi_pesos",
        "avg_daily_sales",
        "final_inventory",
        "extraordinary_order_units",
        "extraordinary_order_value",
    ),
    id_fields=("store_id", "sku"),
)

EXHIBITION_SUMMARY = RecordSchema(
    name="exhibition_summary",
    numeric_fields=(
        "viable_stores",
        "net_monthly_return",
        "total_cost",
        "total_order_units",
        "total_order_value",
        "avg_roi",
    ),
)

RISK_DETAIL = RecordSchema(
    name="risk_detail",
    numeric_fields=("impact",),
    id_fields=("store_id", "sku", "category"),
)

CATEGORY_PRODUCT = RecordSchema(
    name="category_product",
    numeric_fields=(),
    id_fields=("category", "sku", "store_id"),
)


def _coerce(value: Any) -> Tuple[float, bool]:
    """Return (number, coerced) where coerced flags a value replaced by 0."""
    if value is None:
        return 0.0, False

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0, False
        try:
            number = float(text)
        except ValueError:
            return 0.0, True
    else:
        # ints beyond float range raise OverflowError
        try:
            number = float(value)
        except (OverflowError, TypeError, ValueError):
            return 0.0, True

    if not math.isfinite(number):
        return 0.0, True
    return number, False


def coerce_number(value: Any) -> float:
    """Coerce a single raw value to float, defaulting to 0.0."""
    return _coerce(value)[0]


def id_key(value: Any) -> Optional[str]:
    """Comparison key for an id: ints and numeric strings of one id match"""
    return None if value is None else str(value)


class MetricNormalizer:
    """
    Applies the zero-default numeric policy to raw rows.

    Example:
        normalizer = MetricNormalizer()
        record = normalizer.normalize_record(row, ROI_ITEM)
    """

    def __init__(self):
        self.coerced_values = 0

    def normalize_record(
        self,
        row: Optional[Mapping[str, Any]],
        schema: RecordSchema,
    ) -> Dict[str, Any]:
        """Normalize one row: numeric fields to float, id fields passed through."""
        row = row or {}
        record: Dict[str, Any] = {}

        for field in schema.id_fields:
            record[field] = row.get(field)

        for field in schema.numeric_fields:
            number, coerced = _coerce(row.get(field))
            if coerced:
                self.coerced_values += 1
            record[field] = number

        return record

    def normalize_rows(
        self,
        rows: Optional[Iterable[Mapping[str, Any]]],
        schema: RecordSchema,
    ) -> List[Dict[str, Any]]:
        """Normalize a row set"""
        before = self.coerced_values
        records = [self.normalize_record(row, schema) for row in rows or []]

        coerced = self.coerced_values - before
        if coerced:
            logger.debug(
                "Malformed numeric values defaulted to zero",
                schema=schema.name,
                rows=len(records),
                coerced=coerced,
            )
        return records

    def to_frame(
        self,
        rows: Optional[Iterable[Mapping[str, Any]]],
        schema: RecordSchema,
    ) -> pl.DataFrame:
        """
        Normalize rows into a DataFrame with a fixed schema.

        Numeric fields are Float64; id fields are Utf8 (nulls preserved) so
        that ids arriving as int in one row and str in another compare equal.
        """
        records = self.normalize_rows(rows, schema)
        frame_schema = {field: pl.Utf8 for field in schema.id_fields}
        frame_schema.update({field: pl.Float64 for field in schema.numeric_fields})

        data = {
            field: [id_key(r[field]) for r in records]
            for field in schema.id_fields
        }
        data.update({field: [r[field] for r in records] for field in schema.numeric_fields})

        return pl.DataFrame(data, schema=frame_schema)


def normalize_record(
    row: Optional[Mapping[str, Any]],
    fields: Sequence[str],
) -> Dict[str, float]:
    """
    Convenience function: coerce the given fields of a raw row to float.

    Args:
        row: Raw mapping (values may be None, numeric strings, decimals)
        fields: Expected numeric field names

    Returns:
        Dict with every field present as a float
    """
    schema = RecordSchema(name="ad_hoc", numeric_fields=tuple(fields))
    return MetricNormalizer().normalize_record(row, schema)
