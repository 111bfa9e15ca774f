"""
Data Normalization Module
"""
from .normalizer import (
    MetricNormalizer,
    RecordSchema,
    coerce_number,
    id_key,
    normalize_record,
)

__all__ = [
    "MetricNormalizer",
    "RecordSchema",
    "coerce_number",
    "id_key",
    "normalize_record",
]
