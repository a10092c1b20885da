"""
Transformation Module
"""
from .aggregation import aggregate_products
from .segmentation import segment_products
from .pipeline import AnalyticsPipeline, RecomputeInput

__all__ = [
    "aggregate_products",
    "segment_products",
    "AnalyticsPipeline",
    "RecomputeInput",
]
