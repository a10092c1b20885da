"""
Analytics Module
"""
from .stock import allocate_budget, compute_stock_recommendation, compute_stock_recommendations
from .trends import classify_change, detect_trends, percent_change, year_over_year

__all__ = [
    "allocate_budget",
    "compute_stock_recommendation",
    "compute_stock_recommendations",
    "classify_change",
    "detect_trends",
    "percent_change",
    "year_over_year",
]
