"""
Merchandising Insights Engine

Turns periodic e-commerce sales exports and a product catalog into product
statistics, ABC segments, trends, reorder quantities, notifications and
recommendations.
"""

__version__ = "1.0.0"
