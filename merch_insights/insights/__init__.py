"""
Insight Generation Module
"""
from .notifications import NotificationEngine, NotificationContext, apply_interaction_state, priority_score
from .recommendations import RecommendationEngine, ProductSignals, summarize, product_health_score
from .enrichment import InsightEnricher, OpenAIEnricher, ProductInsight, RuleBasedEnricher, get_enricher

__all__ = [
    "NotificationEngine",
    "NotificationContext",
    "apply_interaction_state",
    "priority_score",
    "RecommendationEngine",
    "ProductSignals",
    "summarize",
    "product_health_score",
    "InsightEnricher",
    "OpenAIEnricher",
    "ProductInsight",
    "RuleBasedEnricher",
    "get_enricher",
]
