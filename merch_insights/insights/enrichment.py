"""
Product Insight Enrichment

Narrative summary of one product's situation. The rule-based enricher is
always available; the OpenAI enricher is used when an API key is configured
and falls back to the rule-based text on any failure.

Environment variables:
    OPENAI_API_KEY              -> enables generative insight
    LLM_COMPLETION_MODEL        -> chat model
    LLM_COMPLETION_MAX_TOKENS   -> token limit
    LLM_COMPLETION_TEMPERATURE  -> sampling temperature
"""

import json
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Callable, Coroutine, List, Optional, Sequence, TypeVar

import structlog
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from merch_insights.config.settings import LLMSettings, get_settings
from merch_insights.domain import Recommendation, Segment, StockUrgency, TrendStatus
from merch_insights.insights.recommendations import ProductSignals, product_health_score

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SYSTEM_PROMPT = (
    "You are a merchandising analyst for an online marketplace seller. "
    "Given product metrics and rule-based recommendations, write a short, "
    "concrete assessment. Respond with a JSON object with keys "
    '"summary" (string), "highlights" (list of strings) and "actions" (list of strings).'
)


class ProductInsight(BaseModel):
    product_code: str
    product_name: str
    summary: str
    highlights: List[str] = Field(default_factory=list)
    actions: List[str] = Field(default_factory=list)
    health_score: int = 100
    source: str = "rules"


class InsightEnricher(ABC):
    """Strategy producing a ProductInsight for one product"""

    name: str = "base"

    @abstractmethod
    async def describe(
        self,
        signals: ProductSignals,
        recommendations: Sequence[Recommendation],
    ) -> ProductInsight:
        ...


class RuleBasedEnricher(InsightEnricher):
    """Deterministic insight assembled from the computed signals"""

    name = "rules"

    def _highlights(self, signals: ProductSignals) -> List[str]:
        stats, trend, stock = signals.stats, signals.trend, signals.stock
        currency = signals.settings.currency.value
        highlights = [
            f"Revenue {stats.total_revenue:,.0f} {currency} from {stats.total_quantity:,} units",
        ]
        if stats.segment is not None:
            highlights.append(f"Segment {stats.segment.value} product")
        if stats.total_impressions:
            highlights.append(f"Conversion {stats.conversion_rate * 100:.2f}% on {stats.total_impressions:,} impressions")
        if trend is not None:
            if trend.dormant:
                highlights.append("No sales in the recent window")
            elif trend.status != TrendStatus.STABLE:
                highlights.append(f"Trend {trend.status.value} ({trend.change_pct:+.1f}%)")
            if trend.yoy_change is not None:
                highlights.append(f"Year over year {trend.yoy_change:+.1f}%")
        if stock is not None and stock.urgency in (StockUrgency.CRITICAL, StockUrgency.WARNING):
            highlights.append(f"Stock {stock.urgency.value}, reorder {stock.recommended_order} units")
        return highlights

    def _summary(self, signals: ProductSignals, recommendations: Sequence[Recommendation]) -> str:
        stats = signals.stats
        if not recommendations:
            return f"{stats.name} is performing within expected ranges."
        lead = recommendations[0]
        if stats.segment == Segment.A:
            return f"{stats.name} is a top revenue product. Priority: {lead.title.lower()}."
        return f"{stats.name} needs attention. Priority: {lead.title.lower()}."

    async def describe(
        self,
        signals: ProductSignals,
        recommendations: Sequence[Recommendation],
    ) -> ProductInsight:
        actions = [step for rec in recommendations[:3] for step in rec.action_steps[:2]]
        return ProductInsight(
            product_code=signals.stats.code,
            product_name=signals.stats.name,
            summary=self._summary(signals, recommendations),
            highlights=self._highlights(signals),
            actions=actions,
            health_score=product_health_score(recommendations),
            source=self.name,
        )


async def run_with_common_errors(
    operation: str,
    coro_factory: Callable[[], Coroutine[Any, Any, T]],
) -> Optional[T]:
    """Await an OpenAI call and log failures; returns None on error"""
    try:
        return await coro_factory()
    except Exception as e:
        logger.error("LLM call failed", operation=operation, error=str(e), exc_info=True)
        return None


class OpenAIEnricher(InsightEnricher):
    """
    Generative insight through the OpenAI chat completions API.

    Example:
        enricher = OpenAIEnricher(settings.llm)
        insight = await enricher.describe(signals, recommendations)
    """

    name = "llm"

    def __init__(
        self,
        llm_settings: LLMSettings,
        client: Optional[AsyncOpenAI] = None,
        fallback: Optional[InsightEnricher] = None,
    ):
        self._settings = llm_settings
        self.client = client or AsyncOpenAI(
            api_key=llm_settings.api_key.get_secret_value() if llm_settings.api_key else None,
            timeout=llm_settings.timeout_seconds,
        )
        self.model = llm_settings.completion_model
        self.max_tokens = llm_settings.max_tokens
        self.temperature = llm_settings.temperature
        self.fallback = fallback or RuleBasedEnricher()

    def build_prompt(self, signals: ProductSignals, recommendations: Sequence[Recommendation]) -> str:
        payload = {
            "currency": signals.settings.currency.value,
            "product": signals.stats.model_dump(mode="json"),
            "trend": signals.trend.model_dump(mode="json") if signals.trend else None,
            "stock": signals.stock.model_dump(mode="json") if signals.stock else None,
            "recommendations": [
                {"type": r.type.value, "urgency": r.urgency.value, "title": r.title, "reason": r.reason}
                for r in recommendations
            ],
        }
        return json.dumps(payload, ensure_ascii=False)

    async def describe(
        self,
        signals: ProductSignals,
        recommendations: Sequence[Recommendation],
    ) -> ProductInsight:
        baseline = await self.fallback.describe(signals, recommendations)
        prompt = self.build_prompt(signals, recommendations)

        async def _call():
            return await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )

        response = await run_with_common_errors("product insight", _call)
        if response is None or not response.choices:
            return baseline

        content = response.choices[0].message.content
        if not content:
            logger.warning("Empty LLM content, using rule-based insight", product_code=signals.stats.code)
            return baseline

        try:
            parsed = json.loads(content)
            return baseline.model_copy(update={
                "summary": str(parsed["summary"]),
                "highlights": [str(h) for h in parsed.get("highlights", baseline.highlights)],
                "actions": [str(a) for a in parsed.get("actions", baseline.actions)],
                "source": self.name,
            })
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                "Unparseable LLM insight, using rule-based insight",
                product_code=signals.stats.code,
                error=str(e),
            )
            return baseline


@lru_cache()
def get_enricher() -> InsightEnricher:
    """OpenAI enricher when an API key is configured, rule-based otherwise"""
    llm = get_settings().llm
    if llm.is_configured:
        logger.info("Generative insight enabled", model=llm.completion_model)
        return OpenAIEnricher(llm)
    logger.info("OPENAI_API_KEY not configured, using rule-based insight")
    return RuleBasedEnricher()
