"""
Unit Tests - Product Insight Enrichment
"""
import json
from types import SimpleNamespace

import pytest

from merch_insights.config.settings import LLMSettings
from merch_insights.domain import (
    Recommendation,
    RecommendationType,
    RecommendationUrgency,
    Segment,
)
from merch_insights.insights.enrichment import OpenAIEnricher, RuleBasedEnricher
from merch_insights.insights.recommendations import ProductSignals


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(content=None, error=None):
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(content, error)))


@pytest.fixture
def signals(make_stats, app_settings):
    stats = make_stats(
        "TS-001",
        "Linen Shirt",
        total_quantity=9,
        total_revenue=3150.0,
        total_impressions=3000,
        segment=Segment.A,
    )
    return ProductSignals(stats=stats, settings=app_settings)


@pytest.fixture
def reorder():
    return Recommendation(
        type=RecommendationType.STOCK_REORDER,
        urgency=RecommendationUrgency.CRITICAL,
        product_code="TS-001",
        product_name="Linen Shirt",
        title="Reorder stock",
        description="Stock covers less than a week",
        reason="5 units left",
        action_steps=["Order 4 units", "Check supplier lead time", "Update listing"],
    )


class TestRuleBasedEnricher:
    """Tests for the deterministic insight"""

    @pytest.mark.asyncio
    async def test_healthy_product(self, signals):
        insight = await RuleBasedEnricher().describe(signals, [])

        assert insight.product_code == "TS-001"
        assert insight.health_score == 100
        assert insight.actions == []
        assert "within expected ranges" in insight.summary
        assert "Segment A product" in insight.highlights

    @pytest.mark.asyncio
    async def test_top_product_with_problem(self, signals, reorder):
        insight = await RuleBasedEnricher().describe(signals, [reorder])

        assert insight.health_score == 75
        assert insight.actions == ["Order 4 units", "Check supplier lead time"]
        assert insight.summary.startswith("Linen Shirt is a top revenue product")
        assert insight.source == "rules"


class TestOpenAIEnricher:
    """Tests for generative insight and its fallback"""

    @pytest.fixture
    def llm_settings(self):
        return LLMSettings(OPENAI_API_KEY="test-key")

    @pytest.mark.asyncio
    async def test_uses_model_output(self, llm_settings, signals, reorder):
        content = json.dumps({"summary": "Reorder now.", "highlights": ["Fast seller"], "actions": ["Order"]})
        client = fake_client(content=content)

        insight = await OpenAIEnricher(llm_settings, client=client).describe(signals, [reorder])

        assert insight.summary == "Reorder now."
        assert insight.highlights == ["Fast seller"]
        assert insight.source == "llm"
        # score always comes from the rules
        assert insight.health_score == 75

        call = client.chat.completions.calls[0]
        assert call["model"] == llm_settings.completion_model
        assert json.loads(call["messages"][1]["content"])["product"]["code"] == "TS-001"

    @pytest.mark.asyncio
    async def test_api_error_falls_back(self, llm_settings, signals):
        client = fake_client(error=RuntimeError("rate limited"))

        insight = await OpenAIEnricher(llm_settings, client=client).describe(signals, [])

        assert insight.source == "rules"
        assert "within expected ranges" in insight.summary

    @pytest.mark.asyncio
    async def test_unparseable_output_falls_back(self, llm_settings, signals):
        client = fake_client(content="not json at all")

        insight = await OpenAIEnricher(llm_settings, client=client).describe(signals, [])

        assert insight.source == "rules"

    @pytest.mark.asyncio
    async def test_missing_summary_falls_back(self, llm_settings, signals):
        client = fake_client(content=json.dumps({"highlights": []}))

        insight = await OpenAIEnricher(llm_settings, client=client).describe(signals, [])

        assert insight.source == "rules"


class TestLLMSettings:

    def test_blank_key_is_not_configured(self):
        assert not LLMSettings(OPENAI_API_KEY="  ").is_configured
        assert LLMSettings(OPENAI_API_KEY="sk-x").is_configured
