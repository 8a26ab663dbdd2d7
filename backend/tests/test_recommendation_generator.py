"""
Test Module: test_recommendation_generator.py
Description: Unit tests for recommendation text generation.

Tests:
    - OpenAI path and prompt contents
    - Template fallback on API failure
    - No-transaction encouragement texts
    - AIService error mapping

Author: Smart Financial Coach Team
"""

import asyncio
import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from models import MAX_RECOMMENDATION_LENGTH
from services.ai_service import AIService
from services.errors import ExternalServiceError
from services.recommendation_generator import (
    RecommendationGenerator,
    NO_TRANSACTION_TEMPLATES,
    RECOMMENDATION_SYSTEM_PROMPT,
    MAX_TOKENS,
    TEMPERATURE,
    SOURCE_AI,
    SOURCE_FALLBACK,
    SOURCE_TEMPLATE,
)
from services.transaction_analyzer import analyze_transactions


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def analysis(sample_transactions):
    return analyze_transactions(sample_transactions)


def _completion_response(content, tokens=42):
    response = MagicMock()
    response.usage.total_tokens = tokens
    response.choices = [MagicMock(message=MagicMock(content=content))]
    return response


# =============================================================================
# OpenAI Path Tests
# =============================================================================

class TestAIPath:
    """Tests for successful completions."""

    @pytest.mark.asyncio
    async def test_returns_ai_text(self, mock_ai_service, sample_transactions, analysis):
        generator = RecommendationGenerator(mock_ai_service, timeout=5)

        result = await generator.generate(sample_transactions, analysis)

        assert result.source == SOURCE_AI
        assert result.text == "Reduce tus gastos en Alimentación y ahorra $10.00."

    @pytest.mark.asyncio
    async def test_completion_parameters(self, mock_ai_service, sample_transactions, analysis):
        generator = RecommendationGenerator(mock_ai_service, timeout=5)

        await generator.generate(sample_transactions, analysis)

        kwargs = mock_ai_service.complete.await_args.kwargs
        assert kwargs["system_prompt"] == RECOMMENDATION_SYSTEM_PROMPT
        assert kwargs["max_tokens"] == MAX_TOKENS == 200
        assert kwargs["temperature"] == TEMPERATURE == 0.7
        assert kwargs["timeout"] == 5

    @pytest.mark.asyncio
    async def test_long_output_is_clipped(self, mock_ai_service, sample_transactions, analysis):
        mock_ai_service.complete.return_value = "a" * (MAX_RECOMMENDATION_LENGTH + 500)
        generator = RecommendationGenerator(mock_ai_service, timeout=5)

        result = await generator.generate(sample_transactions, analysis)

        assert len(result.text) == MAX_RECOMMENDATION_LENGTH

    def test_timeout_read_from_environment(self, monkeypatch, mock_ai_service):
        monkeypatch.setenv("RECOMMENDATION_AI_TIMEOUT", "3.5")
        assert RecommendationGenerator(mock_ai_service).timeout == 3.5


class TestPrompt:
    """Tests for the prompt built from the analysis."""

    def test_prompt_contains_summary(self, mock_ai_service, sample_transactions, analysis):
        prompt = RecommendationGenerator(mock_ai_service).build_prompt(sample_transactions, analysis)

        assert "Ingresos totales: $1200.00" in prompt
        assert "Gastos totales: $215.00" in prompt
        assert "Balance: $985.00" in prompt
        assert "- Alimentación: $120.00" in prompt
        assert "CATEGORÍA CON MAYOR GASTO: Alimentación ($120.00)" in prompt

    def test_prompt_lists_recent_transactions(self, mock_ai_service, sample_transactions, analysis):
        prompt = RecommendationGenerator(mock_ai_service).build_prompt(sample_transactions, analysis)

        assert "- Gasto: almuerzo con equipo - $100.00 (2025-03-09)" in prompt
        assert "- Ingreso: salario - $1200.00 (2025-03-07)" in prompt

    def test_prompt_limits_recent_transactions(self, mock_ai_service, make_transaction):
        transactions = [make_transaction(1, "expense", f"compra {i}") for i in range(15)]
        analysis = analyze_transactions(transactions)

        prompt = RecommendationGenerator(mock_ai_service).build_prompt(transactions, analysis)

        assert "compra 9 " in prompt
        assert "compra 10 " not in prompt


# =============================================================================
# Fallback Tests
# =============================================================================

class TestFallback:
    """The generator never raises and always cites the user's numbers."""

    @pytest.mark.asyncio
    async def test_fallback_on_service_error(self, failing_ai_service, sample_transactions, analysis):
        generator = RecommendationGenerator(failing_ai_service, timeout=5)

        result = await generator.generate(sample_transactions, analysis)

        assert result.source == SOURCE_FALLBACK
        assert result.text
        assert "Alimentación" in result.text
        assert "10%" in result.text
        # 10% of 120.00
        assert "$12.00" in result.text

    @pytest.mark.asyncio
    async def test_fallback_on_unexpected_error(self, sample_transactions, analysis):
        service = MagicMock()
        service.complete = AsyncMock(side_effect=RuntimeError("boom"))

        result = await RecommendationGenerator(service, timeout=5).generate(sample_transactions, analysis)

        assert result.source == SOURCE_FALLBACK
        assert "Alimentación" in result.text

    @pytest.mark.asyncio
    async def test_negative_balance_fallback(self, failing_ai_service, make_transaction):
        transactions = [
            make_transaction(300, "expense", "arriendo"),
            make_transaction(100, "income", "venta"),
        ]
        analysis = analyze_transactions(transactions)

        result = await RecommendationGenerator(failing_ai_service, timeout=5).generate(transactions, analysis)

        assert result.text.startswith("Tu balance actual es de $-200.00")
        assert "Vivienda" in result.text
        assert "20%" in result.text
        assert "$60.00" in result.text

    @pytest.mark.asyncio
    async def test_unconfigured_service_falls_back(self, sample_transactions, analysis):
        generator = RecommendationGenerator(AIService(api_key=""), timeout=5)

        result = await generator.generate(sample_transactions, analysis)

        assert result.source == SOURCE_FALLBACK

    def test_positive_fallback_text(self, mock_ai_service, analysis):
        text = RecommendationGenerator(mock_ai_service).fallback_text(analysis)
        assert text.startswith("¡Excelente! Mantienes un balance positivo de $985.00")


class TestNoTransactions:
    """Tests for the encouragement texts."""

    def test_text_is_one_of_templates(self, mock_ai_service):
        result = RecommendationGenerator(mock_ai_service).no_transactions_text()

        assert result.text in NO_TRANSACTION_TEMPLATES
        assert result.source == SOURCE_TEMPLATE
        mock_ai_service.complete.assert_not_called()

    def test_seeded_choice_is_repeatable(self, mock_ai_service):
        first = RecommendationGenerator(mock_ai_service, rng=random.Random(7)).no_transactions_text()
        second = RecommendationGenerator(mock_ai_service, rng=random.Random(7)).no_transactions_text()
        assert first.text == second.text


# =============================================================================
# AIService Tests
# =============================================================================

class TestAIService:
    """Tests for error mapping in the OpenAI wrapper."""

    @pytest.fixture
    def service(self):
        service = AIService(api_key="")
        service.client = MagicMock()
        return service

    @pytest.mark.asyncio
    async def test_no_client_raises(self):
        with pytest.raises(ExternalServiceError):
            await AIService(api_key="").complete("p", "s", max_tokens=10, temperature=0.5)

    @pytest.mark.asyncio
    async def test_strips_content_and_tracks_usage(self, service):
        service.client.chat.completions.create = AsyncMock(
            return_value=_completion_response("  Ahorra más.  ")
        )

        text = await service.complete("p", "s", max_tokens=10, temperature=0.5)

        assert text == "Ahorra más."
        assert service.get_usage_stats()["total_tokens"] == 42
        assert service.get_usage_stats()["request_count"] == 1

    @pytest.mark.asyncio
    async def test_empty_content_raises(self, service):
        service.client.chat.completions.create = AsyncMock(
            return_value=_completion_response("   ")
        )

        with pytest.raises(ExternalServiceError):
            await service.complete("p", "s", max_tokens=10, temperature=0.5)

    @pytest.mark.asyncio
    async def test_api_error_raises(self, service):
        service.client.chat.completions.create = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(ExternalServiceError):
            await service.complete("p", "s", max_tokens=10, temperature=0.5)

    @pytest.mark.asyncio
    async def test_timeout_raises(self, service):
        async def slow_create(**kwargs):
            await asyncio.sleep(1)

        service.client.chat.completions.create = slow_create

        with pytest.raises(ExternalServiceError, match="timed out"):
            await service.complete("p", "s", max_tokens=10, temperature=0.5, timeout=0.01)
