"""
Recommendation Text Generator

Turns a week of transactions and its analysis into one short piece of
financial advice. Uses OpenAI with a data-rich prompt and falls back to
templated text when the API is unavailable.

Features:
    - Prompt with summary, category breakdown and recent transactions
    - Deterministic fallback citing the user's own numbers
    - Encouragement templates for users with no transactions
    - Never raises; output always fits the stored column

Author: Smart Financial Coach Team
"""

import os
import random
from dataclasses import dataclass
from datetime import date, datetime
from typing import Sequence

from models import MAX_RECOMMENDATION_LENGTH
from .ai_service import AIService, DEFAULT_TIMEOUT_SECONDS
from .errors import ExternalServiceError
from .observability import logger, log_ai_fallback
from .transaction_analyzer import TransactionAnalysis


SOURCE_AI = "ai_service"
SOURCE_FALLBACK = "fallback"
SOURCE_TEMPLATE = "template"

MAX_TOKENS = 200
TEMPERATURE = 0.7
RECENT_TRANSACTIONS_IN_PROMPT = 10


@dataclass
class GeneratedText:
    """Recommendation text and where it came from."""
    text: str
    source: str


# =============================================================================
# Prompt Templates
# =============================================================================

RECOMMENDATION_SYSTEM_PROMPT = (
    "Eres un asesor financiero experto que da consejos prácticos y motivacionales en español. "
    "Tus respuestas son concisas, específicas y accionables."
)

RECOMMENDATION_USER_TEMPLATE = """
Analiza los siguientes datos financieros de los últimos 7 días y genera una recomendación personalizada:

RESUMEN FINANCIERO:
- Ingresos totales: ${total_income:.2f}
- Gastos totales: ${total_expenses:.2f}
- Balance: ${balance:.2f}
- Número de transacciones: {transaction_count}

GASTOS POR CATEGORÍAS:
{categories_text}

CATEGORÍA CON MAYOR GASTO: {top_category} (${top_amount:.2f})

TRANSACCIONES RECIENTES:
{recent_text}

Proporciona una recomendación que incluya:
1. Un análisis específico del comportamiento financiero
2. Un consejo práctico y accionable
3. Una estimación realista de cuánto podrían ahorrar

Respuesta en máximo 120 palabras, concisa y motivacional.
"""


# =============================================================================
# Fixed Texts
# =============================================================================

NO_TRANSACTION_TEMPLATES = (
    "¡Comienza tu viaje financiero registrando tus gastos e ingresos! Llevar un control "
    "detallado te ayudará a identificar patrones y oportunidades de ahorro. Te recomiendo: "
    "1) Registra cada transacción diariamente, 2) Categoriza tus gastos, 3) Establece un "
    "presupuesto mensual. Incluso registrar $500 en gastos semanales puede revelarte ahorros "
    "potenciales de $50-100 mensuales.",
    "Para mejorar tus finanzas, el primer paso es la visibilidad. Registra todas tus "
    "transacciones durante esta semana y descubre dónde va tu dinero. Muchos usuarios descubren "
    "gastos innecesarios de $200-300 mensuales solo con este simple seguimiento. ¡Empieza hoy!",
    "Un presupuesto efectivo comienza con datos reales. Te sugiero registrar al menos 7 días de "
    "transacciones para obtener tu primera recomendación personalizada. Esto te ayudará a crear "
    "un plan de ahorro realista y alcanzar tus metas financieras más rápido.",
)

POSITIVE_BALANCE_TEMPLATE = (
    "¡Excelente! Mantienes un balance positivo de ${balance:.2f}. Para optimizar aún más, "
    "considera reducir gastos en {top_category} (tu categoría principal con ${top_amount:.2f}). "
    "Un ahorro del 10% en esta categoría podría darte ${savings:.2f} adicionales este mes."
)

NEGATIVE_BALANCE_TEMPLATE = (
    "Tu balance actual es de ${balance:.2f}. Te recomiendo revisar tus gastos en {top_category}, "
    "donde gastaste ${top_amount:.2f}. Reducir un 20% en esta categoría podría ahorrarte "
    "${savings:.2f} y mejorar tu situación financiera."
)

# Last resort if even template formatting fails
SAFE_DEFAULT_TEXT = NO_TRANSACTION_TEMPLATES[0]


def _clip(text: str) -> str:
    return text[:MAX_RECOMMENDATION_LENGTH]


def _format_date(value) -> str:
    """YYYY-MM-DD for date or datetime values."""
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class RecommendationGenerator:
    """
    Generates recommendation text with OpenAI.

    Falls back to templated advice if the API is unavailable, slow, or
    returns nothing.
    """

    def __init__(self, ai_service: AIService, timeout: float | None = None, rng: random.Random | None = None):
        self.ai_service = ai_service
        self.timeout = timeout if timeout is not None else float(
            os.getenv("RECOMMENDATION_AI_TIMEOUT", str(DEFAULT_TIMEOUT_SECONDS))
        )
        self.rng = rng or random.Random()

    async def generate(self, transactions: Sequence, analysis: TransactionAnalysis) -> GeneratedText:
        """
        Generate advice for a non-empty transaction window.

        Args:
            transactions: Transactions in the window, newest first.
            analysis: Result of ``analyze_transactions`` for the same window.

        Returns:
            GeneratedText with ``source`` set to ``ai_service`` or ``fallback``.
        """
        try:
            prompt = self.build_prompt(transactions, analysis)
            text = await self.ai_service.complete(
                prompt,
                system_prompt=RECOMMENDATION_SYSTEM_PROMPT,
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
                timeout=self.timeout,
            )
            return GeneratedText(_clip(text), SOURCE_AI)
        except ExternalServiceError as e:
            log_ai_fallback(str(e))
        except Exception as e:
            logger.exception("Unexpected error generating recommendation text", error=str(e))
            log_ai_fallback("unexpected_error")

        return GeneratedText(self.fallback_text(analysis), SOURCE_FALLBACK)

    def no_transactions_text(self) -> GeneratedText:
        """Pick one of the encouragement templates at random."""
        return GeneratedText(_clip(self.rng.choice(NO_TRANSACTION_TEMPLATES)), SOURCE_TEMPLATE)

    def build_prompt(self, transactions: Sequence, analysis: TransactionAnalysis) -> str:
        """Build the user prompt for the completion call."""
        categories_text = "\n".join(
            f"- {category}: ${amount:.2f}"
            for category, amount in analysis.category_totals.items()
        )

        recent_text = "\n".join(
            f"- {'Gasto' if t.type == 'expense' else 'Ingreso'}: {t.description} - "
            f"${t.amount:.2f} ({_format_date(t.date)})"
            for t in list(transactions)[:RECENT_TRANSACTIONS_IN_PROMPT]
        )

        return RECOMMENDATION_USER_TEMPLATE.format(
            total_income=analysis.total_income,
            total_expenses=analysis.total_expenses,
            balance=analysis.balance,
            transaction_count=analysis.transaction_count,
            categories_text=categories_text,
            top_category=analysis.top_category,
            top_amount=analysis.top_amount,
            recent_text=recent_text,
        )

    def fallback_text(self, analysis: TransactionAnalysis) -> str:
        """Deterministic advice built from the analysis numbers."""
        try:
            if analysis.balance >= 0:
                template, rate = POSITIVE_BALANCE_TEMPLATE, 0.10
            else:
                template, rate = NEGATIVE_BALANCE_TEMPLATE, 0.20
            text = template.format(
                balance=analysis.balance,
                top_category=analysis.top_category,
                top_amount=analysis.top_amount,
                savings=analysis.top_amount * rate,
            )
            return _clip(text)
        except Exception as e:
            logger.exception("Fallback template failed", error=str(e))
            return SAFE_DEFAULT_TEXT
