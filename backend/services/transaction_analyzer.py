"""Rule-based categorization and aggregate statistics for a transaction window."""

import re
from dataclasses import dataclass, field
from typing import Iterable

from models import ANALYSIS_PERIOD, TRANSACTION_TYPES
from .errors import InvalidInputError


# Ordered: the first matching pattern wins. Matches are substrings of the
# lower-cased description.
CATEGORY_KEYWORDS = {
    r"comida|restaurante|almuerzo|desayuno|cena|mercado|supermercado|groceries": "Alimentación",
    r"uber|taxi|gasolina|combustible|bus|metro|transporte|parking": "Transporte",
    r"cine|película|juego|bar|diversión|entretenimiento|netflix|spotify": "Entretenimiento",
    r"electricidad|agua|gas|internet|teléfono|servicio|recibo|factura": "Servicios",
    r"compra|ropa|shopping|tienda|mall": "Compras",
    r"médico|doctor|medicina|farmacia|hospital|salud": "Salud",
    r"educación|colegio|universidad|curso|libro": "Educación",
    r"casa|hogar|arriendo|alquiler|hipoteca": "Vivienda",
}

DEFAULT_CATEGORY = "Other"
NO_TRANSACTIONS_CATEGORY = "None"
# Top category when the window holds income but no expenses
NO_EXPENSES_CATEGORY = "Gastos generales"


@dataclass
class TransactionAnalysis:
    """Aggregates for one analysis window."""
    total_income: float = 0.0
    total_expenses: float = 0.0
    balance: float = 0.0
    total_amount: float = 0.0
    category_totals: dict[str, float] = field(default_factory=dict)
    top_category: str = NO_TRANSACTIONS_CATEGORY
    top_amount: float = 0.0
    transaction_count: int = 0
    expense_count: int = 0
    income_count: int = 0
    period: str = ANALYSIS_PERIOD

    @classmethod
    def empty(cls) -> "TransactionAnalysis":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.transaction_count == 0

    def to_snapshot(self) -> dict:
        """Structure persisted on the recommendation record."""
        return {
            "period": self.period,
            "category_totals": dict(self.category_totals),
            "top_category": self.top_category,
            "balance": self.balance,
        }


def categorize_description(description: str | None) -> str:
    """Map a free-text description to a category label."""
    desc_lower = (description or "").lower()

    for pattern, category in CATEGORY_KEYWORDS.items():
        if re.search(pattern, desc_lower):
            return category

    tokens = (description or "").split()
    return tokens[0] if tokens else DEFAULT_CATEGORY


def _validate(txn) -> None:
    amount = getattr(txn, "amount", None)
    txn_type = getattr(txn, "type", None)
    if not isinstance(amount, (int, float)) or isinstance(amount, bool):
        raise InvalidInputError(f"Transaction amount must be numeric, got {amount!r}")
    if amount < 0:
        raise InvalidInputError(f"Transaction amount must be non-negative, got {amount}")
    if txn_type not in TRANSACTION_TYPES:
        raise InvalidInputError(f"Unknown transaction type: {txn_type!r}")


def analyze_transactions(transactions: Iterable) -> TransactionAnalysis:
    """
    Compute totals, balance and per-category expense sums.

    Args:
        transactions: Objects with ``amount``, ``type``, ``description``
            and ``date`` attributes, already limited to the analysis window.

    Returns:
        TransactionAnalysis. Ties for the top category go to the category
        seen first in input order.

    Raises:
        InvalidInputError: On a negative amount or an unknown type.
    """
    transactions = list(transactions)
    for txn in transactions:
        _validate(txn)

    if not transactions:
        return TransactionAnalysis.empty()

    expenses = [t for t in transactions if t.type == "expense"]
    income = [t for t in transactions if t.type == "income"]

    total_expenses = sum(t.amount for t in expenses)
    total_income = sum(t.amount for t in income)

    category_totals: dict[str, float] = {}
    for expense in expenses:
        category = categorize_description(expense.description)
        category_totals[category] = category_totals.get(category, 0) + expense.amount

    top_category = NO_EXPENSES_CATEGORY
    top_amount = 0.0
    for category, amount in category_totals.items():
        if amount > top_amount:
            top_category = category
            top_amount = amount

    # All expenses were zero: still report the first category seen
    if top_amount == 0 and category_totals:
        top_category = next(iter(category_totals))

    return TransactionAnalysis(
        total_income=total_income,
        total_expenses=total_expenses,
        balance=total_income - total_expenses,
        total_amount=total_income + total_expenses,
        category_totals=category_totals,
        top_category=top_category,
        top_amount=top_amount,
        transaction_count=len(transactions),
        expense_count=len(expenses),
        income_count=len(income),
    )
