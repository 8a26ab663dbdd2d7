"""
Pytest configuration and shared fixtures for the recommendations tests.

This file is automatically loaded by pytest and provides:
    - In-memory database fixtures
    - A controllable clock
    - Transaction factories and a mock AI service

Author: Smart Financial Coach Team
"""

import os
import sys
from pathlib import Path
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables BEFORE any application code is imported.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RECOMMENDATION_PURGE_ENABLED", "false")

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from models import Transaction, Recommendation  # noqa: F401
from services.errors import ExternalServiceError


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 10, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def db_engine():
    """In-memory SQLite shared by every connection of the test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    Session = sessionmaker(bind=db_engine, autoflush=False)
    session = Session()
    yield session
    session.close()


# =============================================================================
# Transaction Fixtures
# =============================================================================

class MockTransaction:
    """Plain transaction object for analyzer and generator tests."""

    def __init__(self, amount, type, description, date_val=None):
        self.amount = amount
        self.type = type
        self.description = description
        self.date = date_val or datetime(2025, 3, 9, 10, 0, 0)


@pytest.fixture
def sample_transactions():
    """A week with income, several categories and an unmatched description."""
    base = datetime(2025, 3, 9, 18, 0, 0)
    return [
        MockTransaction(100.00, "expense", "almuerzo con equipo", base),
        MockTransaction(50.00, "expense", "uber al aeropuerto", base - timedelta(days=1)),
        MockTransaction(1200.00, "income", "salario", base - timedelta(days=2)),
        MockTransaction(30.00, "expense", "Netflix mensual", base - timedelta(days=3)),
        MockTransaction(20.00, "expense", "supermercado", base - timedelta(days=4)),
        MockTransaction(15.00, "expense", "Regalo cumpleaños", base - timedelta(days=5)),
    ]


@pytest.fixture
def add_transaction(db_session):
    """Insert a transaction row for a user."""
    def _add(user_id, amount, type, description, date_val):
        txn = Transaction(
            user_id=user_id,
            amount=amount,
            type=type,
            description=description,
            date=date_val,
        )
        db_session.add(txn)
        db_session.commit()
        return txn
    return _add


# =============================================================================
# AI Service Fixtures
# =============================================================================

@pytest.fixture
def mock_ai_service():
    """AI service whose completion succeeds with a fixed text."""
    service = MagicMock()
    service.complete = AsyncMock(return_value="Reduce tus gastos en Alimentación y ahorra $10.00.")
    return service


@pytest.fixture
def failing_ai_service():
    """AI service that always fails like an unreachable API."""
    service = MagicMock()
    service.complete = AsyncMock(side_effect=ExternalServiceError("connection refused"))
    return service


@pytest.fixture
def make_transaction():
    return MockTransaction
