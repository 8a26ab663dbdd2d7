"""
SQLAlchemy ORM models for the recommendations back end.

Includes:
    - Transaction (read-only feed owned by the transactions CRUD layer)
    - Recommendation (one AI recommendation per user per 24 hours)

Author: Smart Financial Coach Team
"""

import uuid
from datetime import datetime, timedelta, timezone
from sqlalchemy import (
    Column, String, Float, Integer, Boolean, DateTime, Text, JSON, Index
)
from database import Base


# Lifetime of a recommendation and maximum stored text length
RECOMMENDATION_TTL = timedelta(hours=24)
MAX_RECOMMENDATION_LENGTH = 2000
ANALYSIS_PERIOD = "last_7_days"

TRANSACTION_TYPES = ("income", "expense")


def utc_now() -> datetime:
    """Naive UTC timestamp, the format stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


class Transaction(Base):
    """A user's income or expense entry."""
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    amount = Column(Float, nullable=False)  # always >= 0, sign comes from type
    type = Column(String, nullable=False)  # 'income'|'expense'
    description = Column(String(500), nullable=False)
    date = Column(DateTime, nullable=False, index=True)
    category_name = Column(String)
    created_at = Column(DateTime, default=utc_now)

    __table_args__ = (
        Index('ix_transactions_user_date', 'user_id', 'date'),
    )


class Recommendation(Base):
    """
    AI-generated financial recommendation.

    Only ``is_active`` changes after insert. ``expires_at`` is stamped by the
    store as ``generated_at + RECOMMENDATION_TTL`` and never recomputed.
    """
    __tablename__ = "recommendations"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, nullable=False, index=True)
    recommendation_text = Column(String(MAX_RECOMMENDATION_LENGTH), nullable=False)
    transaction_count = Column(Integer, nullable=False, default=0)
    total_amount = Column(Float, nullable=False, default=0.0)

    # {period, category_totals, top_category, balance}
    analysis = Column(JSON, nullable=False)

    generated_at = Column(DateTime, nullable=False, default=utc_now, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # 'metadata' is reserved on declarative classes
    extra_metadata = Column("metadata", JSON)

    __table_args__ = (
        Index('ix_recommendations_user_active_expires', 'user_id', 'is_active', 'expires_at'),
    )

    def is_valid(self, now: datetime | None = None) -> bool:
        """Active and not yet expired."""
        now = now or utc_now()
        return bool(self.is_active) and now < self.expires_at

    def milliseconds_until_expiration(self, now: datetime | None = None) -> int:
        now = now or utc_now()
        remaining = (self.expires_at - now).total_seconds() * 1000
        return max(0, int(remaining))
