"""Persistence for recommendation records."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from models import Recommendation, RECOMMENDATION_TTL, utc_now
from .errors import StorageError
from .observability import logger


@dataclass
class RecommendationDraft:
    """Fields supplied by the caller; the store assigns id and timestamps."""
    user_id: str
    recommendation_text: str
    transaction_count: int
    total_amount: float
    analysis: dict
    metadata: Optional[dict] = field(default=None)


class RecommendationStore:
    """
    Recommendation records over a SQLAlchemy session.

    Each public method is one unit of work: it commits on success and rolls
    back and raises StorageError on any database error.
    """

    def __init__(self, db: DBSession, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    def find_active_for_user(self, user_id: str) -> Optional[Recommendation]:
        """Newest record that is active and not yet expired, or None."""
        now = self.clock()
        try:
            return (
                self.db.query(Recommendation)
                .filter(Recommendation.user_id == user_id)
                .filter(Recommendation.is_active.is_(True))
                .filter(Recommendation.expires_at > now)
                .order_by(Recommendation.generated_at.desc())
                .first()
            )
        except SQLAlchemyError as e:
            raise self._fail("find_active_for_user", e) from e

    def deactivate_all_for_user(self, user_id: str) -> int:
        """Flip every active record of the user to inactive."""
        try:
            count = self._deactivate(user_id)
            self.db.commit()
            return count
        except SQLAlchemyError as e:
            raise self._fail("deactivate_all_for_user", e) from e

    def insert(self, draft: RecommendationDraft) -> Recommendation:
        """Store a new active record stamped with the current time."""
        try:
            record = self._build(draft)
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
            return record
        except SQLAlchemyError as e:
            raise self._fail("insert", e) from e

    def replace_active(self, user_id: str, draft: RecommendationDraft) -> Recommendation:
        """Deactivate the user's records and insert ``draft`` in one transaction."""
        if draft.user_id != user_id:
            raise ValueError("Draft belongs to a different user")
        try:
            deactivated = self._deactivate(user_id)
            record = self._build(draft)
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as e:
            raise self._fail("replace_active", e) from e

        logger.debug("Replaced active recommendation", user=user_id, deactivated=deactivated)
        return record

    def count_for_user(self, user_id: str) -> int:
        try:
            return (
                self.db.query(Recommendation)
                .filter(Recommendation.user_id == user_id)
                .count()
            )
        except SQLAlchemyError as e:
            raise self._fail("count_for_user", e) from e

    def purge_expired(self) -> int:
        """Delete records whose expiry has passed."""
        now = self.clock()
        try:
            deleted = (
                self.db.query(Recommendation)
                .filter(Recommendation.expires_at <= now)
                .delete(synchronize_session=False)
            )
            self.db.commit()
            return deleted
        except SQLAlchemyError as e:
            raise self._fail("purge_expired", e) from e

    def _deactivate(self, user_id: str) -> int:
        return (
            self.db.query(Recommendation)
            .filter(Recommendation.user_id == user_id)
            .filter(Recommendation.is_active.is_(True))
            .update({Recommendation.is_active: False}, synchronize_session="fetch")
        )

    def _build(self, draft: RecommendationDraft) -> Recommendation:
        generated_at = self.clock()
        return Recommendation(
            user_id=draft.user_id,
            recommendation_text=draft.recommendation_text,
            transaction_count=draft.transaction_count,
            total_amount=draft.total_amount,
            analysis=draft.analysis,
            generated_at=generated_at,
            expires_at=generated_at + RECOMMENDATION_TTL,
            is_active=True,
            extra_metadata=draft.metadata,
        )

    def _fail(self, operation: str, error: SQLAlchemyError) -> StorageError:
        self.db.rollback()
        logger.error("Recommendation store failure", operation=operation, error=str(error))
        return StorageError(f"Recommendation store failed during {operation}")
