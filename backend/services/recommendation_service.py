"""
Daily AI recommendation workflow.

A user holds at most one valid recommendation at a time. A new one can be
generated once the current one expires (24 hours after generation) or when
generation is forced. Generations for the same user are serialized in-process
and the old/new swap is a single database transaction.

Author: Smart Financial Coach Team
"""

import asyncio
import weakref
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session as DBSession

from models import Recommendation, utc_now
from schemas import RecommendationView, AnalysisSnapshot
from .ai_service import AIService
from .errors import ThrottledError, NotFoundError
from .observability import (
    logger, timed,
    log_recommendation_generated, log_recommendation_throttled
)
from .recommendation_generator import RecommendationGenerator
from .recommendation_store import RecommendationStore, RecommendationDraft
from .transaction_analyzer import TransactionAnalysis, analyze_transactions
from .transaction_feed import TransactionFeed


ANALYSIS_WINDOW = timedelta(days=7)
GENERATOR_VERSION = "1.0"


class UserLockRegistry:
    """
    One asyncio.Lock per user id.

    Locks are held weakly: an entry disappears once no coroutine is holding
    or waiting on it.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


# Shared by every service instance in the process
user_locks = UserLockRegistry()


class RecommendationService:
    """Admission control and generate-or-fetch for daily recommendations."""

    def __init__(
        self,
        db: DBSession,
        ai_service: AIService,
        feed: Optional[TransactionFeed] = None,
        store: Optional[RecommendationStore] = None,
        generator: Optional[RecommendationGenerator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        locks: Optional[UserLockRegistry] = None,
    ):
        self.db = db
        self.clock = clock or utc_now
        self.feed = feed or TransactionFeed(db)
        self.store = store or RecommendationStore(db, clock=self.clock)
        self.generator = generator or RecommendationGenerator(ai_service)
        self.locks = locks or user_locks

    async def get_current(self, user_id: str) -> Optional[Recommendation]:
        """
        Current valid recommendation, or None.

        The store already filters on activity and expiry; validity is checked
        again here against this service's clock.
        """
        recommendation = self.store.find_active_for_user(user_id)
        if recommendation and recommendation.is_valid(self.clock()):
            return recommendation
        return None

    async def require_current(self, user_id: str) -> Recommendation:
        """Like get_current but raises NotFoundError when there is none."""
        recommendation = await self.get_current(user_id)
        if recommendation is None:
            raise NotFoundError(user_id)
        return recommendation

    async def can_generate(self, user_id: str) -> bool:
        """True when the user has no valid recommendation."""
        return await self.get_current(user_id) is None

    @timed("recommendation.generate")
    async def generate(self, user_id: str, force: bool = False) -> Recommendation:
        """
        Generate and store a new recommendation from the last 7 days.

        Args:
            user_id: Authenticated user.
            force: Skip the 24h check and replace the current recommendation.

        Returns:
            The newly stored, active Recommendation.

        Raises:
            ThrottledError: A valid recommendation exists and force is False.
            StorageError: The store or transaction feed failed.
        """
        async with self.locks.get(user_id):
            if not force:
                current = await self.get_current(user_id)
                if current is not None:
                    retry_after_ms = current.milliseconds_until_expiration(self.clock())
                    log_recommendation_throttled(user_id, retry_after_ms)
                    raise ThrottledError(current.expires_at, retry_after_ms)

            since = self.clock() - ANALYSIS_WINDOW
            transactions = self.feed.list_transactions(user_id, since)

            if not transactions:
                analysis = TransactionAnalysis.empty()
                generated = self.generator.no_transactions_text()
            else:
                analysis = analyze_transactions(transactions)
                generated = await self.generator.generate(transactions, analysis)

            draft = RecommendationDraft(
                user_id=user_id,
                recommendation_text=generated.text,
                transaction_count=analysis.transaction_count,
                total_amount=analysis.total_amount,
                analysis=analysis.to_snapshot(),
                metadata={"generated_by": generated.source, "version": GENERATOR_VERSION},
            )
            recommendation = self.store.replace_active(user_id, draft)

        log_recommendation_generated(user_id, analysis.transaction_count, generated.source, force)
        return recommendation

    async def force_refresh(self, user_id: str) -> Recommendation:
        """Generate regardless of the current recommendation."""
        logger.info("Force refreshing recommendation", user=user_id)
        return await self.generate(user_id, force=True)

    async def get_or_generate(self, user_id: str) -> Optional[Recommendation]:
        """Current recommendation, generating one if the user is allowed to."""
        recommendation = await self.get_current(user_id)
        if recommendation is not None:
            return recommendation

        if await self.can_generate(user_id):
            try:
                return await self.generate(user_id)
            except ThrottledError:
                # Another request generated first
                return await self.get_current(user_id)
        return None

    async def get_stats(self, user_id: str) -> dict:
        """Counters and timing for the user's recommendations."""
        total = self.store.count_for_user(user_id)
        current = await self.get_current(user_id)

        return {
            "total_generated": total,
            "has_active": current is not None,
            "time_until_next_ms": (
                current.milliseconds_until_expiration(self.clock()) if current else None
            ),
            "can_generate_new": current is None,
            "last_generated_at": current.generated_at if current else None,
        }

    def to_view(self, recommendation: Recommendation) -> RecommendationView:
        """Response shape with expiry fields evaluated now."""
        now = self.clock()
        analysis = recommendation.analysis or {}
        return RecommendationView(
            id=recommendation.id,
            recommendation_text=recommendation.recommendation_text,
            transaction_count=recommendation.transaction_count,
            total_amount=recommendation.total_amount,
            analysis=AnalysisSnapshot(**analysis),
            generated_at=recommendation.generated_at,
            expires_at=recommendation.expires_at,
            milliseconds_until_expiration=recommendation.milliseconds_until_expiration(now),
            is_valid=recommendation.is_valid(now),
        )
