import os

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from database import session_scope
from services import RecommendationStore
from services.observability import logger, metrics


class PurgeScheduler:
    """Periodically deletes expired recommendations."""

    def __init__(self, interval_minutes: int | None = None) -> None:
        self.interval_minutes = interval_minutes or int(
            os.getenv("RECOMMENDATION_PURGE_INTERVAL_MINUTES", "60")
        )
        self.scheduler = BackgroundScheduler(timezone="UTC")

    def _run_job(self, source: str = "manual") -> int:
        with session_scope() as session:
            deleted = RecommendationStore(session).purge_expired()
        logger.info("purge_expired", source=source, deleted=deleted)
        metrics.increment("recommendations.purged", deleted)
        return deleted

    def start(self) -> None:
        trigger = IntervalTrigger(minutes=self.interval_minutes)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["interval"],
            id="purge_expired_recommendations",
            replace_existing=True,
            misfire_grace_time=300,
        )
        self.scheduler.start()
        logger.info("Purge scheduler started", interval_minutes=self.interval_minutes)

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Purge scheduler stopped")
