"""
Module: observability.py
Description: Logging and metrics tracking for the recommendations back end.

Features:
    - key=value structured log lines
    - Timing decorator for async workflow steps
    - In-memory counters and latency summaries served by /metrics

Usage:
    from services.observability import logger, metrics, timed

    @timed("recommendation.generate")
    async def generate(user_id):
        logger.info("Generating", user=user_id)
        ...

Author: Smart Financial Coach Team
"""

import os
import time
import logging
import functools
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Callable
from collections import defaultdict


# Timing samples kept per metric
MAX_TIMING_SAMPLES = 1000


# =============================================================================
# Structured Logger
# =============================================================================

class StructuredLogger:
    """Logger that appends key=value fields to every message."""

    def __init__(self, name: str = "recommendations"):
        self.logger = logging.getLogger(name)
        level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
        self.logger.setLevel(level)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(level)
            handler.setFormatter(logging.Formatter(
                '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            self.logger.addHandler(handler)

    @staticmethod
    def _format(message: str, fields: Dict[str, Any]) -> str:
        if not fields:
            return message
        return message + " | " + " | ".join(f"{k}={v}" for k, v in fields.items())

    def info(self, message: str, **fields) -> None:
        self.logger.info(self._format(message, fields))

    def warning(self, message: str, **fields) -> None:
        self.logger.warning(self._format(message, fields))

    def error(self, message: str, **fields) -> None:
        self.logger.error(self._format(message, fields))

    def debug(self, message: str, **fields) -> None:
        self.logger.debug(self._format(message, fields))

    def exception(self, message: str, **fields) -> None:
        """Error with the active traceback."""
        self.logger.exception(self._format(message, fields))


# =============================================================================
# Metrics Collector
# =============================================================================

class MetricsCollector:
    """
    Process-local counters and timing samples.

    Counters may be tagged; the tag set becomes part of the key, e.g.
    ``recommendations.generated:source=fallback``.
    """

    def __init__(self):
        self.counters: Dict[str, int] = defaultdict(int)
        self.timings: Dict[str, list] = defaultdict(list)
        self._start_time = datetime.now(timezone.utc)

    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        self.counters[self._key(name, tags)] += value

    def timing(self, name: str, duration_ms: float) -> None:
        samples = self.timings[name]
        samples.append(duration_ms)
        if len(samples) > MAX_TIMING_SAMPLES:
            del samples[:-MAX_TIMING_SAMPLES]

    @staticmethod
    def _key(name: str, tags: Optional[Dict[str, str]]) -> str:
        if not tags:
            return name
        return name + ":" + ",".join(f"{k}={v}" for k, v in sorted(tags.items()))

    def get_summary(self) -> Dict[str, Any]:
        """Counters plus count/avg/min/max/p50 per timing."""
        timings = {}
        for name, values in self.timings.items():
            if not values:
                continue
            ordered = sorted(values)
            timings[name] = {
                "count": len(ordered),
                "avg_ms": sum(ordered) / len(ordered),
                "min_ms": ordered[0],
                "max_ms": ordered[-1],
                "p50_ms": ordered[len(ordered) // 2],
            }

        return {
            "uptime_seconds": (datetime.now(timezone.utc) - self._start_time).total_seconds(),
            "counters": dict(self.counters),
            "timings": timings,
        }


# =============================================================================
# Timing Decorator
# =============================================================================

def timed(name: str):
    """
    Time an async function and count its successes and errors.

    Args:
        name: Metric name; counters are ``<name>.success`` and ``<name>.error``.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception:
                metrics.increment(f"{name}.error")
                raise
            finally:
                metrics.timing(name, (time.perf_counter() - start) * 1000)
            metrics.increment(f"{name}.success")
            return result
        return wrapper

    return decorator


# =============================================================================
# Global Instances
# =============================================================================

logger = StructuredLogger()

metrics = MetricsCollector()


# =============================================================================
# Convenience Functions
# =============================================================================

def log_recommendation_generated(user_id: str, transaction_count: int, source: str, forced: bool) -> None:
    """Log a freshly stored recommendation."""
    logger.info(
        "Generated new recommendation",
        user=user_id,
        transactions=transaction_count,
        source=source,
        forced=forced,
    )
    metrics.increment("recommendations.generated", tags={"source": source})


def log_recommendation_throttled(user_id: str, retry_after_ms: int) -> None:
    """Log a generation attempt rejected by the 24h window."""
    logger.info("Recommendation throttled", user=user_id, retry_after_ms=retry_after_ms)
    metrics.increment("recommendations.throttled")


def log_ai_fallback(reason: str) -> None:
    """Log a switch to the deterministic fallback text."""
    logger.warning("AI recommendation unavailable, using fallback", reason=reason)
    metrics.increment("recommendations.fallback")


def log_openai_call(model: str, tokens: int, duration_ms: float) -> None:
    """Log an OpenAI API call."""
    logger.debug("OpenAI API call", model=model, tokens=tokens, duration_ms=f"{duration_ms:.2f}")
    metrics.increment("openai.calls")
    metrics.increment("openai.tokens", tokens)
    metrics.timing("openai.latency", duration_ms)
