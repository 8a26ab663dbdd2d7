"""Exceptions raised by the recommendation services."""

from datetime import datetime
from typing import Optional


class RecommendationError(Exception):
    """Base class for recommendation workflow errors."""


class ThrottledError(RecommendationError):
    """A valid recommendation exists and generation was not forced."""

    def __init__(self, expires_at: datetime, retry_after_ms: int):
        self.expires_at = expires_at
        self.retry_after_ms = retry_after_ms
        super().__init__(
            "Cannot generate recommendation yet. Please wait 24 hours since last recommendation."
        )


class NotFoundError(RecommendationError):
    """No active recommendation for the user."""

    def __init__(self, user_id: Optional[str] = None):
        self.user_id = user_id
        super().__init__("No active recommendation found")


class InvalidInputError(RecommendationError, ValueError):
    """Malformed transaction handed to the analyzer."""


class ExternalServiceError(RecommendationError):
    """Text-generation service failed, timed out or returned nothing."""


class StorageError(RecommendationError):
    """The recommendation store could not complete an operation."""
