"""Backend services for daily financial recommendations."""

from .ai_service import AIService
from .errors import (
    RecommendationError, ThrottledError, NotFoundError,
    InvalidInputError, ExternalServiceError, StorageError
)
from .transaction_analyzer import (
    TransactionAnalysis, analyze_transactions, categorize_description
)
from .transaction_feed import TransactionFeed
from .recommendation_generator import RecommendationGenerator, GeneratedText
from .recommendation_store import RecommendationStore, RecommendationDraft
from .recommendation_service import RecommendationService, UserLockRegistry

__all__ = [
    "AIService",
    "RecommendationError",
    "ThrottledError",
    "NotFoundError",
    "InvalidInputError",
    "ExternalServiceError",
    "StorageError",
    "TransactionAnalysis",
    "analyze_transactions",
    "categorize_description",
    "TransactionFeed",
    "RecommendationGenerator",
    "GeneratedText",
    "RecommendationStore",
    "RecommendationDraft",
    "RecommendationService",
    "UserLockRegistry",
]
