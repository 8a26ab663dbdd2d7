"""Pydantic request/response schemas for type safety."""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


# Request schemas
class GenerateRequest(BaseModel):
    force: bool = Field(False, description="Replace the current recommendation even if still valid")


# Response schemas
class AnalysisSnapshot(BaseModel):
    period: str
    category_totals: dict[str, float] = {}
    top_category: str
    balance: float


class RecommendationView(BaseModel):
    id: str
    recommendation_text: str
    transaction_count: int
    total_amount: float
    analysis: AnalysisSnapshot
    generated_at: datetime
    expires_at: datetime
    milliseconds_until_expiration: int
    is_valid: bool

    class Config:
        from_attributes = True


class RecommendationStats(BaseModel):
    total_generated: int
    has_active: bool
    time_until_next_ms: Optional[int] = None
    can_generate_new: bool
    last_generated_at: Optional[datetime] = None


class CanGenerateResponse(RecommendationStats):
    can_generate: bool


class HealthResponse(BaseModel):
    status: str
    database: str
    openai: str
