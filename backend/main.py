"""
Module: main.py
Description: FastAPI application entry point for daily AI financial recommendations.

This module provides REST API endpoints for:
    - Fetching the user's current recommendation
    - Generating a new recommendation (once every 24 hours)
    - Checking generation eligibility and statistics
    - Force-refreshing a recommendation outside production

Author: Smart Financial Coach Team

Dependencies:
    - FastAPI for REST API framework
    - SQLAlchemy for database operations
    - OpenAI for recommendation text
    - APScheduler for purging expired recommendations

Usage:
    uvicorn main:app --reload --host 0.0.0.0 --port 8000
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session as DBSession

from auth import get_current_user
from database import get_db, init_db
from scheduler import PurgeScheduler
from schemas import (
    GenerateRequest, RecommendationView, RecommendationStats,
    CanGenerateResponse, HealthResponse
)
from services import (
    AIService, RecommendationService,
    ThrottledError, NotFoundError, StorageError, InvalidInputError
)
from services.observability import logger, metrics


ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
PURGE_SCHEDULER_ENABLED = os.getenv("RECOMMENDATION_PURGE_ENABLED", "true").lower() == "true"


# =============================================================================
# Application Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    On startup: create tables and start the expired-recommendation purge.
    On shutdown: stop the purge scheduler.
    """
    logger.info("Starting recommendations API", environment=ENVIRONMENT)
    init_db()

    purge_scheduler = PurgeScheduler() if PURGE_SCHEDULER_ENABLED else None
    if purge_scheduler:
        purge_scheduler.start()

    yield

    if purge_scheduler:
        purge_scheduler.stop()
    logger.info("Shutting down recommendations API")


# =============================================================================
# FastAPI Application Configuration
# =============================================================================

app = FastAPI(
    title="Recommendations API",
    description="""
    Daily AI-generated financial advice based on the user's last 7 days of transactions.

    ## Features
    - One recommendation per user every 24 hours
    - Template fallback when the AI service is unavailable
    - Eligibility and statistics endpoints
    """,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS", "http://localhost:5173,http://localhost:3000"
        ).split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error Handling
# =============================================================================

@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure", path=request.url.path, error=str(exc))
    metrics.increment("api.storage_errors")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal error while accessing recommendations."},
    )


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    logger.warning("Invalid transaction data", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)},
    )


def throttled_exception(exc: ThrottledError) -> HTTPException:
    """429 carrying when the user may generate again."""
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={
            "message": str(exc),
            "can_generate_at": exc.expires_at.isoformat(),
            "time_until_next_ms": exc.retry_after_ms,
        },
        headers={"Retry-After": str(max(1, -(-exc.retry_after_ms // 1000)))},
    )


# =============================================================================
# Dependency Injection
# =============================================================================

def get_ai_service() -> AIService:
    """Dependency: Provide AIService instance."""
    return AIService()


def get_recommendation_service(
    db: DBSession = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service),
) -> RecommendationService:
    """Dependency: Provide RecommendationService bound to the request session."""
    return RecommendationService(db, ai_service)


# =============================================================================
# System Endpoints
# =============================================================================

@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["System"],
    summary="Health check endpoint",
)
async def health_check(
    db: DBSession = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service)
) -> HealthResponse:
    """Report database and OpenAI connectivity."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)}"

    try:
        openai_connected = await ai_service.check_connection()
        openai_status = "connected" if openai_connected else "disconnected"
    except Exception as e:
        openai_status = f"error: {str(e)}"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return HealthResponse(
        status=overall_status,
        database=db_status,
        openai=openai_status
    )


@app.get("/metrics", tags=["System"], summary="Get application metrics")
async def get_metrics():
    """Counters and timing data collected in this process."""
    return metrics.get_summary()


# =============================================================================
# Recommendation Endpoints
# =============================================================================

@app.get(
    "/recommendations/current",
    response_model=RecommendationView,
    tags=["Recommendations"],
    summary="Get the current recommendation",
)
async def get_current_recommendation(
    user_id: str = Depends(get_current_user),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationView:
    """
    Return the user's valid recommendation.

    Raises:
        HTTPException: 404 if there is no valid recommendation.
    """
    try:
        recommendation = await service.require_current(user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return service.to_view(recommendation)


@app.post(
    "/recommendations/generate",
    response_model=RecommendationView,
    status_code=status.HTTP_201_CREATED,
    tags=["Recommendations"],
    summary="Generate a new recommendation",
)
async def generate_recommendation(
    request: GenerateRequest | None = None,
    user_id: str = Depends(get_current_user),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationView:
    """
    Generate a recommendation from the last 7 days of transactions.

    Raises:
        HTTPException: 429 if a valid recommendation exists and force is false.
    """
    force = request.force if request else False
    try:
        recommendation = await service.generate(user_id, force=force)
    except ThrottledError as e:
        raise throttled_exception(e)

    return service.to_view(recommendation)


@app.get(
    "/recommendations/can-generate",
    response_model=CanGenerateResponse,
    tags=["Recommendations"],
    summary="Check whether a new recommendation can be generated",
)
async def can_generate_recommendation(
    user_id: str = Depends(get_current_user),
    service: RecommendationService = Depends(get_recommendation_service),
) -> CanGenerateResponse:
    can_generate = await service.can_generate(user_id)
    stats = await service.get_stats(user_id)
    return CanGenerateResponse(can_generate=can_generate, **stats)


@app.get(
    "/recommendations/stats",
    response_model=RecommendationStats,
    tags=["Recommendations"],
    summary="Recommendation statistics",
)
async def get_recommendation_stats(
    user_id: str = Depends(get_current_user),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationStats:
    return RecommendationStats(**await service.get_stats(user_id))


@app.post(
    "/recommendations/force-refresh",
    response_model=RecommendationView,
    status_code=status.HTTP_201_CREATED,
    tags=["Recommendations"],
    summary="Force a new recommendation (non-production only)",
)
async def force_refresh_recommendation(
    user_id: str = Depends(get_current_user),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationView:
    """
    Replace the current recommendation regardless of the 24h window.

    Raises:
        HTTPException: 403 in production.
    """
    if ENVIRONMENT == "production":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Force refresh is not allowed in production",
        )

    recommendation = await service.force_refresh(user_id)
    return service.to_view(recommendation)


@app.get(
    "/recommendations",
    response_model=RecommendationView,
    tags=["Recommendations"],
    summary="Get or generate a recommendation",
)
async def get_or_generate_recommendation(
    user_id: str = Depends(get_current_user),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationView:
    """
    Return the current recommendation, generating one when allowed.

    Raises:
        HTTPException: 404 if nothing is available and generation is not allowed.
    """
    recommendation = await service.get_or_generate(user_id)
    if recommendation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No recommendation available and cannot generate new one yet",
        )

    return service.to_view(recommendation)


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
