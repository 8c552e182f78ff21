"""
FastAPI Serving Layer for the Explore Feed

Exposes feed pages, personalized ranking, engagement recording and
feed sessions over HTTP.
"""

import logging
import os
import time
from typing import List, Dict, Any, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from ..config import load_config
from ..core.engine import ExploreFeedService, create_feed_service
from ..core.exceptions import FeedValidationError, EngagementRecordError
from ..core.models import (
    EngagementSignal, EngagementType, FeedOptions, FeedRequestContext, FilterSet, GeoPoint, PriceRange
)
from ..storage.profile_store import InMemoryPreferenceStore
from ..storage.repository import InMemoryContentRepository


# Pydantic models for API
class GeoPointModel(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class FilterSetModel(BaseModel):
    """Active feed filters"""
    property_types: List[str] = Field(default_factory=list)
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    lifestyle_categories: List[str] = Field(default_factory=list)
    locations: List[str] = Field(default_factory=list)

    def to_filter_set(self) -> FilterSet:
        price_range = None
        if self.price_min is not None or self.price_max is not None:
            price_range = PriceRange(self.price_min, self.price_max)
        return FilterSet(
            property_types=frozenset(self.property_types),
            price_range=price_range,
            lifestyle_categories=frozenset(self.lifestyle_categories),
            locations=frozenset(self.locations),
        )


class PersonalizedFeedRequestModel(BaseModel):
    """Request model for the personalized feed"""
    user_id: Optional[int] = Field(None, description="User identifier; omit for guests")
    session_history: List[int] = Field(default_factory=list, description="Content already shown")
    location: Optional[GeoPointModel] = None
    filters: Optional[FilterSetModel] = None
    limit: Optional[int] = Field(None, description="Page size; configured default when omitted")


class EngagementModel(BaseModel):
    """Model for engagement signals"""
    user_id: int = Field(..., description="User identifier")
    content_id: int = Field(..., description="Content identifier")
    engagement_type: str = Field(..., description="Type of engagement")
    watch_time: Optional[float] = Field(None, ge=0, description="Watch time in seconds")
    completed: bool = False
    session_id: Optional[int] = None


class SessionModel(BaseModel):
    user_id: int
    device_type: Optional[str] = None


class HealthResponseModel(BaseModel):
    """Health check response model"""
    status: str
    timestamp: float
    version: str = "1.0.0"
    components: Dict[str, str] = Field(default_factory=dict)


# Global instance
feed_service: Optional[ExploreFeedService] = None


def build_default_service() -> ExploreFeedService:
    """Build a service over in-memory stores using the configured settings"""
    config = load_config(os.environ.get("EXPLORE_FEED_CONFIG"))
    repository = InMemoryContentRepository()
    return create_feed_service(repository, InMemoryPreferenceStore(repository), config=config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan"""
    global feed_service

    logging.info("Starting Explore Feed API...")

    owns_service = feed_service is None
    if owns_service:
        feed_service = build_default_service()
    await feed_service.start()

    logging.info("API startup complete")

    yield

    logging.info("Shutting down API...")

    await feed_service.shutdown()
    if owns_service:
        feed_service = None

    logging.info("API shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Explore Feed Engine",
    description="Personalized and type-scoped property content feeds",
    version="1.0.0",
    lifespan=lifespan
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

logger = logging.getLogger(__name__)


def get_service() -> ExploreFeedService:
    if not feed_service:
        raise HTTPException(status_code=503, detail="Feed service not initialized")
    return feed_service


def parse_id_list(value: Optional[str]) -> List[int]:
    if not value:
        return []
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise FeedValidationError(
            "session_history must be a comma-separated list of integers", parameter="session_history"
        ) from None


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Explore Feed Engine",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


@app.get("/feed/categories")
async def get_categories():
    """Category names accepted by the category feed"""
    service = get_service()
    return {"categories": service.get_categories()}


@app.get("/feed/{feed_type}")
async def get_feed(
    feed_type: str,
    user_id: Optional[int] = Query(None),
    limit: Optional[int] = Query(None, description="Page size; configured default when omitted"),
    offset: int = Query(0),
    location: Optional[str] = Query(None, description="City, suburb or province"),
    category: Optional[str] = Query(None),
    agent_id: Optional[int] = Query(None),
    developer_id: Optional[int] = Query(None),
    agency_id: Optional[int] = Query(None),
    include_agent_content: bool = Query(True),
    session_history: Optional[str] = Query(None, description="Comma-separated content ids"),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180)
):
    """
    Get a feed page by type

    Supported types: recommended, area, category, agent, developer, agency.
    Missing required parameters are rejected with 400.
    """
    service = get_service()

    options = FeedOptions(
        user_id=user_id,
        limit=service.config.default_limit if limit is None else limit,
        offset=offset,
        location=location,
        category=category,
        agent_id=agent_id,
        developer_id=developer_id,
        agency_id=agency_id,
        include_agent_content=include_agent_content,
        session_history=parse_id_list(session_history),
        coordinates=GeoPoint(lat, lng) if lat is not None and lng is not None else None,
    )

    start_time = time.time()
    try:
        result = await service.get_feed(feed_type, options)
    except FeedValidationError:
        raise
    except Exception as e:
        logger.error(f"Error generating {feed_type} feed: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    total_time_ms = (time.time() - start_time) * 1000
    if total_time_ms > service.config.slow_feed_ms:
        logger.warning(f"Slow feed request: {total_time_ms:.2f}ms for {feed_type}")

    return result.to_dict()


@app.post("/feed/personalized")
async def get_personalized_feed(request: PersonalizedFeedRequestModel):
    """Ranked content for a user without sponsorship overlay"""
    service = get_service()
    limit = service.config.default_limit if request.limit is None else request.limit

    context = FeedRequestContext(
        user_id=request.user_id,
        session_history=frozenset(request.session_history),
        location=GeoPoint(request.location.lat, request.location.lng) if request.location else None,
        filters=request.filters.to_filter_set() if request.filters else None,
        limit=limit,
    )

    try:
        items = await service.get_personalized_feed(context, limit)
    except FeedValidationError:
        raise
    except Exception as e:
        logger.error(f"Error generating personalized feed for user {request.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "userId": request.user_id,
        "items": [item.to_dict() for item in items],
        "count": len(items),
    }


@app.post("/engagements")
async def record_engagement(engagement: EngagementModel):
    """
    Record an engagement signal

    Completion and save signals update the user's learned preferences.
    """
    service = get_service()

    try:
        engagement_type = EngagementType(engagement.engagement_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid engagement type: {e}")

    signal = EngagementSignal(
        content_id=engagement.content_id,
        engagement_type=engagement_type,
        watch_time=engagement.watch_time,
        completed=engagement.completed,
    )

    try:
        await service.record_engagement(
            engagement.user_id, engagement.content_id, signal, engagement.session_id
        )
    except EngagementRecordError as e:
        logger.error(f"Error recording engagement: {e}")
        raise HTTPException(status_code=500, detail="Failed to record engagement")

    return {
        "status": "success",
        "message": "Engagement recorded",
        "timestamp": time.time()
    }


@app.get("/users/{user_id}/profile")
async def get_user_profile(user_id: int):
    service = get_service()
    profile = await service.get_user_profile(user_id)
    return profile.to_dict()


@app.post("/sessions")
async def create_session(session: SessionModel):
    service = get_service()
    session_id = await service.create_feed_session(session.user_id, session.device_type)
    return {"sessionId": session_id}


@app.post("/sessions/{session_id}/close")
async def close_session(session_id: int):
    service = get_service()
    session = await service.close_feed_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session.to_dict()


@app.delete("/cache/feeds/{feed_type}")
async def invalidate_feed_cache(
    feed_type: str,
    scope: Optional[str] = Query(None, description="Comma-separated leading key parameters")
):
    """Invalidate cached pages of a feed type by key prefix"""
    service = get_service()
    params = [part for part in (scope or "").split(",") if part]
    try:
        removed = await service.invalidate_feed(feed_type, *params)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown feed type: {feed_type}")
    return {"removed": removed}


@app.get("/health", response_model=HealthResponseModel)
async def health_check():
    """Health of the feed service, its cache and its repository"""
    if not feed_service:
        return HealthResponseModel(
            status="unhealthy",
            timestamp=time.time(),
            components={"feed_service": "not_initialized"}
        )

    try:
        health = await feed_service.health_check()
        return HealthResponseModel(
            status=health["status"],
            timestamp=health["timestamp"],
            components=health["components"]
        )
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return HealthResponseModel(
            status="unhealthy",
            timestamp=time.time(),
            components={"error": str(e)}
        )


@app.get("/metrics")
async def get_metrics():
    """Feed latency, error and cache statistics"""
    service = get_service()
    return {
        "timestamp": time.time(),
        "feed_service": service.get_statistics(),
    }


# Exception handlers
@app.exception_handler(FeedValidationError)
async def feed_validation_exception_handler(request: Request, exc: FeedValidationError):
    """Handle rejected feed parameters"""
    return JSONResponse(
        status_code=400,
        content={
            "error": str(exc),
            "parameter": exc.parameter,
            "timestamp": time.time(),
            "path": str(request.url)
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "timestamp": time.time(),
            "path": str(request.url)
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "timestamp": time.time(),
            "path": str(request.url)
        }
    )


def main():
    """Main entry point for running the API server"""
    import argparse

    parser = argparse.ArgumentParser(description="Explore Feed Engine API")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--workers", type=int, default=1, help="Number of worker processes")
    parser.add_argument("--config", default=None, help="Path to a YAML feed configuration")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.config:
        os.environ["EXPLORE_FEED_CONFIG"] = args.config

    uvicorn.run(
        "explore_feed.serving.api:app",
        host=args.host,
        port=args.port,
        workers=args.workers,
        log_level="info",
        access_log=True
    )


if __name__ == "__main__":
    main()
