# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""
FastAPI main application for the video catalog search API.
Wires the database, Redis cache, and Elasticsearch index into the search orchestrator.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict

import redis.asyncio as redis
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from pydantic import BaseModel
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from libs.api.response import register_error_handlers
from libs.common.config import get_settings
from libs.common.database import DatabaseManager
from libs.search.analytics import SearchAnalytics
from libs.search.cache import SearchCache
from libs.search.engine import SearchOrchestrator
from libs.search.index import VideoIndex
from libs.search.store import VideoStore

from .search_routes import router as search_router

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.monitoring.log_level,
    format=settings.monitoring.log_format,
)
logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response model"""
    status: str
    timestamp: datetime
    version: str
    services: Dict[str, Dict[str, Any]]


# Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Request logging and timing middleware"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            duration = (time.time() - start_time) * 1000
            logger.error(f"{request.method} {request.url.path} - Error in {duration:.1f}ms: {e}")
            raise

        duration = (time.time() - start_time) * 1000
        logger.info(f"{request.method} {request.url.path} - {response.status_code} in {duration:.1f}ms")
        response.headers["X-Response-Time"] = f"{duration:.1f}ms"
        return response


# Application lifecycle
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""

    logger.info(f"Starting {settings.app_name}...")

    db_manager = DatabaseManager(settings.database.url, echo=settings.database.echo)
    await db_manager.create_tables()
    logger.info("Database manager initialized")

    redis_client = redis.from_url(
        settings.redis.url,
        max_connections=settings.redis.max_connections,
        socket_timeout=settings.redis.socket_timeout,
        socket_connect_timeout=settings.redis.socket_connect_timeout,
        decode_responses=True,
    )
    cache = SearchCache(redis_client, enabled=settings.search.cache_results)

    index = VideoIndex.from_settings(settings)
    analytics = SearchAnalytics(db_manager)

    app.state.db_manager = db_manager
    app.state.index = index
    app.state.cache = cache
    app.state.analytics = analytics
    app.state.orchestrator = SearchOrchestrator(
        VideoStore(db_manager), index, cache, analytics, settings.search
    )
    logger.info(f"{settings.app_name} started successfully")

    try:
        yield
    finally:
        logger.info(f"Shutting down {settings.app_name}...")
        await index.close()
        await cache.close()
        await db_manager.close()
        logger.info(f"{settings.app_name} shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Video catalog search with Elasticsearch and database fallback",
    version=settings.app_version,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)
register_error_handlers(app)

app.include_router(search_router, prefix=settings.api_prefix)


@app.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint"""

    services: Dict[str, Dict[str, Any]] = {}

    db_manager = getattr(request.app.state, "db_manager", None)
    try:
        async with db_manager.session() as session:
            await session.execute(text("SELECT 1"))
        services["database"] = {"status": "healthy"}
    except Exception as e:
        services["database"] = {"status": "unhealthy", "error": str(e)}

    index = getattr(request.app.state, "index", None)
    if index is not None and await index.ping():
        services["search"] = {"status": "healthy", "backend": "elasticsearch"}
    else:
        # Searches are still served from the database
        services["search"] = {"status": "degraded", "backend": "database"}

    cache = getattr(request.app.state, "cache", None)
    try:
        await cache.redis.ping()
        services["cache"] = {"status": "healthy"}
    except Exception as e:
        services["cache"] = {"status": "degraded", "error": str(e)}

    overall_status = "healthy"
    if services["database"]["status"] != "healthy":
        overall_status = "unhealthy"
    elif any(s["status"] != "healthy" for s in services.values()):
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        timestamp=datetime.utcnow(),
        version=settings.app_version,
        services=services,
    )


if __name__ == "__main__":
    uvicorn.run(
        "apps.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )
