"""Video search HTTP routes."""

import logging
from datetime import date
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError

from libs.api.response import ApiResponse
from libs.search.analytics import SearchAnalytics
from libs.search.engine import SearchOrchestrator
from libs.search.filters import normalize
from libs.search.models import (
    DurationBucket,
    PopularQuery,
    SavedSearchCreate,
    SavedSearchResponse,
    SearchFilterBlob,
    SearchHistoryEntry,
    SearchRequest,
    SearchResponse,
    SortOption,
    Suggestions,
    TagCount,
    VideoResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])


# Dependency injection
async def get_orchestrator(request: Request) -> SearchOrchestrator:
    """Get search orchestrator"""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Search service not available")
    return orchestrator


async def get_analytics(request: Request) -> SearchAnalytics:
    """Get search analytics recorder"""
    analytics = getattr(request.app.state, "analytics", None)
    if analytics is None:
        raise HTTPException(status_code=503, detail="Search analytics not available")
    return analytics


def _service_unavailable(error: Exception) -> HTTPException:
    logger.error(f"Search analytics storage failed: {error}")
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(error))


@router.get("/search", response_model=SearchResponse)
async def search_videos(
    q: Optional[str] = Query(None, max_length=200, description="Search query text"),
    category: Optional[str] = Query(None),
    duration: Optional[DurationBucket] = Query(None, description="short, medium or long"),
    min_duration: Optional[int] = Query(None, alias="minDuration", ge=0),
    max_duration: Optional[int] = Query(None, alias="maxDuration", ge=0),
    upload_date_from: Optional[date] = Query(None, alias="uploadDateFrom"),
    upload_date_to: Optional[date] = Query(None, alias="uploadDateTo"),
    resolution: Optional[str] = Query(None),
    tags: Optional[List[str]] = Query(None, description="Repeated or comma-separated tags"),
    sort: SortOption = Query(SortOption.RELEVANCE),
    page: int = Query(1, ge=1),
    page_size: int = Query(12, alias="pageSize", ge=1, le=100),
    within: Optional[str] = Query(None, max_length=200, description="Search within results"),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
) -> SearchResponse:
    """Search videos"""

    tag_values = [part for item in tags or [] for part in item.split(",")]
    filters = normalize({
        "category": category,
        "duration": duration.value if duration else None,
        "minDuration": min_duration,
        "maxDuration": max_duration,
        "uploadDateFrom": upload_date_from,
        "uploadDateTo": upload_date_to,
        "resolution": resolution,
        "tags": tag_values,
    })

    request = SearchRequest(
        query=q or "",
        filters=filters,
        sort=sort,
        page=page,
        page_size=page_size,
        within=within,
    )

    return await orchestrator.search(request)


@router.get("/search/suggestions", response_model=Suggestions)
async def search_suggestions(
    q: str = Query("", max_length=100),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
) -> Suggestions:
    """Autocomplete tags and popular searches"""
    return await orchestrator.suggest(q)


@router.get("/search/popular", response_model=List[PopularQuery])
async def popular_searches(
    limit: int = Query(10, ge=1, le=50),
    analytics: SearchAnalytics = Depends(get_analytics),
) -> List[PopularQuery]:
    """Most frequent search queries"""
    try:
        return await analytics.popular(limit)
    except SQLAlchemyError as e:
        raise _service_unavailable(e)


@router.get("/search/recent", response_model=List[SearchHistoryEntry])
async def recent_searches(
    limit: int = Query(10, ge=1, le=50),
    analytics: SearchAnalytics = Depends(get_analytics),
) -> List[SearchHistoryEntry]:
    """Latest executed searches"""
    try:
        return await analytics.recent(limit)
    except SQLAlchemyError as e:
        raise _service_unavailable(e)


@router.post(
    "/search/save",
    response_model=ApiResponse[SavedSearchResponse],
    status_code=status.HTTP_201_CREATED,
)
async def save_search(
    payload: SavedSearchCreate,
    analytics: SearchAnalytics = Depends(get_analytics),
):
    """Save a named search"""

    blob = SearchFilterBlob(
        filters=normalize(payload.filters),
        sort=payload.sort,
        within=payload.within,
    )
    try:
        saved = await analytics.save_search(payload.name, payload.query, blob)
    except SQLAlchemyError as e:
        raise _service_unavailable(e)
    return ApiResponse.ok(data=saved, message="Search saved")


@router.get("/search/saved", response_model=ApiResponse[List[SavedSearchResponse]])
async def list_saved_searches(analytics: SearchAnalytics = Depends(get_analytics)):
    """List saved searches, most recently updated first"""
    try:
        saved = await analytics.list_saved_searches()
    except SQLAlchemyError as e:
        raise _service_unavailable(e)
    return ApiResponse.ok(data=saved)


@router.get("/search/saved/{saved_search_id}", response_model=ApiResponse[SavedSearchResponse])
async def get_saved_search(
    saved_search_id: int,
    analytics: SearchAnalytics = Depends(get_analytics),
):
    """Get one saved search"""
    try:
        saved = await analytics.get_saved_search(saved_search_id)
    except SQLAlchemyError as e:
        raise _service_unavailable(e)

    if saved is None:
        raise HTTPException(status_code=404, detail="Saved search not found")
    return ApiResponse.ok(data=saved)


@router.get("/categories", response_model=Dict[str, List[str]])
async def list_categories(orchestrator: SearchOrchestrator = Depends(get_orchestrator)):
    """Distinct video categories"""
    return {"categories": await orchestrator.categories()}


@router.get("/tags/popular", response_model=List[TagCount])
async def popular_tags(
    limit: int = Query(30, ge=1, le=100),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
) -> List[TagCount]:
    """Tags carried by the most videos, for the filter panel"""
    return await orchestrator.popular_tags(limit)


@router.get("/{video_id}/related", response_model=List[VideoResponse])
async def related_videos(
    video_id: int,
    limit: int = Query(6, ge=1, le=24),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
) -> List[VideoResponse]:
    """Videos related to video_id; unknown ids are a 404"""
    return await orchestrator.related(video_id, limit)
