# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""
Search orchestration with Elasticsearch primary path and database fallback.
Checks the result cache, queries the index, hydrates hits from the database,
and records every execution in the search history.
"""

import asyncio
import logging
import time
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from libs.common.config import SearchSettings, get_settings
from libs.search.analytics import SearchAnalytics
from libs.search.cache import build_key
from libs.search.errors import IndexUnavailableError, SearchServiceError
from libs.search.fallback import build_predicate
from libs.search.hydrator import ResultHydrator
from libs.search.models import (
    SearchFilterBlob,
    SearchRequest,
    SearchResponse,
    SearchResultItem,
    Suggestions,
    TagCount,
    VideoResponse,
)
from libs.search.query_builder import build_engine_query
from libs.search.related import RelatedVideoFinder
from libs.search.suggest import SuggestionService

logger = logging.getLogger(__name__)

SEARCH_ENDPOINT = "/v1/videos/search"

# Database failures that end a request
STORE_ERRORS = (SQLAlchemyError, OSError)

# Score reported for database matches, which carry no relevance
FALLBACK_SCORE = 1.0


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _summary(total: int, took_ms: float) -> str:
    return f"Found {total} results in {took_ms / 1000:.2f}s"


class SearchOrchestrator:
    """Main search entry point with automatic fallback to the database"""

    def __init__(self, store, index, cache, analytics: SearchAnalytics, settings: Optional[SearchSettings] = None):
        self.settings = settings or get_settings().search
        self.store = store
        self.index = index
        self.cache = cache
        self.analytics = analytics
        self.hydrator = ResultHydrator(store)
        self.suggestions = SuggestionService(
            index,
            analytics,
            popular_limit=self.settings.popular_limit,
            tag_limit=self.settings.suggestion_tag_limit,
        )
        self.related_finder = RelatedVideoFinder(store, index, self.hydrator)

    async def search(self, request: SearchRequest) -> SearchResponse:
        """Serve one search from cache, index, or database, in that order"""

        start = time.perf_counter()
        request = request.clamped(self.settings.max_page_size)
        cache_key = build_key(SEARCH_ENDPOINT, request.cache_fields())
        blob = SearchFilterBlob(filters=request.filters, sort=request.sort, within=request.within)

        cached = await self._read_cache(cache_key)
        if cached is not None:
            took_ms = _elapsed_ms(start)
            await self.analytics.record(
                request.query, blob, cached.total, took_ms, fallback=False, from_cache=True
            )
            return cached.model_copy(update={
                "from_cache": True,
                "took_ms": took_ms,
                "summary": _summary(cached.total, took_ms),
            })

        try:
            response = await self._search_index(request, start)
        except IndexUnavailableError as e:
            logger.warning(f"Elasticsearch search failed, falling back to database: {e}")
            response = await self._search_database(request, start)
            await self.analytics.record(
                request.query, blob, response.total, response.took_ms, fallback=True
            )
            return response

        await self._write_cache(cache_key, response)
        await self.analytics.record(request.query, blob, response.total, response.took_ms)
        return response

    async def _search_index(self, request: SearchRequest, start: float) -> SearchResponse:
        engine_query = build_engine_query(
            request,
            pre_tag=self.settings.highlight_pre_tag,
            post_tag=self.settings.highlight_post_tag,
        )
        result = await self.index.search(engine_query)

        try:
            items = await self.hydrator.hydrate(result.hits)
        except STORE_ERRORS as e:
            logger.error(f"Hydration failed for {len(result.hits)} hits: {e}")
            raise SearchServiceError("Video records are unavailable") from e

        return self._build_response(items, result.total, request, _elapsed_ms(start), fallback=False)

    async def _search_database(self, request: SearchRequest, start: float) -> SearchResponse:
        predicate = build_predicate(request.query, request.filters, request.within)

        try:
            total = await self.store.count_matching(predicate)
            records = []
            if total > request.offset:
                records = await self.store.find_matching(predicate, request.offset, request.page_size)
        except STORE_ERRORS as e:
            logger.error(f"Database fallback search failed: {e}")
            raise SearchServiceError("Search index and database are both unavailable") from e

        items = [
            SearchResultItem(video=VideoResponse.from_record(record), score=FALLBACK_SCORE, highlights={})
            for record in records
        ]
        return self._build_response(items, total, request, _elapsed_ms(start), fallback=True)

    def _build_response(
        self,
        items: List[SearchResultItem],
        total: int,
        request: SearchRequest,
        took_ms: float,
        fallback: bool,
    ) -> SearchResponse:
        return SearchResponse(
            results=items,
            total=total,
            page=request.page,
            page_size=request.page_size,
            took_ms=took_ms,
            summary=_summary(total, took_ms),
            fallback=fallback,
        )

    async def _read_cache(self, cache_key: str) -> Optional[SearchResponse]:
        if not self.settings.cache_results:
            return None

        payload = await self.cache.get(cache_key)
        if payload is None:
            return None

        try:
            return SearchResponse.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(f"Ignoring undecodable cache entry {cache_key}: {e}")
            return None

    async def _write_cache(self, cache_key: str, response: SearchResponse) -> None:
        if not self.settings.cache_results:
            return
        await self.cache.set(cache_key, response.model_dump_json(), self.settings.cache_ttl_seconds)

    async def suggest(self, prefix: str) -> Suggestions:
        return await self.suggestions.suggest(prefix)

    async def related(self, video_id: int, limit: Optional[int] = None) -> List[VideoResponse]:
        try:
            return await self.related_finder.related(video_id, limit or self.settings.related_limit)
        except STORE_ERRORS as e:
            logger.error(f"Related videos lookup failed for {video_id}: {e}")
            raise SearchServiceError("Video records are unavailable") from e

    async def categories(self) -> List[str]:
        try:
            return await self.store.list_distinct("category")
        except STORE_ERRORS as e:
            raise SearchServiceError("Video records are unavailable") from e

    async def popular_tags(self, limit: Optional[int] = None) -> List[TagCount]:
        try:
            return await self.store.popular_tags(limit or self.settings.popular_tag_limit)
        except STORE_ERRORS as e:
            logger.error(f"Popular tags lookup failed: {e}")
            raise SearchServiceError("Video records are unavailable") from e


async def main():
    """Example search usage"""

    from libs.common.database import DatabaseManager
    from libs.search.cache import SearchCache
    from libs.search.filters import normalize
    from libs.search.index import VideoIndex
    from libs.search.store import VideoStore

    logging.basicConfig(level=logging.INFO)
    settings = get_settings()

    db_manager = DatabaseManager(settings.database.url)
    index = VideoIndex.from_settings(settings)
    orchestrator = SearchOrchestrator(
        VideoStore(db_manager),
        index,
        SearchCache(None, enabled=False),
        SearchAnalytics(db_manager),
        settings.search,
    )

    try:
        request = SearchRequest(
            query="react tutorial",
            filters=normalize({"category": "education", "tags": ["typescript"]}),
            page_size=5,
        )
        response = await orchestrator.search(request)

        print(response.summary)
        print(f"Served by: {'database' if response.fallback else 'elasticsearch'}")
        for i, item in enumerate(response.results, 1):
            print(f"{i}. {item.video.title} (score: {item.score:.3f})")

        suggestions = await orchestrator.suggest("rea")
        print(f"Suggestions for 'rea': {suggestions.tags}")
    finally:
        await index.close()
        await db_manager.close()


if __name__ == "__main__":
    asyncio.run(main())
