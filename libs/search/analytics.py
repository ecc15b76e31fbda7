# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""
Search analytics: execution history, popular queries, saved searches.
Recording is best effort and never fails the search that triggered it.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, select

from libs.common.database import DatabaseManager, SavedSearch, SearchHistory
from libs.search.models import (
    PopularQuery,
    SavedSearchResponse,
    SearchFilterBlob,
    SearchHistoryEntry,
)

logger = logging.getLogger(__name__)


class SearchAnalytics:
    """Append-only search log plus named saved searches"""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    async def record(
        self,
        query: str,
        filters: SearchFilterBlob,
        result_count: int,
        duration_ms: float,
        fallback: bool = False,
        from_cache: bool = False,
    ) -> None:
        try:
            async with self.db_manager.session() as session:
                session.add(SearchHistory(
                    query=query or "",
                    filters=filters.model_dump(mode="json"),
                    result_count=result_count,
                    duration_ms=duration_ms,
                    fallback=fallback,
                    from_cache=from_cache,
                ))
                await session.commit()
        except Exception as e:
            logger.warning(f"Failed to record search analytics for {query!r}: {e}")

    async def popular(self, limit: int = 5) -> List[PopularQuery]:
        """Most frequent non-blank queries; ties go to the query seen first"""

        count = func.count(SearchHistory.id).label("query_count")
        first_seen = func.min(SearchHistory.id).label("first_seen")
        stmt = (
            select(SearchHistory.query, count, first_seen)
            .where(SearchHistory.query != "")
            .group_by(SearchHistory.query)
            .order_by(count.desc(), first_seen.asc())
            .limit(limit)
        )

        async with self.db_manager.session() as session:
            result = await session.execute(stmt)
            return [PopularQuery(query=row.query, count=row.query_count) for row in result]

    async def recent(self, limit: int = 10) -> List[SearchHistoryEntry]:
        stmt = select(SearchHistory).order_by(SearchHistory.id.desc()).limit(limit)
        async with self.db_manager.session() as session:
            result = await session.execute(stmt)
            return [SearchHistoryEntry.model_validate(row) for row in result.scalars().all()]

    async def save_search(self, name: str, query: str, filters: SearchFilterBlob) -> SavedSearchResponse:
        """Store a new named snapshot; an existing name is not overwritten"""

        async with self.db_manager.session() as session:
            saved = SavedSearch(
                name=name.strip(),
                query=query or "",
                filters=filters.model_dump(mode="json"),
            )
            session.add(saved)
            await session.commit()
            await session.refresh(saved)
            logger.info(f"Saved search {saved.id}: {saved.name}")
            return SavedSearchResponse.model_validate(saved)

    async def list_saved_searches(self) -> List[SavedSearchResponse]:
        stmt = select(SavedSearch).order_by(SavedSearch.updated_at.desc(), SavedSearch.id.desc())
        async with self.db_manager.session() as session:
            result = await session.execute(stmt)
            return [SavedSearchResponse.model_validate(row) for row in result.scalars().all()]

    async def get_saved_search(self, saved_search_id: int) -> Optional[SavedSearchResponse]:
        async with self.db_manager.session() as session:
            saved = await session.get(SavedSearch, saved_search_id)
            return SavedSearchResponse.model_validate(saved) if saved else None
