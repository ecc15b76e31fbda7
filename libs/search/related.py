# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""Related videos for a detail page."""

import logging
from typing import List

from sqlalchemy import and_

from libs.common.database import Video
from libs.search.errors import IndexUnavailableError, VideoNotFoundError
from libs.search.hydrator import ResultHydrator
from libs.search.models import VideoResponse

logger = logging.getLogger(__name__)


class RelatedVideoFinder:
    """more_like_this through the index, same-category recency through the database"""

    def __init__(self, store, index, hydrator: ResultHydrator):
        self.store = store
        self.index = index
        self.hydrator = hydrator

    async def related(self, video_id: int, limit: int = 6) -> List[VideoResponse]:
        source = await self.store.get_by_id(video_id)
        if source is None:
            raise VideoNotFoundError(video_id)

        try:
            hits = await self.index.more_like_this(video_id, limit=limit * 2)
        except IndexUnavailableError as e:
            logger.warning(f"Related videos falling back to database: {e}")
            return await self._same_category(source, limit)

        items = await self.hydrator.hydrate(hits)
        source_tags = set(source.tag_names)

        related = []
        for item in items:
            candidate = item.video
            if candidate.id == video_id:
                continue
            if source_tags.intersection(candidate.tags) or candidate.category == source.category:
                related.append(candidate)

        return related[:limit]

    async def _same_category(self, source, limit: int) -> List[VideoResponse]:
        predicate = and_(Video.category == source.category, Video.id != source.id)
        records = await self.store.find_matching(predicate, 0, limit)
        return [VideoResponse.from_record(record) for record in records]
