# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""Relational access to canonical video records."""

import logging
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import selectinload
from sqlalchemy.sql.elements import ColumnElement

from libs.common.database import DatabaseManager, Tag, Video, video_tags
from libs.search.fallback import FALLBACK_ORDER
from libs.search.filters import normalize_tags
from libs.search.models import TagCount

logger = logging.getLogger(__name__)


class VideoStore:
    """Entity store backed by SQLAlchemy"""

    DISTINCT_FIELDS = {
        "category": Video.category,
        "resolution": Video.resolution,
        "uploader_name": Video.uploader_name,
    }

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    async def get_by_id(self, video_id: int) -> Optional[Video]:
        async with self.db_manager.session() as session:
            stmt = select(Video).options(selectinload(Video.tags)).where(Video.id == video_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def get_by_ids(self, video_ids: Sequence[int]) -> List[Video]:
        """Bulk fetch in a single query. Result order is unspecified."""

        if not video_ids:
            return []

        async with self.db_manager.session() as session:
            stmt = (
                select(Video)
                .options(selectinload(Video.tags))
                .where(Video.id.in_(set(video_ids)))
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_distinct(self, field: str) -> List[str]:
        column = self.DISTINCT_FIELDS.get(field)
        if column is None:
            raise ValueError(f"Unsupported distinct field: {field}")

        async with self.db_manager.session() as session:
            result = await session.execute(select(column).distinct().order_by(column))
            return [value for value in result.scalars().all() if value]

    async def popular_tags(self, limit: int = 30) -> List[TagCount]:
        """Tags ordered by how many videos carry them, then by name"""

        video_count = func.count(video_tags.c.video_id).label("video_count")
        async with self.db_manager.session() as session:
            stmt = (
                select(Tag.name, video_count)
                .join(video_tags, video_tags.c.tag_id == Tag.id)
                .group_by(Tag.id, Tag.name)
                .order_by(video_count.desc(), Tag.name)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [TagCount(name=name, count=count) for name, count in result.all()]

    async def count_matching(self, predicate: ColumnElement) -> int:
        async with self.db_manager.session() as session:
            result = await session.execute(select(func.count(Video.id)).where(predicate))
            return result.scalar() or 0

    async def find_matching(
        self,
        predicate: ColumnElement,
        offset: int,
        limit: int,
        order_by: Iterable[Any] = FALLBACK_ORDER,
    ) -> List[Video]:
        async with self.db_manager.session() as session:
            stmt = (
                select(Video)
                .options(selectinload(Video.tags))
                .where(predicate)
                .order_by(*order_by)
                .offset(offset)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def create(self, data: Dict[str, Any]) -> Video:
        """Insert a video and link its tags, creating missing tags on the way"""

        fields = dict(data)
        tag_names = normalize_tags(fields.pop("tags", None))
        fields.setdefault("upload_date", datetime.utcnow())

        async with self.db_manager.session() as session:
            tags: List[Tag] = []
            if tag_names:
                result = await session.execute(select(Tag).where(Tag.name.in_(tag_names)))
                existing = {tag.name: tag for tag in result.scalars().all()}
                for name in tag_names:
                    tag = existing.get(name)
                    if tag is None:
                        tag = Tag(name=name)
                        session.add(tag)
                    tags.append(tag)

            video = Video(**fields)
            video.tags = tags
            session.add(video)
            await session.commit()

            logger.debug(f"Created video {video.id}: {video.title}")

        created = await self.get_by_id(video.id)
        return created

    async def delete(self, video_id: int) -> bool:
        async with self.db_manager.session() as session:
            await session.execute(delete(video_tags).where(video_tags.c.video_id == video_id))
            result = await session.execute(delete(Video).where(Video.id == video_id))
            await session.commit()
            return (result.rowcount or 0) > 0

    async def iter_all(self, batch_size: int = 500) -> AsyncIterator[List[Video]]:
        """Yield every video in id order, batch_size at a time"""

        last_id = 0
        while True:
            async with self.db_manager.session() as session:
                stmt = (
                    select(Video)
                    .options(selectinload(Video.tags))
                    .where(Video.id > last_id)
                    .order_by(Video.id)
                    .limit(batch_size)
                )
                result = await session.execute(stmt)
                batch = list(result.scalars().all())

            if not batch:
                return
            yield batch
            last_id = batch[-1].id
