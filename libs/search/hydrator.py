# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""Join index hits back to canonical video records, keeping hit order."""

import logging
from typing import List, Sequence

from libs.search.models import SearchHit, SearchResultItem, VideoResponse

logger = logging.getLogger(__name__)


class ResultHydrator:
    """Bulk-fetches records for a page of hits and re-emits them in hit order"""

    def __init__(self, store):
        self.store = store

    async def hydrate(self, hits: Sequence[SearchHit]) -> List[SearchResultItem]:
        if not hits:
            return []

        records = await self.store.get_by_ids([hit.id for hit in hits])
        records_by_id = {record.id: record for record in records}

        items = []
        for hit in hits:
            record = records_by_id.get(hit.id)
            if record is None:
                # Deleted from the database but not yet from the index
                logger.debug(f"Dropping stale index hit for video {hit.id}")
                continue
            items.append(SearchResultItem(
                video=VideoResponse.from_record(record),
                score=hit.score,
                highlights=hit.highlights,
            ))

        return items
