# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""Search-box autocomplete: prefix-matched tags plus popular queries."""

import logging

from sqlalchemy.exc import SQLAlchemyError

from libs.search.errors import IndexUnavailableError
from libs.search.models import Suggestions

logger = logging.getLogger(__name__)


class SuggestionService:
    """Combines index prefix lookups with the analytics popularity ranking"""

    def __init__(self, index, analytics, popular_limit: int = 5, tag_limit: int = 10):
        self.index = index
        self.analytics = analytics
        self.popular_limit = popular_limit
        self.tag_limit = tag_limit

    async def suggest(self, prefix: str) -> Suggestions:
        prefix = (prefix or "").strip()

        tags = []
        if prefix:
            try:
                tags = await self.index.suggest(prefix, size=self.tag_limit)
            except IndexUnavailableError as e:
                logger.warning(f"Tag suggestions unavailable: {e}")

        # Popular queries are not narrowed by the prefix
        try:
            popular = await self.analytics.popular(self.popular_limit)
        except SQLAlchemyError as e:
            logger.warning(f"Popular searches unavailable: {e}")
            popular = []

        return Suggestions(suggestions=[item.query for item in popular], tags=tags)
