# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""Video search: Elasticsearch primary path with relational fallback."""

from .analytics import SearchAnalytics
from .cache import SearchCache, build_key
from .engine import SearchOrchestrator
from .errors import IndexUnavailableError, SearchError, SearchServiceError, VideoNotFoundError
from .filters import normalize
from .index import VideoIndex
from .models import NormalizedFilters, SearchRequest, SearchResponse, SortOption
from .store import VideoStore

__all__ = [
    "SearchAnalytics",
    "SearchCache",
    "build_key",
    "SearchOrchestrator",
    "IndexUnavailableError",
    "SearchError",
    "SearchServiceError",
    "VideoNotFoundError",
    "normalize",
    "VideoIndex",
    "NormalizedFilters",
    "SearchRequest",
    "SearchResponse",
    "SortOption",
    "VideoStore",
]
