# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""Data model shared by the search components."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class DurationBucket(str, Enum):
    """Named coarse duration ranges"""

    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class SortOption(str, Enum):
    """Result orderings supported by the index path"""

    RELEVANCE = "relevance"
    UPLOAD_DATE = "uploadDate"
    VIEW_COUNT = "viewCount"
    DURATION = "duration"


class DurationRange(BaseModel):
    """Half-open duration interval [min, max) in seconds; None means unbounded"""

    model_config = ConfigDict(frozen=True)

    min: Optional[int] = None
    max: Optional[int] = None

    @property
    def is_unbounded(self) -> bool:
        return self.min is None and self.max is None

    @property
    def is_empty(self) -> bool:
        return self.min is not None and self.max is not None and self.min >= self.max


class NormalizedFilters(BaseModel):
    """Canonical filter set. The default instance means "no filter"."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    category: Optional[str] = None
    duration: Optional[DurationBucket] = None
    min_duration: Optional[int] = None
    max_duration: Optional[int] = None
    duration_range: DurationRange = Field(default_factory=DurationRange)
    upload_date_from: Optional[date] = None
    upload_date_to: Optional[date] = None
    resolution: Optional[str] = None
    # Sorted, so the order tags were supplied in never matters
    tags: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return (
            self.category is None
            and self.resolution is None
            and not self.tags
            and self.duration_range.is_unbounded
            and self.upload_date_from is None
            and self.upload_date_to is None
        )


class SearchRequest(BaseModel):
    """A single search call: free text, filters, ordering and page window"""

    query: str = ""
    filters: NormalizedFilters = Field(default_factory=NormalizedFilters)
    sort: SortOption = SortOption.RELEVANCE
    page: int = 1
    page_size: int = 12
    within: Optional[str] = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def has_text(self) -> bool:
        return bool(self.query or self.within)

    def clamped(self, max_page_size: int = 100) -> "SearchRequest":
        """Copy with page >= 1 and 1 <= page_size <= max_page_size"""
        return self.model_copy(update={
            "query": (self.query or "").strip(),
            "within": (self.within or "").strip() or None,
            "page": max(1, self.page),
            "page_size": min(max_page_size, max(1, self.page_size)),
        })

    def cache_fields(self) -> Dict[str, Any]:
        """Fields that identify this request's result page"""
        return {
            "query": self.query,
            "filters": self.filters.model_dump(mode="json"),
            "sort": self.sort.value,
            "page": self.page,
            "pageSize": self.page_size,
            "within": self.within,
        }


class SearchFilterBlob(BaseModel):
    """Filter snapshot stored with history rows and saved searches"""

    model_config = ConfigDict(extra="ignore")

    filters: NormalizedFilters = Field(default_factory=NormalizedFilters)
    sort: SortOption = SortOption.RELEVANCE
    within: Optional[str] = None


class VideoResponse(BaseModel):
    """Canonical video record as returned to clients"""

    id: int
    title: str
    description: Optional[str] = None
    url: str
    thumbnail_url: Optional[str] = None
    duration: int
    category: str
    upload_date: datetime
    uploader_name: str
    view_count: int = 0
    file_size: int = 0
    resolution: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    tags: List[str] = []

    @classmethod
    def from_record(cls, video) -> "VideoResponse":
        return cls(
            id=video.id,
            title=video.title,
            description=video.description,
            url=video.url,
            thumbnail_url=video.thumbnail_url,
            duration=video.duration,
            category=video.category,
            upload_date=video.upload_date,
            uploader_name=video.uploader_name,
            view_count=video.view_count or 0,
            file_size=video.file_size or 0,
            resolution=video.resolution,
            created_at=video.created_at,
            updated_at=video.updated_at,
            tags=video.tag_names,
        )


class SearchHit(BaseModel):
    """One match reported by the index, before hydration"""

    id: int
    score: float = 0.0
    highlights: Dict[str, List[str]] = {}


class EngineResult(BaseModel):
    """Raw outcome of an index query"""

    hits: List[SearchHit] = []
    total: int = 0
    took_ms: float = 0.0


class SearchResultItem(BaseModel):
    video: VideoResponse
    score: float
    highlights: Dict[str, List[str]] = {}


class SearchResponse(BaseModel):
    """Uniform envelope returned for every search, whichever path served it"""

    results: List[SearchResultItem] = []
    total: int = 0
    page: int = 1
    page_size: int = 12
    took_ms: float = 0.0
    summary: str = ""
    fallback: bool = False
    from_cache: bool = False


class Suggestions(BaseModel):
    suggestions: List[str] = []
    tags: List[str] = []


class PopularQuery(BaseModel):
    query: str
    count: int


class TagCount(BaseModel):
    """Tag with the number of videos carrying it"""
    name: str
    count: int


class SearchHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    query: str
    result_count: int
    duration_ms: float
    fallback: bool
    from_cache: bool
    created_at: Optional[datetime] = None


class SavedSearchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    query: str = ""
    filters: Dict[str, Any] = {}
    sort: SortOption = SortOption.RELEVANCE
    within: Optional[str] = None


class SavedSearchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    query: str
    filters: SearchFilterBlob
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
