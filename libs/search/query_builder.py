# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""
Elasticsearch query construction.
Free text ranks (bool.must), filters only narrow the candidate set (bool.filter).
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from libs.search.models import NormalizedFilters, SearchRequest, SortOption

# Field boosts for the primary query and the "search within results" refinement
QUERY_FIELDS = ["title^3", "description^2", "tags^2", "uploaderName"]
WITHIN_FIELDS = ["title^2", "description", "tags^1.5"]
HIGHLIGHT_FIELDS = ["title", "description", "uploaderName", "tags"]

DEFAULT_PRE_TAG = "<mark>"
DEFAULT_POST_TAG = "</mark>"


class EngineQuery(BaseModel):
    """Search request in the shape the index client expects"""

    query: Dict[str, Any]
    sort: List[Any]
    highlight: Dict[str, Any]
    offset: int = 0
    size: int = 12

    def to_search_kwargs(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "sort": self.sort,
            "highlight": self.highlight,
            "from_": self.offset,
            "size": self.size,
            "track_total_hits": True,
        }


def build_filter_clauses(filters: Optional[NormalizedFilters]) -> List[Dict[str, Any]]:
    """Exact-match and range constraints, AND-ed by the enclosing bool query"""

    if filters is None:
        return []

    clauses: List[Dict[str, Any]] = []

    if filters.category:
        clauses.append({"term": {"category": filters.category}})

    if filters.resolution:
        clauses.append({"term": {"resolution": filters.resolution}})

    if filters.tags:
        clauses.append({"terms": {"tags": list(filters.tags)}})

    duration_range = filters.duration_range
    if not duration_range.is_unbounded:
        bounds: Dict[str, int] = {}
        if duration_range.min is not None:
            bounds["gte"] = duration_range.min
        if duration_range.max is not None:
            bounds["lt"] = duration_range.max
        clauses.append({"range": {"duration": bounds}})

    if filters.upload_date_from or filters.upload_date_to:
        date_bounds: Dict[str, str] = {}
        if filters.upload_date_from:
            date_bounds["gte"] = filters.upload_date_from.isoformat()
        if filters.upload_date_to:
            # Inclusive end date: everything before the following midnight
            date_bounds["lt"] = (filters.upload_date_to + timedelta(days=1)).isoformat()
        clauses.append({"range": {"uploadDate": date_bounds}})

    return clauses


def build_text_clauses(query: str, within: Optional[str]) -> List[Dict[str, Any]]:
    clauses: List[Dict[str, Any]] = []

    if query:
        clauses.append({
            "multi_match": {
                "query": query,
                "fields": QUERY_FIELDS,
                "fuzziness": "AUTO",
                "operator": "and",
            }
        })

    if within:
        clauses.append({
            "multi_match": {
                "query": within,
                "fields": WITHIN_FIELDS,
                "fuzziness": "AUTO",
            }
        })

    return clauses


def build_sort(sort: SortOption) -> List[Any]:
    if sort == SortOption.UPLOAD_DATE:
        return [{"uploadDate": {"order": "desc"}}]
    if sort == SortOption.VIEW_COUNT:
        return [{"viewCount": {"order": "desc"}}]
    if sort == SortOption.DURATION:
        return [{"duration": {"order": "asc"}}]
    return ["_score"]


def build_highlight(pre_tag: str = DEFAULT_PRE_TAG, post_tag: str = DEFAULT_POST_TAG) -> Dict[str, Any]:
    return {
        "pre_tags": [pre_tag],
        "post_tags": [post_tag],
        "fields": {field: {} for field in HIGHLIGHT_FIELDS},
    }


def build_engine_query(
    request: SearchRequest,
    pre_tag: str = DEFAULT_PRE_TAG,
    post_tag: str = DEFAULT_POST_TAG,
) -> EngineQuery:
    """Translate a (clamped) search request into an EngineQuery"""

    must = build_text_clauses(request.query, request.within) or [{"match_all": {}}]

    return EngineQuery(
        query={
            "bool": {
                "must": must,
                "filter": build_filter_clauses(request.filters),
            }
        },
        sort=build_sort(request.sort),
        highlight=build_highlight(pre_tag, post_tag),
        offset=request.offset,
        size=request.page_size,
    )
