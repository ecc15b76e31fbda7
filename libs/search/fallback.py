# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""
Relational fallback predicates.
Used when the index is unavailable. Filters select exactly the same rows as the
index filter clauses; free text degrades to case-insensitive substring matching.
"""

from datetime import datetime, time, timedelta
from typing import List, Optional

from sqlalchemy import and_, or_, true
from sqlalchemy.sql.elements import ColumnElement

from libs.common.database import Tag, Video
from libs.search.models import NormalizedFilters

# Fallback results are always newest first
FALLBACK_ORDER = (Video.upload_date.desc(), Video.id.desc())


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, text: str) -> ColumnElement:
    return column.ilike(f"%{_escape_like(text)}%", escape="\\")


def build_text_predicate(text: str) -> ColumnElement:
    """Substring match on title, description, uploader or any tag name"""
    return or_(
        _contains(Video.title, text),
        _contains(Video.description, text),
        _contains(Video.uploader_name, text),
        Video.tags.any(_contains(Tag.name, text)),
    )


def build_filter_predicates(filters: Optional[NormalizedFilters]) -> List[ColumnElement]:
    if filters is None:
        return []

    conditions: List[ColumnElement] = []

    if filters.category:
        conditions.append(Video.category == filters.category)

    if filters.resolution:
        conditions.append(Video.resolution == filters.resolution)

    if filters.tags:
        conditions.append(Video.tags.any(Tag.name.in_(filters.tags)))

    duration_range = filters.duration_range
    if duration_range.min is not None:
        conditions.append(Video.duration >= duration_range.min)
    if duration_range.max is not None:
        conditions.append(Video.duration < duration_range.max)

    if filters.upload_date_from:
        conditions.append(Video.upload_date >= datetime.combine(filters.upload_date_from, time.min))
    if filters.upload_date_to:
        next_day = filters.upload_date_to + timedelta(days=1)
        conditions.append(Video.upload_date < datetime.combine(next_day, time.min))

    return conditions


def build_predicate(
    query: Optional[str],
    filters: Optional[NormalizedFilters],
    within: Optional[str] = None,
) -> ColumnElement:
    """WHERE clause equivalent of the index query for the same request"""

    conditions: List[ColumnElement] = []

    if query:
        conditions.append(build_text_predicate(query))
    if within:
        conditions.append(build_text_predicate(within))

    conditions.extend(build_filter_predicates(filters))

    return and_(true(), *conditions)
