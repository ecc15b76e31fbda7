# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""
Filter normalization.
Turns loosely-typed filter input (query strings, saved JSON blobs) into a
NormalizedFilters value that every query builder can rely on.
"""

import logging
import math
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from libs.search.models import DurationBucket, DurationRange, NormalizedFilters

logger = logging.getLogger(__name__)

DURATION_BUCKETS = {
    DurationBucket.SHORT: DurationRange(min=0, max=5 * 60),
    DurationBucket.MEDIUM: DurationRange(min=5 * 60, max=20 * 60),
    DurationBucket.LONG: DurationRange(min=20 * 60, max=None),
}

# Largest bound that still fits the index integer field once made exclusive
MAX_DURATION_SECONDS = 2**31 - 2

# Accepted spellings for each filter, camelCase first as sent by the web client
_ALIASES = {
    "category": ("category",),
    "duration": ("duration",),
    "min_duration": ("minDuration", "min_duration"),
    "max_duration": ("maxDuration", "max_duration"),
    "upload_date_from": ("uploadDateFrom", "upload_date_from"),
    "upload_date_to": ("uploadDateTo", "upload_date_to"),
    "resolution": ("resolution",),
    "tags": ("tags",),
}


def _lookup(raw: Mapping[str, Any], field: str) -> Any:
    for key in _ALIASES[field]:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _non_negative_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, int):
            number = value
        elif isinstance(value, str) and not any(ch in value for ch in ".eE"):
            number = int(value)
        else:
            as_float = float(value)
            if not math.isfinite(as_float):
                return None
            number = int(as_float)
    except (TypeError, ValueError, OverflowError):
        logger.debug(f"Ignoring non-numeric duration bound: {value!r}")
        return None
    if number < 0:
        return None
    return min(number, MAX_DURATION_SECONDS)


def _parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        logger.debug(f"Ignoring unparseable date: {value!r}")
        return None


def _parse_bucket(value: Any) -> Optional[DurationBucket]:
    text = _clean_str(value)
    if text is None:
        return None
    try:
        return DurationBucket(text.lower())
    except ValueError:
        logger.debug(f"Ignoring unknown duration bucket: {value!r}")
        return None


def normalize_tags(tags: Union[str, Iterable[Any], None]) -> Tuple[str, ...]:
    """Trim, drop blanks and deduplicate. Case is preserved."""
    if tags is None:
        return ()
    if isinstance(tags, str):
        tags = tags.split(",")
    elif isinstance(tags, Mapping) or not isinstance(tags, Iterable):
        logger.debug(f"Ignoring non-list tags: {tags!r}")
        return ()

    cleaned = set()
    for tag in tags:
        text = _clean_str(tag)
        if text:
            cleaned.add(text)
    return tuple(sorted(cleaned))


def resolve_duration_range(
    bucket: Optional[DurationBucket],
    min_duration: Optional[int] = None,
    max_duration: Optional[int] = None,
) -> DurationRange:
    """Intersect a bucket's interval with explicit bounds.

    max_duration is inclusive; durations are whole seconds, so it becomes the
    exclusive bound max_duration + 1.
    """
    base = DURATION_BUCKETS.get(bucket, DurationRange()) if bucket else DurationRange()

    lower = base.min
    if min_duration is not None:
        lower = min_duration if lower is None else max(lower, min_duration)

    upper = base.max
    if max_duration is not None:
        explicit_upper = max_duration + 1
        upper = explicit_upper if upper is None else min(upper, explicit_upper)

    return DurationRange(min=lower, max=upper)


def normalize(raw: Union[Mapping[str, Any], NormalizedFilters, None]) -> NormalizedFilters:
    """Build NormalizedFilters from raw input. Never raises; bad fields are dropped."""

    if raw is None:
        return NormalizedFilters()
    if isinstance(raw, NormalizedFilters):
        return raw
    if not isinstance(raw, Mapping):
        logger.debug(f"Ignoring non-mapping filters: {raw!r}")
        return NormalizedFilters()

    bucket = _parse_bucket(_lookup(raw, "duration"))
    min_duration = _non_negative_int(_lookup(raw, "min_duration"))
    max_duration = _non_negative_int(_lookup(raw, "max_duration"))

    return NormalizedFilters(
        category=_clean_str(_lookup(raw, "category")),
        duration=bucket,
        min_duration=min_duration,
        max_duration=max_duration,
        duration_range=resolve_duration_range(bucket, min_duration, max_duration),
        upload_date_from=_parse_date(_lookup(raw, "upload_date_from")),
        upload_date_to=_parse_date(_lookup(raw, "upload_date_to")),
        resolution=_clean_str(_lookup(raw, "resolution")),
        tags=normalize_tags(_lookup(raw, "tags")),
    )
