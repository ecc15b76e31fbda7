# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""
Search result caching.
Canonical cache keys plus a Redis-backed cache that never lets a cache
failure reach the caller.
"""

import hashlib
import json
import logging
from enum import Enum
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "search:"


def _canonicalize(value: Any) -> Any:
    """Drop None/"" entries and sort mapping keys at every level. Sequence order is kept."""

    if isinstance(value, Mapping):
        cleaned = {}
        for key in sorted(value, key=str):
            item = _canonicalize(value[key])
            if item is None or item == "":
                continue
            cleaned[str(key)] = item
        return cleaned

    if isinstance(value, (list, tuple)):
        return [_canonicalize(item) for item in value if item is not None and item != ""]

    if isinstance(value, Enum):
        return _canonicalize(value.value)

    return value


def build_key(endpoint_path: str, fields: Mapping[str, Any]) -> str:
    """Stable cache key for a request: identical normalized input, identical key"""

    canonical = json.dumps(
        _canonicalize(fields),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    digest = hashlib.sha1(f"{endpoint_path}?{canonical}".encode("utf-8")).hexdigest()
    return f"{CACHE_NAMESPACE}{digest}"


class SearchCache:
    """Redis-based search result caching"""

    def __init__(self, redis_client, enabled: bool = True):
        self.redis = redis_client
        self.enabled = enabled

    async def get(self, cache_key: str) -> Optional[str]:
        """Get a cached payload; any error counts as a miss"""

        if not self.enabled or self.redis is None:
            return None

        try:
            cached = await self.redis.get(cache_key)
        except Exception as e:
            logger.warning(f"Cache get error: {e}")
            return None

        if isinstance(cached, bytes):
            cached = cached.decode("utf-8")
        return cached

    async def set(self, cache_key: str, value: str, ttl_seconds: int) -> None:
        """Cache a payload for ttl_seconds; errors are logged and dropped"""

        if not self.enabled or self.redis is None:
            return

        try:
            await self.redis.setex(cache_key, ttl_seconds, value)
        except Exception as e:
            logger.warning(f"Cache set error: {e}")

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()
