# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""
Elasticsearch video index.
Owns the index mapping, document sync, and query execution. Every runtime
failure of the engine surfaces as IndexUnavailableError.
"""

import asyncio
import logging
from typing import Any, Dict, List

from elasticsearch import ApiError, AsyncElasticsearch, NotFoundError, TransportError

from libs.common.config import Settings
from libs.search.errors import IndexUnavailableError
from libs.search.models import EngineResult, SearchHit
from libs.search.query_builder import EngineQuery

logger = logging.getLogger(__name__)

ENGINE_ERRORS = (ApiError, TransportError, asyncio.TimeoutError, OSError)

AUTOCOMPLETE_SUBFIELD = {
    "autocomplete": {
        "type": "text",
        "analyzer": "autocomplete_analyzer",
        "search_analyzer": "standard",
    }
}

INDEX_MAPPINGS = {
    "properties": {
        "id": {"type": "integer"},
        "title": {"type": "text", "analyzer": "standard", "fields": AUTOCOMPLETE_SUBFIELD},
        "description": {"type": "text", "analyzer": "standard"},
        "uploaderName": {"type": "text", "analyzer": "standard", "fields": AUTOCOMPLETE_SUBFIELD},
        "category": {"type": "keyword"},
        "duration": {"type": "integer"},
        "uploadDate": {"type": "date"},
        "resolution": {"type": "keyword"},
        "tags": {"type": "keyword", "fields": AUTOCOMPLETE_SUBFIELD},
        "viewCount": {"type": "integer"},
    }
}

ANALYSIS_SETTINGS = {
    "filter": {
        "autocomplete_filter": {
            "type": "edge_ngram",
            "min_gram": 2,
            "max_gram": 20,
        }
    },
    "analyzer": {
        "autocomplete_analyzer": {
            "type": "custom",
            "tokenizer": "standard",
            "filter": ["lowercase", "autocomplete_filter"],
        }
    },
}


def to_index_document(video) -> Dict[str, Any]:
    """Denormalized index payload for a canonical video record"""
    return {
        "id": video.id,
        "title": video.title,
        "description": video.description or "",
        "uploaderName": video.uploader_name,
        "viewCount": video.view_count or 0,
        "category": video.category,
        "duration": video.duration,
        "uploadDate": video.upload_date.isoformat(),
        "resolution": video.resolution,
        "tags": list(video.tag_names),
    }


def _body(response) -> Dict[str, Any]:
    return getattr(response, "body", response)


def parse_hit(hit: Dict[str, Any]) -> SearchHit:
    source = hit.get("_source") or {}
    highlight = hit.get("highlight") or {}
    return SearchHit(
        id=int(source.get("id", hit["_id"])),
        score=float(hit.get("_score") or 0.0),
        highlights={field: list(fragments) for field, fragments in highlight.items()},
    )


def parse_search_response(response) -> EngineResult:
    body = _body(response)
    hits_section = body["hits"]

    total = hits_section.get("total", 0)
    if isinstance(total, dict):
        total = total.get("value", 0)

    return EngineResult(
        hits=[parse_hit(hit) for hit in hits_section.get("hits", [])],
        total=int(total),
        took_ms=float(body.get("took", 0)),
    )


class VideoIndex:
    """Elasticsearch-backed search index for videos"""

    def __init__(self, client: AsyncElasticsearch, index_name: str, shards: int = 1, replicas: int = 0):
        self.client = client
        self.index_name = index_name
        self.shards = shards
        self.replicas = replicas
        self._index_ready = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "VideoIndex":
        es = settings.elasticsearch
        client = AsyncElasticsearch(
            [es.url],
            basic_auth=(es.username, es.password) if es.username else None,
            verify_certs=es.verify_certs,
            ca_certs=es.ca_cert_path,
            request_timeout=es.timeout,
            max_retries=es.max_retries,
            retry_on_timeout=False,
        )
        return cls(
            client,
            settings.search.index_name,
            shards=settings.search.es_shards,
            replicas=settings.search.es_replicas,
        )

    async def close(self):
        await self.client.close()

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except ENGINE_ERRORS as e:
            logger.warning(f"Elasticsearch ping failed: {e}")
            return False

    async def ensure_index(self) -> None:
        """Create the index with its mapping if it does not exist yet"""

        if self._index_ready:
            return

        if not await self.client.indices.exists(index=self.index_name):
            await self.client.indices.create(
                index=self.index_name,
                settings={
                    "number_of_shards": self.shards,
                    "number_of_replicas": self.replicas,
                    "analysis": ANALYSIS_SETTINGS,
                },
                mappings=INDEX_MAPPINGS,
            )
            logger.info(f"Created Elasticsearch index: {self.index_name}")

        self._index_ready = True

    async def index_document(self, video, refresh: str = "wait_for") -> None:
        await self.ensure_index()
        await self.client.index(
            index=self.index_name,
            id=str(video.id),
            document=to_index_document(video),
            refresh=refresh,
        )

    async def delete_document(self, video_id: int, refresh: str = "wait_for") -> None:
        try:
            await self.client.delete(index=self.index_name, id=str(video_id), refresh=refresh)
        except NotFoundError:
            logger.debug(f"Video {video_id} was not indexed")

    async def search(self, engine_query: EngineQuery) -> EngineResult:
        """Execute a query; engine and transport failures become IndexUnavailableError"""

        try:
            await self.ensure_index()
            response = await self.client.search(
                index=self.index_name,
                **engine_query.to_search_kwargs(),
            )
        except NotFoundError as e:
            # Index was removed underneath us; recreate it on the next call
            self._index_ready = False
            raise IndexUnavailableError(f"Elasticsearch index {self.index_name} is missing: {e}") from e
        except ENGINE_ERRORS as e:
            raise IndexUnavailableError(f"Elasticsearch search failed: {e}") from e

        try:
            return parse_search_response(response)
        except (KeyError, TypeError, ValueError) as e:
            raise IndexUnavailableError(f"Malformed Elasticsearch response: {e}") from e

    async def suggest(self, prefix: str, size: int = 10) -> List[str]:
        """Tag values of documents matching prefix on the edge-gram subfields"""

        try:
            await self.ensure_index()
            response = await self.client.search(
                index=self.index_name,
                size=0,
                query={
                    "multi_match": {
                        "query": prefix,
                        "type": "bool_prefix",
                        "fields": [
                            "title.autocomplete^3",
                            "tags.autocomplete^2",
                            "uploaderName.autocomplete",
                        ],
                    }
                },
                aggs={"popular_tags": {"terms": {"field": "tags", "size": size}}},
            )
        except ENGINE_ERRORS as e:
            raise IndexUnavailableError(f"Elasticsearch suggest failed: {e}") from e

        try:
            buckets = _body(response)["aggregations"]["popular_tags"]["buckets"]
            return [str(bucket["key"]) for bucket in buckets]
        except (KeyError, TypeError) as e:
            raise IndexUnavailableError(f"Malformed Elasticsearch aggregation: {e}") from e

    async def more_like_this(self, video_id: int, limit: int = 6) -> List[SearchHit]:
        """Videos textually similar to video_id, excluding itself"""

        try:
            await self.ensure_index()
            response = await self.client.search(
                index=self.index_name,
                size=limit,
                query={
                    "more_like_this": {
                        "fields": ["title", "description", "tags"],
                        "like": [{"_index": self.index_name, "_id": str(video_id)}],
                        "min_term_freq": 1,
                        "max_query_terms": 12,
                    }
                },
            )
        except ENGINE_ERRORS as e:
            raise IndexUnavailableError(f"Elasticsearch more_like_this failed: {e}") from e

        try:
            result = parse_search_response(response)
        except (KeyError, TypeError, ValueError) as e:
            raise IndexUnavailableError(f"Malformed Elasticsearch response: {e}") from e

        return [hit for hit in result.hits if hit.id != video_id]
