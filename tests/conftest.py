"""Pytest configuration and shared fixtures.

Provides an in-memory database seeded with sample videos, plus in-memory
stand-ins for Elasticsearch and Redis.
"""

from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest

from libs.common.config import SearchSettings
from libs.common.database import DatabaseManager
from libs.search.analytics import SearchAnalytics
from libs.search.cache import SearchCache
from libs.search.engine import SearchOrchestrator
from libs.search.errors import IndexUnavailableError
from libs.search.index import to_index_document
from libs.search.models import EngineResult, SearchHit
from libs.search.query_builder import EngineQuery
from libs.search.store import VideoStore


SAMPLE_VIDEOS = [
    {
        "title": "React Tutorial for Beginners",
        "description": "Components, props and state from scratch.",
        "url": "https://videos.example.com/1.mp4",
        "duration": 1500,
        "category": "education",
        "upload_date": datetime(2024, 3, 10, 9, 0),
        "uploader_name": "Code Academy",
        "view_count": 15420,
        "file_size": 524288000,
        "resolution": "1080p",
        "tags": ["react", "javascript"],
    },
    {
        "title": "Advanced React Patterns with TypeScript",
        "description": "Compound components and typed hooks: a react tutorial for experienced developers.",
        "url": "https://videos.example.com/2.mp4",
        "duration": 2400,
        "category": "education",
        "upload_date": datetime(2024, 5, 20, 12, 0),
        "uploader_name": "Typed Dev",
        "view_count": 8210,
        "file_size": 838860800,
        "resolution": "4k",
        "tags": ["typescript", "react"],
    },
    {
        "title": "TypeScript React Tutorial",
        "description": "Typing props and hooks.",
        "url": "https://videos.example.com/3.mp4",
        "duration": 900,
        "category": "education",
        "upload_date": datetime(2024, 6, 1, 8, 30),
        "uploader_name": "Typed Dev",
        "view_count": 30110,
        "file_size": 157286400,
        "resolution": "720p",
        "tags": ["react", "typescript"],
    },
    {
        "title": "Street Food Tour of Bangkok",
        "description": "Eating our way through 100% of the night markets.",
        "url": "https://videos.example.com/4.mp4",
        "duration": 1320,
        "category": "travel",
        "upload_date": datetime(2024, 4, 2, 18, 45),
        "uploader_name": "Wander Eats",
        "view_count": 99002,
        "file_size": 734003200,
        "resolution": "4k",
        "tags": ["food", "travel"],
    },
    {
        "title": "Five Minute Morning Stretch",
        "description": "A short routine to start the day.",
        "url": "https://videos.example.com/5.mp4",
        "duration": 290,
        "category": "fitness",
        "upload_date": datetime(2024, 6, 15, 6, 0),
        "uploader_name": "Move Daily",
        "view_count": 4500,
        "file_size": 52428800,
        "resolution": "1080p",
        "tags": ["yoga", "morning"],
    },
    {
        "title": "Quick CSS Tip",
        "description": "Centering a div.",
        "url": "https://videos.example.com/6.mp4",
        "duration": 45,
        "category": "education",
        "upload_date": datetime(2024, 2, 1, 0, 0),
        "uploader_name": "Code Academy",
        "view_count": 1200,
        "file_size": 10485760,
        "resolution": "720p",
        "tags": ["css"],
    },
]


def _field_name(field: str) -> str:
    return field.split("^", 1)[0]


def _field_text(document: Dict[str, Any], field: str) -> str:
    value = document.get(_field_name(field))
    if isinstance(value, list):
        return " ".join(value)
    return str(value or "")


def _text_score(document: Dict[str, Any], clause: Dict[str, Any]) -> Optional[float]:
    """Score of a must clause against a document, None when it does not match"""

    if "match_all" in clause:
        return 1.0

    multi_match = clause["multi_match"]
    haystack = " ".join(_field_text(document, field) for field in multi_match["fields"]).lower()
    tokens = multi_match["query"].lower().split()
    found = [token for token in tokens if token in haystack]

    if multi_match.get("operator") == "and":
        matched = len(found) == len(tokens)
    else:
        matched = bool(found)
    return float(len(found)) if matched else None


def _range_value(field: str, value: Any) -> Any:
    if field == "uploadDate":
        return datetime.fromisoformat(value)
    return value


def _matches_filter(document: Dict[str, Any], clause: Dict[str, Any]) -> bool:
    if "term" in clause:
        (field, value), = clause["term"].items()
        return document.get(field) == value

    if "terms" in clause:
        (field, values), = clause["terms"].items()
        present = document.get(field)
        present = set(present) if isinstance(present, list) else {present}
        return bool(present.intersection(values))

    if "range" in clause:
        (field, bounds), = clause["range"].items()
        value = _range_value(field, document.get(field))
        if "gte" in bounds and not value >= _range_value(field, bounds["gte"]):
            return False
        if "lt" in bounds and not value < _range_value(field, bounds["lt"]):
            return False
        return True

    raise AssertionError(f"Unexpected filter clause: {clause}")


def _sorted(matches: List[tuple], sort: List[Any]) -> List[tuple]:
    order = sort[0] if sort else "_score"
    if order == "_score":
        return sorted(matches, key=lambda match: (-match[1], match[0]["id"]))

    (field, options), = order.items()
    descending = options.get("order") == "desc"
    return sorted(matches, key=lambda match: (match[0][field], match[0]["id"]), reverse=descending)


class FakeIndex:
    """In-memory VideoIndex that evaluates the bool queries it receives"""

    def __init__(self, videos=(), fail: bool = False):
        self.documents = {video.id: to_index_document(video) for video in videos}
        self.fail = fail
        self.queries: List[EngineQuery] = []

    def _check_available(self):
        if self.fail:
            raise IndexUnavailableError("Elasticsearch search failed: connection refused")

    async def search(self, engine_query: EngineQuery) -> EngineResult:
        self.queries.append(engine_query)
        self._check_available()

        bool_query = engine_query.query["bool"]
        matches = []
        for document in self.documents.values():
            if not all(_matches_filter(document, clause) for clause in bool_query["filter"]):
                continue
            scores = [_text_score(document, clause) for clause in bool_query["must"]]
            if any(score is None for score in scores):
                continue
            matches.append((document, sum(scores)))

        matches = _sorted(matches, engine_query.sort)
        page = matches[engine_query.offset:engine_query.offset + engine_query.size]
        return EngineResult(
            hits=[SearchHit(id=document["id"], score=score) for document, score in page],
            total=len(matches),
            took_ms=1.0,
        )

    async def suggest(self, prefix: str, size: int = 10) -> List[str]:
        self._check_available()
        prefix = prefix.lower()
        counts = Counter(
            tag
            for document in self.documents.values()
            for tag in document["tags"]
            if tag.lower().startswith(prefix)
            or any(word.lower().startswith(prefix) for word in document["title"].split())
        )
        return [tag for tag, _ in sorted(counts.items(), key=lambda item: (-item[1], item[0]))][:size]

    async def more_like_this(self, video_id: int, limit: int = 6) -> List[SearchHit]:
        self._check_available()
        source_tags = set(self.documents[video_id]["tags"])
        hits = [
            SearchHit(id=document["id"], score=float(len(source_tags.intersection(document["tags"]))))
            for document in self.documents.values()
            if document["id"] != video_id and source_tags.intersection(document["tags"])
        ]
        return sorted(hits, key=lambda hit: (-hit.score, hit.id))[:limit]

    async def ping(self) -> bool:
        return not self.fail

    async def close(self):
        pass


class FakeRedis:
    """Dict-backed subset of the redis.asyncio client used by SearchCache"""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    async def get(self, key):
        return self.values.get(key)

    async def setex(self, key, ttl, value):
        self.values[key] = value
        self.ttls[key] = ttl

    async def ping(self):
        return True

    async def aclose(self):
        pass


@pytest.fixture
def sample_videos() -> List[Dict[str, Any]]:
    """Raw video payloads, inserted in order (ids 1..6)."""
    return [dict(video) for video in SAMPLE_VIDEOS]


@pytest.fixture
def search_settings() -> SearchSettings:
    """Search settings with deterministic values."""
    return SearchSettings(
        max_page_size=100,
        cache_ttl_seconds=120,
        cache_results=True,
        popular_limit=5,
        suggestion_tag_limit=10,
        related_limit=6,
    )


@pytest.fixture
async def db_manager():
    """In-memory SQLite database with all tables created."""
    manager = DatabaseManager("sqlite+aiosqlite:///:memory:")
    await manager.create_tables()
    yield manager
    await manager.close()


@pytest.fixture
def store(db_manager) -> VideoStore:
    return VideoStore(db_manager)


@pytest.fixture
def analytics(db_manager) -> SearchAnalytics:
    return SearchAnalytics(db_manager)


@pytest.fixture
async def videos(store, sample_videos):
    """Sample videos persisted through the store."""
    return [await store.create(video) for video in sample_videos]


@pytest.fixture
def fake_index(videos) -> FakeIndex:
    return FakeIndex(videos)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def search_cache(fake_redis) -> SearchCache:
    return SearchCache(fake_redis)


@pytest.fixture
def orchestrator(store, fake_index, search_cache, analytics, search_settings) -> SearchOrchestrator:
    return SearchOrchestrator(store, fake_index, search_cache, analytics, search_settings)


# Custom pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "database: mark test as database related"
    )


# Test collection configuration
def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on file paths."""
    for item in items:
        # Add markers based on file path
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        # Add markers based on fixtures
        if "db_manager" in getattr(item, "fixturenames", ()):
            item.add_marker(pytest.mark.database)
