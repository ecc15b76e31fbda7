"""Unit tests for the search orchestrator."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from libs.search.cache import SearchCache, build_key
from libs.search.engine import FALLBACK_SCORE, SEARCH_ENDPOINT, SearchOrchestrator
from libs.search.errors import SearchServiceError
from libs.search.filters import normalize
from libs.search.models import SearchRequest, SearchResponse, SortOption


def _react_request(**overrides) -> SearchRequest:
    fields = {"query": "react tutorial", "filters": normalize({"category": "education"})}
    fields.update(overrides)
    return SearchRequest(**fields)


class TestIndexPath:

    async def test_results_come_from_the_index(self, orchestrator, fake_index):
        response = await orchestrator.search(_react_request(sort=SortOption.UPLOAD_DATE))

        assert response.fallback is False
        assert response.from_cache is False
        assert response.total == 3
        assert [item.video.id for item in response.results] == [3, 2, 1]
        assert response.summary.startswith("Found 3 results in ")
        assert len(fake_index.queries) == 1

    async def test_result_is_cached_with_ttl(self, orchestrator, fake_redis):
        request = _react_request()

        await orchestrator.search(request)

        key = build_key(SEARCH_ENDPOINT, request.clamped(100).cache_fields())
        assert key in fake_redis.values
        assert fake_redis.ttls[key] == 120

    async def test_repeat_search_is_served_from_cache(self, orchestrator, fake_index):
        first = await orchestrator.search(_react_request())
        second = await orchestrator.search(_react_request())

        assert second.from_cache is True
        assert second.results == first.results
        assert second.total == first.total
        assert len(fake_index.queries) == 1

    async def test_cache_hit_reports_its_own_timing(self, orchestrator, fake_redis):
        request = _react_request()
        key = build_key(SEARCH_ENDPOINT, request.clamped(100).cache_fields())
        stored = SearchResponse(total=3, took_ms=9999.0, summary="Found 3 results in 10.00s")
        fake_redis.values[key] = stored.model_dump_json()

        response = await orchestrator.search(request)

        assert response.from_cache is True
        assert response.total == 3
        assert response.took_ms < 9999.0
        assert response.summary == f"Found 3 results in {response.took_ms / 1000:.2f}s"

    async def test_undecodable_cache_entry_is_a_miss(self, orchestrator, fake_redis, fake_index):
        request = _react_request()
        key = build_key(SEARCH_ENDPOINT, request.clamped(100).cache_fields())
        fake_redis.values[key] = "{not json"

        response = await orchestrator.search(request)

        assert response.from_cache is False
        assert response.total == 3
        assert len(fake_index.queries) == 1

    async def test_cache_failure_does_not_fail_the_search(self, store, fake_index, analytics, search_settings):
        broken_redis = MagicMock()
        broken_redis.get = AsyncMock(side_effect=ConnectionError("redis down"))
        broken_redis.setex = AsyncMock(side_effect=ConnectionError("redis down"))
        orchestrator = SearchOrchestrator(store, fake_index, SearchCache(broken_redis), analytics, search_settings)

        response = await orchestrator.search(_react_request())

        assert response.total == 3
        assert response.fallback is False
        broken_redis.setex.assert_awaited_once()

    async def test_hydration_failure_is_a_service_error(self, fake_index, search_cache, analytics, search_settings):
        broken_store = MagicMock()
        broken_store.get_by_ids = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))
        orchestrator = SearchOrchestrator(broken_store, fake_index, search_cache, analytics, search_settings)

        with pytest.raises(SearchServiceError):
            await orchestrator.search(_react_request())


class TestFallbackPath:

    async def test_index_failure_falls_back_to_database(self, orchestrator, fake_index):
        fake_index.fail = True

        response = await orchestrator.search(_react_request())

        assert response.fallback is True
        assert response.total == 3
        assert [item.video.id for item in response.results] == [3, 2, 1]
        assert all(item.score == FALLBACK_SCORE for item in response.results)
        assert all(item.highlights == {} for item in response.results)

    async def test_fallback_results_are_never_cached(self, orchestrator, fake_index, fake_redis):
        fake_index.fail = True

        await orchestrator.search(_react_request())
        second = await orchestrator.search(_react_request())

        assert fake_redis.values == {}
        assert second.from_cache is False
        assert second.fallback is True
        assert len(fake_index.queries) == 2

    async def test_index_recovery_is_picked_up_immediately(self, orchestrator, fake_index):
        fake_index.fail = True
        await orchestrator.search(_react_request())

        fake_index.fail = False
        response = await orchestrator.search(_react_request())

        assert response.fallback is False

    async def test_page_past_the_end_is_empty(self, orchestrator, fake_index):
        fake_index.fail = True

        response = await orchestrator.search(_react_request(page=5, page_size=2))

        assert response.results == []
        assert response.total == 3
        assert response.page == 5

    async def test_database_failure_is_a_service_error(self, fake_index, search_cache, analytics, search_settings):
        fake_index.fail = True
        broken_store = MagicMock()
        broken_store.count_matching = AsyncMock(side_effect=SQLAlchemyError("db down"))
        orchestrator = SearchOrchestrator(broken_store, fake_index, search_cache, analytics, search_settings)

        with pytest.raises(SearchServiceError):
            await orchestrator.search(_react_request())

    async def test_no_rows_skips_the_page_query(self, fake_index, search_cache, analytics, search_settings):
        fake_index.fail = True
        mock_store = MagicMock()
        mock_store.count_matching = AsyncMock(return_value=0)
        mock_store.find_matching = AsyncMock()
        orchestrator = SearchOrchestrator(mock_store, fake_index, search_cache, analytics, search_settings)

        response = await orchestrator.search(_react_request())

        assert response.total == 0
        mock_store.find_matching.assert_not_awaited()


class TestSearchHistory:

    async def test_every_search_is_recorded_once(self, orchestrator, fake_index, analytics):
        await orchestrator.search(_react_request())
        await orchestrator.search(_react_request())
        fake_index.fail = True
        await orchestrator.search(SearchRequest(query="bangkok"))

        history = await analytics.recent(10)

        assert [entry.query for entry in history] == ["bangkok", "react tutorial", "react tutorial"]
        assert [(entry.fallback, entry.from_cache) for entry in history] == [
            (True, False),
            (False, True),
            (False, False),
        ]
        assert [entry.result_count for entry in history] == [1, 3, 3]

    async def test_failed_search_is_not_recorded(self, fake_index, search_cache, analytics, search_settings):
        fake_index.fail = True
        broken_store = MagicMock()
        broken_store.count_matching = AsyncMock(side_effect=SQLAlchemyError("db down"))
        orchestrator = SearchOrchestrator(broken_store, fake_index, search_cache, analytics, search_settings)

        with pytest.raises(SearchServiceError):
            await orchestrator.search(_react_request())

        assert await analytics.recent(10) == []

    async def test_search_is_recorded_through_analytics(self, store, fake_index, search_cache, search_settings):
        mock_analytics = MagicMock()
        mock_analytics.record = AsyncMock(return_value=None)
        orchestrator = SearchOrchestrator(store, fake_index, search_cache, mock_analytics, search_settings)

        response = await orchestrator.search(_react_request())

        assert response.total == 3
        mock_analytics.record.assert_awaited_once()


class TestRequestHandling:

    async def test_pagination_is_clamped(self, orchestrator, fake_index):
        response = await orchestrator.search(SearchRequest(page=0, page_size=500))

        assert response.page == 1
        assert response.page_size == 100
        assert fake_index.queries[0].offset == 0
        assert fake_index.queries[0].size == 100

    async def test_second_page(self, orchestrator):
        response = await orchestrator.search(SearchRequest(sort=SortOption.UPLOAD_DATE, page=2, page_size=2))

        assert [item.video.id for item in response.results] == [2, 4]
        assert response.total == 6

    async def test_empty_duration_range_returns_nothing(self, orchestrator, fake_index):
        request = SearchRequest(filters=normalize({"duration": "long", "maxDuration": 600}))

        indexed = await orchestrator.search(request)
        fake_index.fail = True
        fallback = await orchestrator.search(request.model_copy(update={"page": 2}))

        assert indexed.total == 0
        assert indexed.results == []
        assert fallback.total == 0
        assert fallback.fallback is True

    async def test_categories(self, orchestrator, videos):
        assert await orchestrator.categories() == ["education", "fitness", "travel"]

    async def test_popular_tags(self, orchestrator, videos):
        tags = await orchestrator.popular_tags(2)

        assert [(tag.name, tag.count) for tag in tags] == [("react", 3), ("typescript", 2)]

    async def test_popular_tags_database_failure(self, fake_index, search_cache, analytics, search_settings):
        broken_store = MagicMock()
        broken_store.popular_tags = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))
        orchestrator = SearchOrchestrator(broken_store, fake_index, search_cache, analytics, search_settings)

        with pytest.raises(SearchServiceError):
            await orchestrator.popular_tags()
