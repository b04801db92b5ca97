"""
Integration Tests for the Main Pipeline System

Tests cover:
- Component wiring and dependency injection
- Readiness state machine
- Queries before and after initialization
- Refresh and serving an existing index
- Statistics
"""

import os
import threading
import time

import pytest
from unittest.mock import Mock, patch

from conftest import unit_vector
from newsrag.config import Config
from newsrag.embeddings.embedding_client import EmbeddingClient
from newsrag.errors import FeedFailure, IndexStoreFailure, NotInitialized
from newsrag.generation.generation_client import GenerationClient
from newsrag.ingestion.feed_fetcher import FeedFetcher
from newsrag.main_pipeline import NewsRAGSystem, ServiceState
from newsrag.models import FetchedFeed, RawItem
from newsrag.storage.index_store import IndexStore


DIMENSION = 4


@pytest.fixture
def config():
    with patch.dict(os.environ, {}, clear=True):
        return Config(
            embedding_dimension=DIMENSION,
            feed_sources=["https://a.example.com/rss", "https://b.example.com/rss"],
        )


@pytest.fixture
def embedding_client():
    client = Mock(spec=EmbeddingClient)
    client.dimension = DIMENSION
    client.embed.return_value = unit_vector(DIMENSION, 0)
    return client


@pytest.fixture
def generation_client():
    client = Mock(spec=GenerationClient)
    client.generate.return_value = "Answer."
    return client


@pytest.fixture
def feed_fetcher():
    fetcher = Mock(spec=FeedFetcher)
    fetcher.fetch.return_value = FetchedFeed(title="Example", items=[
        RawItem(title=f"Story {i}", link=f"https://news.example.com/{i}", content_snippet="text")
        for i in range(3)
    ])
    return fetcher


@pytest.fixture
def system(config, embedding_client, generation_client, feed_fetcher):
    limiter = Mock()
    limiter.acquire.return_value = 0.0
    return NewsRAGSystem(
        config=config,
        embedding_client=embedding_client,
        generation_client=generation_client,
        index_store=IndexStore(),
        feed_fetcher=feed_fetcher,
        rate_limiter=limiter,
    )


class TestSystemInitialization:
    """Test wiring and initial state."""

    def test_components_injected(self, system, embedding_client, generation_client):
        assert system.embedding_client is embedding_client
        assert system.generation_client is generation_client
        assert system.rag_service.embedding_client is embedding_client
        assert system.ingestion.embedding_client is embedding_client

    def test_starts_uninitialized(self, system):
        assert system.state is ServiceState.UNINITIALIZED
        assert system.is_ready is False

    def test_default_components_from_config(self, config, tmp_path):
        config.update(index_dir=str(tmp_path / "index"))

        with patch('newsrag.main_pipeline.create_generation_client') as mock_generation:
            system = NewsRAGSystem(config=config)

        mock_generation.assert_called_once_with(config)
        assert system.embedding_client.dimension == DIMENSION
        assert system.index_store.storage_dir == tmp_path / "index"
        assert system.ingestion.sources == config.feed_sources


class TestQueryBeforeReady:
    """Queries must not reach any provider before initialization."""

    def test_query_raises_not_initialized(self, system, embedding_client, generation_client):
        with pytest.raises(NotInitialized, match="not initialized"):
            system.process_query("What happened today?")

        embedding_client.embed.assert_not_called()
        generation_client.generate.assert_not_called()

    def test_refresh_requires_initialize(self, system):
        with pytest.raises(NotInitialized):
            system.refresh()


class TestInitialize:
    """Test the ingestion lifecycle."""

    def test_initialize_makes_ready(self, system):
        report = system.initialize()

        assert system.state is ServiceState.READY
        assert report.succeeded == 6
        assert system.last_report is report

    def test_query_after_initialize(self, system, generation_client):
        system.initialize()

        answer = system.process_query("What happened?")

        assert answer.response_text == "Answer."
        assert len(answer.sources) == 5
        generation_client.generate.assert_called_once()

    def test_top_k_passed_through(self, system):
        system.initialize()

        answer = system.process_query("What happened?", top_k=2)

        assert len(answer.sources) == 2

    def test_partial_source_failure_still_ready(self, system, feed_fetcher):
        good = feed_fetcher.fetch.return_value

        def fetch(url):
            if url.startswith("https://b."):
                raise FeedFailure(url, "down")
            return good

        feed_fetcher.fetch.side_effect = fetch

        report = system.initialize()

        assert system.is_ready
        assert report.succeeded == 3
        assert len(report.failed_sources) == 1

    def test_collection_failure_sets_failed(self, config, embedding_client, generation_client,
                                            feed_fetcher):
        store = IndexStore()
        store.ensure_collection(config.collection_name, DIMENSION + 1, "Cosine")
        system = NewsRAGSystem(
            config=config,
            embedding_client=embedding_client,
            generation_client=generation_client,
            index_store=store,
            feed_fetcher=feed_fetcher,
            rate_limiter=Mock(),
        )

        with pytest.raises(IndexStoreFailure):
            system.initialize()

        assert system.state is ServiceState.FAILED
        with pytest.raises(NotInitialized):
            system.process_query("q")

    def test_refresh_keeps_serving(self, system):
        system.initialize()

        report = system.refresh()

        assert system.is_ready
        assert report.succeeded == 6
        assert system.index_store.count("news_articles") == 12

    def test_initialize_twice_refreshes(self, system):
        system.initialize()

        with patch.object(system, 'refresh', wraps=system.refresh) as mock_refresh:
            system.initialize()

        mock_refresh.assert_called_once()


class TestConcurrentInitialize:
    """A second initialize while the first is running must not take the service offline."""

    def test_waiting_initialize_refreshes_without_leaving_ready(self, system, feed_fetcher):
        feed = feed_fetcher.fetch.return_value
        calls = []
        first_started = threading.Event()
        release_first = threading.Event()
        second_started = threading.Event()
        release_second = threading.Event()

        def fetch(url):
            position = len(calls)
            calls.append(url)
            if position == 0:
                first_started.set()
                release_first.wait(5)
            elif position == 2:
                second_started.set()
                release_second.wait(5)
            return feed

        feed_fetcher.fetch.side_effect = fetch
        errors = []

        def run_initialize():
            try:
                system.initialize()
            except Exception as e:
                errors.append(e)

        first = threading.Thread(target=run_initialize)
        second = threading.Thread(target=run_initialize)

        first.start()
        assert first_started.wait(5)
        second.start()
        time.sleep(0.1)
        release_first.set()

        assert second_started.wait(5)
        try:
            assert system.state is ServiceState.READY
            answer = system.process_query("What happened?")
            assert answer.response_text == "Answer."
        finally:
            release_second.set()
            first.join(5)
            second.join(5)

        assert errors == []
        assert len(calls) == 4
        assert system.state is ServiceState.READY


class TestOpenExisting:
    """Test serving a persisted index without ingesting."""

    def test_open_existing(self, system, feed_fetcher):
        system.open_existing()

        assert system.is_ready
        feed_fetcher.fetch.assert_not_called()

    def test_open_existing_schema_mismatch(self, config, embedding_client, generation_client):
        store = IndexStore()
        store.ensure_collection(config.collection_name, DIMENSION, "Dot")
        system = NewsRAGSystem(
            config=config,
            embedding_client=embedding_client,
            generation_client=generation_client,
            index_store=store,
            feed_fetcher=Mock(spec=FeedFetcher),
            rate_limiter=Mock(),
        )

        with pytest.raises(IndexStoreFailure):
            system.open_existing()

        assert system.state is ServiceState.FAILED


class TestStats:
    """Test statistics."""

    def test_stats_before_initialize(self, system):
        stats = system.get_stats()

        assert stats['state'] == "uninitialized"
        assert stats['index'] == {'collection': "news_articles", 'count': 0}
        assert stats['sources'] == 2
        assert stats['ingestion']['feed_max_items'] == 20
        assert stats['ingestion']['collection_name'] == "news_articles"
        assert stats['last_ingestion'] is None

    def test_stats_after_initialize(self, system):
        system.initialize()

        stats = system.get_stats()

        assert stats['state'] == "ready"
        assert stats['index']['count'] == 6
        assert stats['index']['dimension'] == DIMENSION
        assert stats['index']['metric'] == "Cosine"
        assert stats['last_ingestion']['succeeded'] == 6
        assert stats['embedding_provider'] == "jina"
