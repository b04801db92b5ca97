"""
Main Pipeline System

The service object the chat layer and the CLI talk to. It is constructed
once at startup, owns the shared clients and the index store, and tracks
readiness with an explicit state machine:

    UNINITIALIZED -> INGESTING -> READY
                              \\-> FAILED   (collection setup failed)

Queries are served only in READY. A refresh re-runs ingestion while the
service stays READY, so queries keep being answered from the current index.
"""

import logging
import threading
from enum import Enum
from typing import Any, Dict, Optional

from .config import Config, get_config
from .embeddings.embedding_client import EmbeddingClient, create_embedding_client
from .embeddings.rate_limiter import TokenBucketRateLimiter
from .errors import NotInitialized
from .generation.generation_client import GenerationClient, create_generation_client
from .ingestion.feed_fetcher import FeedFetcher
from .ingestion.pipeline import IngestionPipeline
from .models import Answer, IngestionReport
from .query.rag_service import RAGService
from .storage.index_store import IndexStore

logger = logging.getLogger(__name__)


class ServiceState(Enum):
    UNINITIALIZED = "uninitialized"
    INGESTING = "ingesting"
    READY = "ready"
    FAILED = "failed"


class NewsRAGSystem:
    """
    Main system that wires all components together.

    Provides:
    - initialize(): first ingestion run, required before queries
    - refresh(): re-run ingestion on demand
    - process_query(): grounded answer with sources
    - get_stats(): state and index statistics
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        embedding_client: Optional[EmbeddingClient] = None,
        generation_client: Optional[GenerationClient] = None,
        index_store: Optional[IndexStore] = None,
        feed_fetcher: Optional[FeedFetcher] = None,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        show_progress: bool = False
    ):
        """
        Args:
            config: Configuration (default: global config)
            embedding_client: Embedding client (default: from config)
            generation_client: Generation client (default: from config)
            index_store: Vector index (default: persisted under config.index_dir)
            feed_fetcher: Feed fetcher (default: from config)
            rate_limiter: Limiter for ingestion embedding calls (default: from config)
            show_progress: Show ingestion progress bars
        """
        self.config = config or get_config()

        # Initialize components (dependency injection or defaults)
        self.embedding_client = embedding_client or create_embedding_client(self.config)
        self.generation_client = generation_client or create_generation_client(self.config)
        self.index_store = index_store or IndexStore(storage_dir=self.config.index_dir)
        self.feed_fetcher = feed_fetcher or FeedFetcher(
            max_items=self.config.feed_max_items,
            timeout=self.config.feed_timeout
        )
        self.rate_limiter = rate_limiter or TokenBucketRateLimiter(
            rate=self.config.embedding_rate_per_second,
            capacity=1
        )

        self.ingestion = IngestionPipeline(
            feed_fetcher=self.feed_fetcher,
            embedding_client=self.embedding_client,
            index_store=self.index_store,
            sources=self.config.feed_sources,
            collection_name=self.config.collection_name,
            metric=self.config.distance_metric,
            rate_limiter=self.rate_limiter,
            max_workers=self.config.ingest_max_workers,
            show_progress=show_progress
        )
        self.rag_service = RAGService(
            embedding_client=self.embedding_client,
            index_store=self.index_store,
            generation_client=self.generation_client,
            collection_name=self.config.collection_name,
            top_k=self.config.top_k_default
        )

        self._state = ServiceState.UNINITIALIZED
        self._state_lock = threading.Lock()
        self._ingest_lock = threading.Lock()
        self.last_report: Optional[IngestionReport] = None

    @property
    def state(self) -> ServiceState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: ServiceState) -> None:
        with self._state_lock:
            logger.debug(f"Service state {self._state.value} -> {state.value}")
            self._state = state

    @property
    def is_ready(self) -> bool:
        return self.state is ServiceState.READY

    def initialize(self) -> IngestionReport:
        """
        Run the first ingestion pass and start serving queries.

        Calling it again once READY behaves like ``refresh``.

        Returns:
            IngestionReport of the run

        Raises:
            IndexStoreFailure: If the collection cannot be set up (state FAILED)
        """
        if self.is_ready:
            return self.refresh()

        with self._ingest_lock:
            # Another caller may have finished initializing while we waited
            if self.is_ready:
                return self._run_refresh()

            self._set_state(ServiceState.INGESTING)
            try:
                report = self.ingestion.run()
            except Exception:
                self._set_state(ServiceState.FAILED)
                logger.exception("Failed to initialize news RAG service")
                raise

            self.last_report = report
            self._set_state(ServiceState.READY)
            logger.info(
                f"News RAG service initialized: {report.succeeded} articles indexed, "
                f"{len(report.failed_sources)} sources failed"
            )
            return report

    def open_existing(self) -> None:
        """
        Serve queries from the already persisted index without ingesting.

        Raises:
            IndexStoreFailure: If the collection cannot be set up (state FAILED)
        """
        with self._ingest_lock:
            try:
                self.ingestion.ensure_collection()
            except Exception:
                self._set_state(ServiceState.FAILED)
                raise
            self._set_state(ServiceState.READY)
            logger.info(
                f"Serving existing collection '{self.config.collection_name}' "
                f"({self.index_store.count(self.config.collection_name)} articles)"
            )

    def refresh(self) -> IngestionReport:
        """
        Re-run ingestion while continuing to serve queries.

        Returns:
            IngestionReport of the run

        Raises:
            NotInitialized: If initialize() has not completed
        """
        if not self.is_ready:
            raise NotInitialized("RAG service not initialized")

        with self._ingest_lock:
            return self._run_refresh()

    def _run_refresh(self) -> IngestionReport:
        """Ingest while READY. Caller holds ``_ingest_lock``."""
        report = self.ingestion.run()
        self.last_report = report
        logger.info(f"Refresh complete: {report.succeeded} articles indexed")
        return report

    def process_query(self, text: str, top_k: Optional[int] = None) -> Answer:
        """
        Answer a user message.

        Args:
            text: User's question
            top_k: Number of articles to retrieve (default: config.top_k_default)

        Returns:
            Answer with response text and sources

        Raises:
            NotInitialized: Before initialize() completes (no external call is made)
        """
        if not self.is_ready:
            raise NotInitialized("RAG service not initialized")
        return self.rag_service.query(text, top_k=top_k)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get system statistics.

        Returns:
            Dictionary with state, index, ingestion settings and last ingestion figures
        """
        collection = self.config.collection_name
        if collection in self.index_store.list_collections():
            info = self.index_store.collection_info(collection)
            index_stats = {
                'collection': info.name,
                'dimension': info.dimension,
                'metric': info.metric,
                'count': info.count,
            }
        else:
            index_stats = {'collection': collection, 'count': 0}

        ingestion = self.config.get_ingestion_config()

        return {
            'state': self.state.value,
            'index': index_stats,
            'sources': len(ingestion['feed_sources']),
            'ingestion': ingestion,
            'embedding_provider': self.config.embedding_provider,
            'generation_provider': self.config.generation_provider,
            'last_ingestion': self.last_report.to_dict() if self.last_report else None,
        }
