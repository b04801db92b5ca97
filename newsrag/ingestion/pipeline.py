"""
Ingestion Pipeline

Feed Fetcher -> Embedding Client -> Index Store.

Each configured source is fetched, capped and embedded item by item; every
HTTP attempt of an embedding call, retries included, first takes a token
from the shared rate limiter. Failures of a source or of a single item are
recorded in that source's SourceResult and never stop the run. Everything
embedded is written with one batch upsert at the end. Only a failure to set
up the collection is fatal.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from tqdm import tqdm

from ..embeddings.embedding_client import EmbeddingClient
from ..embeddings.rate_limiter import TokenBucketRateLimiter
from ..errors import EmbeddingFailure, FeedFailure, IndexStoreFailure
from ..models import Article, IndexEntry, IngestionReport, SourceResult
from ..storage.index_store import IndexStore
from .feed_fetcher import FeedFetcher

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Populates the vector index from a list of feed sources."""

    def __init__(
        self,
        feed_fetcher: FeedFetcher,
        embedding_client: EmbeddingClient,
        index_store: IndexStore,
        sources: List[str],
        collection_name: str = "news_articles",
        metric: str = "Cosine",
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        max_workers: int = 1,
        show_progress: bool = False
    ):
        """
        Args:
            feed_fetcher: Fetches and caps each source
            embedding_client: Embeds article text
            index_store: Target vector index
            sources: Feed URLs, processed in this order
            collection_name: Target collection
            metric: Distance metric used when creating the collection
            rate_limiter: Shared limiter for embedding calls (default: 100ms spacing)
            max_workers: Sources processed concurrently (1 = sequential)
            show_progress: Show a progress bar over sources
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.feed_fetcher = feed_fetcher
        self.embedding_client = embedding_client
        self.index_store = index_store
        self.sources = list(sources)
        self.collection_name = collection_name
        self.metric = metric
        self.rate_limiter = rate_limiter or TokenBucketRateLimiter.from_interval(0.1)
        self.max_workers = max_workers
        self.show_progress = show_progress

    def ensure_collection(self) -> bool:
        """Create the target collection if needed. Errors propagate."""
        return self.index_store.ensure_collection(
            self.collection_name,
            self.embedding_client.dimension,
            self.metric
        )

    def process_source(self, source_url: str) -> SourceResult:
        """
        Fetch and embed one source.

        Args:
            source_url: Feed URL

        Returns:
            SourceResult with embedded articles and any recorded failures
        """
        result = SourceResult(source_url=source_url)

        try:
            feed = self.feed_fetcher.fetch(source_url)
        except FeedFailure as e:
            logger.error(f"Error processing feed {source_url}: {e}")
            result.error = str(e)
            return result

        result.source_name = feed.title
        result.fetched = len(feed.items)

        for item in feed.items:
            article = Article.from_raw(item, feed.title)
            text = article.combined_text().strip()
            if not text:
                result.failed_items.append((article.link, "empty title and content"))
                continue

            try:
                # Every HTTP attempt, retries included, takes a token
                vector = self.embedding_client.embed(text, throttle=self.rate_limiter.acquire)
            except EmbeddingFailure as e:
                logger.warning(f"Skipping '{article.title[:60]}' from {feed.title}: {e}")
                result.failed_items.append((article.title, str(e)))
                continue

            result.articles.append((article, vector))

        logger.info(
            f"Processed '{feed.title}': {len(result.articles)}/{result.fetched} items embedded"
        )
        return result

    def _process_all(self) -> List[SourceResult]:
        if self.max_workers == 1 or len(self.sources) <= 1:
            iterator = tqdm(self.sources, desc="Ingesting feeds") if self.show_progress else self.sources
            return [self.process_source(source) for source in iterator]

        # Results keep the configured source order
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            results = executor.map(self.process_source, self.sources)
            if self.show_progress:
                results = tqdm(results, total=len(self.sources), desc="Ingesting feeds")
            return list(results)

    def run(self) -> IngestionReport:
        """
        Run one ingestion pass.

        Returns:
            IngestionReport with the number of indexed articles and failures

        Raises:
            IndexStoreFailure: If the collection cannot be created or checked
        """
        start_time = time.time()
        self.ensure_collection()

        results = self._process_all()
        report = IngestionReport.from_results(results)

        entries = [
            IndexEntry.from_article(article, vector)
            for result in results
            for article, vector in result.articles
        ]

        if entries:
            try:
                report.succeeded = self.index_store.upsert_batch(self.collection_name, entries)
                logger.info(f"Ingested {report.succeeded} articles")
            except IndexStoreFailure as e:
                logger.error(f"Batch upsert of {len(entries)} articles failed: {e}")
                report.upsert_error = str(e)
                report.succeeded = 0
        else:
            logger.warning("No articles were embedded; nothing to upsert")

        if report.failed_sources:
            logger.warning(
                f"{len(report.failed_sources)}/{len(self.sources)} sources failed: "
                f"{[failure['url'] for failure in report.failed_sources]}"
            )

        report.duration_s = time.time() - start_time
        return report
