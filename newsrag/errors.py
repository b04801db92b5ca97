"""
Error Taxonomy

Exceptions raised by the ingestion and query pipelines. Ingestion isolates
per-item and per-source failures; any failure while answering a query is
fatal to that query and propagates to the caller.
"""

from typing import Optional


class NewsRAGError(Exception):
    """Base class for all errors raised by the news RAG core."""
    pass


class ConfigValidationError(NewsRAGError):
    """Raised when configuration validation fails."""
    pass


class EmbeddingFailure(NewsRAGError):
    """Raised when the embedding provider call fails or returns a malformed body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FeedFailure(NewsRAGError):
    """Raised when a single feed source cannot be fetched or parsed."""

    def __init__(self, source_url: str, message: str):
        super().__init__(f"{source_url}: {message}")
        self.source_url = source_url


class IndexStoreFailure(NewsRAGError):
    """Raised on vector index storage or protocol errors."""
    pass


class GenerationFailure(NewsRAGError):
    """Raised when the generative model call fails or returns a malformed body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotInitialized(NewsRAGError):
    """Raised when a query arrives before the index is ready."""
    pass
