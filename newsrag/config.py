"""
Centralized Configuration Module

Provides a single source of truth for all system configuration parameters.
Loads settings from environment variables with sensible defaults and validation.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, List, Optional
from urllib.parse import urlparse
from dotenv import load_dotenv

from .errors import ConfigValidationError

# Load environment variables
load_dotenv()


DEFAULT_FEED_SOURCES = [
    "https://news.google.com/rss/search?q=when:24h+allinurl:reuters.com&hl=en-US&gl=US&ceid=US:en",
    "https://news.google.com/rss/search?q=when:24h+allinurl:cnn.com&hl=en-US&gl=US&ceid=US:en",
    "https://news.google.com/rss?pz=1&cf=all&hl=en-US&gl=US&ceid=US:en",
    "https://news.google.com/rss/headlines/section/topic/TECHNOLOGY?hl=en-US&gl=US&ceid=US:en",
]

EMBEDDING_PROVIDERS = ('jina', 'ollama')
GENERATION_PROVIDERS = ('gemini', 'ollama')
DISTANCE_METRICS = ('Cosine', 'Dot', 'Euclid')


@dataclass
class Config:
    """
    Centralized configuration for the news RAG service.

    All configuration parameters are loaded from environment variables
    with sensible defaults. Validation is performed on initialization.
    """

    # Embedding Settings
    embedding_provider: str = field(default="jina")
    jina_api_key: str = field(default="", repr=False)
    jina_api_url: str = field(default="https://api.jina.ai/v1/embeddings")
    embedding_model: str = field(default="jina-embeddings-v2-base-en")
    embedding_dimension: int = field(default=768)
    embedding_timeout: int = field(default=15)
    embedding_rate_per_second: float = field(default=10.0)

    # Generation Settings
    generation_provider: str = field(default="gemini")
    gemini_api_key: str = field(default="", repr=False)
    gemini_api_url: str = field(default="https://generativelanguage.googleapis.com/v1beta")
    generation_model: str = field(default="gemini-2.0-flash")
    generation_timeout: int = field(default=20)
    ollama_base_url: str = field(default="http://localhost:11434")

    # Retry Settings
    max_retries: int = field(default=2)
    retry_backoff: float = field(default=0.5)

    # Feed Settings
    feed_sources: List[str] = field(default_factory=lambda: list(DEFAULT_FEED_SOURCES))
    feed_max_items: int = field(default=20)
    feed_timeout: int = field(default=15)
    ingest_max_workers: int = field(default=1)

    # Index Settings
    collection_name: str = field(default="news_articles")
    distance_metric: str = field(default="Cosine")
    index_dir: str = field(default="data/index")
    top_k_default: int = field(default=5)

    # Chat Settings
    chat_history_limit: int = field(default=50)
    chat_ttl_seconds: int = field(default=86400)
    chat_storage_dir: str = field(default="")

    def __post_init__(self):
        """Load configuration from environment and validate."""
        self._load_from_environment()
        self._validate()

    def _load_from_environment(self):
        """Load configuration from environment variables."""
        # Embedding Settings
        self.embedding_provider = self._get_env_str('EMBEDDING_PROVIDER', self.embedding_provider).lower()
        self.jina_api_key = self._get_env_str('JINA_API_KEY', self.jina_api_key)
        self.jina_api_url = self._get_env_str('JINA_API_URL', self.jina_api_url)
        self.embedding_model = self._get_env_str('EMBEDDING_MODEL', self.embedding_model)
        self.embedding_dimension = self._get_env_int('EMBEDDING_DIMENSION', self.embedding_dimension)
        self.embedding_timeout = self._get_env_int('EMBEDDING_TIMEOUT', self.embedding_timeout)
        self.embedding_rate_per_second = self._get_env_float(
            'EMBEDDING_RATE_PER_SECOND', self.embedding_rate_per_second
        )

        # Generation Settings
        self.generation_provider = self._get_env_str('GENERATION_PROVIDER', self.generation_provider).lower()
        self.gemini_api_key = self._get_env_str('GEMINI_API_KEY', self.gemini_api_key)
        self.gemini_api_url = self._get_env_str('GEMINI_API_URL', self.gemini_api_url)
        self.generation_model = self._get_env_str('GENERATION_MODEL', self.generation_model)
        self.generation_timeout = self._get_env_int('GENERATION_TIMEOUT', self.generation_timeout)
        self.ollama_base_url = self._get_env_str('OLLAMA_BASE_URL', self.ollama_base_url)

        # Retry Settings
        self.max_retries = self._get_env_int('MAX_RETRIES', self.max_retries)
        self.retry_backoff = self._get_env_float('RETRY_BACKOFF', self.retry_backoff)

        # Feed Settings
        self.feed_sources = self._get_env_list('FEED_SOURCES', self.feed_sources)
        self.feed_max_items = self._get_env_int('FEED_MAX_ITEMS', self.feed_max_items)
        self.feed_timeout = self._get_env_int('FEED_TIMEOUT', self.feed_timeout)
        self.ingest_max_workers = self._get_env_int('INGEST_MAX_WORKERS', self.ingest_max_workers)

        # Index Settings
        self.collection_name = self._get_env_str('COLLECTION_NAME', self.collection_name)
        self.distance_metric = self._get_env_str('DISTANCE_METRIC', self.distance_metric)
        self.index_dir = self._get_env_path('INDEX_DIR', self.index_dir)
        self.top_k_default = self._get_env_int('TOP_K_DEFAULT', self.top_k_default)

        # Chat Settings
        self.chat_history_limit = self._get_env_int('CHAT_HISTORY_LIMIT', self.chat_history_limit)
        self.chat_ttl_seconds = self._get_env_int('CHAT_TTL_SECONDS', self.chat_ttl_seconds)
        self.chat_storage_dir = self._get_env_path('CHAT_STORAGE_DIR', self.chat_storage_dir)

    def _get_env_str(self, key: str, default: str) -> str:
        """Get string value from environment."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
        return value

    def _get_env_int(self, key: str, default: int) -> int:
        """Get integer value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid integer value for {key}: '{value}'"
            )

    def _get_env_float(self, key: str, default: float) -> float:
        """Get float value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return float(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid float value for {key}: '{value}'"
            )

    def _get_env_list(self, key: str, default: List[str]) -> List[str]:
        """Get comma separated list from environment."""
        value = os.getenv(key)
        if value is None:
            return default
        return [item.strip() for item in value.split(',') if item.strip()]

    def _get_env_path(self, key: str, default: str) -> str:
        """Get path value from environment with expansion."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
            # Expand ~ to home directory
            value = os.path.expanduser(value)
        return value

    @staticmethod
    def _is_url(value: str) -> bool:
        parsed = urlparse(value)
        return bool(parsed.scheme and parsed.netloc)

    def _validate(self):
        """Validate configuration parameters."""
        # Validate choices
        if self.embedding_provider not in EMBEDDING_PROVIDERS:
            raise ConfigValidationError(
                f"embedding_provider must be one of {EMBEDDING_PROVIDERS}, got '{self.embedding_provider}'"
            )
        if self.generation_provider not in GENERATION_PROVIDERS:
            raise ConfigValidationError(
                f"generation_provider must be one of {GENERATION_PROVIDERS}, got '{self.generation_provider}'"
            )
        if self.distance_metric not in DISTANCE_METRICS:
            raise ConfigValidationError(
                f"distance_metric must be one of {DISTANCE_METRICS}, got '{self.distance_metric}'"
            )

        # Validate non-empty strings
        if not self.embedding_model:
            raise ConfigValidationError("embedding_model cannot be empty")
        if not self.generation_model:
            raise ConfigValidationError("generation_model cannot be empty")
        if not self.collection_name:
            raise ConfigValidationError("collection_name cannot be empty")

        # Validate positive integers
        positive_int_fields = [
            ('embedding_dimension', self.embedding_dimension),
            ('embedding_timeout', self.embedding_timeout),
            ('generation_timeout', self.generation_timeout),
            ('feed_max_items', self.feed_max_items),
            ('feed_timeout', self.feed_timeout),
            ('ingest_max_workers', self.ingest_max_workers),
            ('top_k_default', self.top_k_default),
            ('chat_history_limit', self.chat_history_limit),
            ('chat_ttl_seconds', self.chat_ttl_seconds),
        ]

        for field_name, value in positive_int_fields:
            if value <= 0:
                raise ConfigValidationError(
                    f"{field_name} must be positive, got {value}"
                )

        if self.max_retries < 0:
            raise ConfigValidationError(
                f"max_retries must be non-negative, got {self.max_retries}"
            )
        if self.retry_backoff < 0:
            raise ConfigValidationError(
                f"retry_backoff must be non-negative, got {self.retry_backoff}"
            )
        if self.embedding_rate_per_second <= 0:
            raise ConfigValidationError(
                f"embedding_rate_per_second must be positive, got {self.embedding_rate_per_second}"
            )

        # Validate URL format
        for field_name in ('jina_api_url', 'gemini_api_url', 'ollama_base_url'):
            value = getattr(self, field_name)
            if not self._is_url(value):
                raise ConfigValidationError(
                    f"Invalid URL for {field_name}: {value}"
                )

        if not self.feed_sources:
            raise ConfigValidationError("feed_sources cannot be empty")
        for source in self.feed_sources:
            if not self._is_url(source):
                raise ConfigValidationError(f"Invalid feed source URL: {source}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def update(self, **kwargs):
        """
        Update configuration values with validation.

        Args:
            **kwargs: Configuration parameters to update

        Raises:
            ConfigValidationError: If validation fails
        """
        # Store original values for rollback
        original_values = {}

        try:
            for key, value in kwargs.items():
                if not hasattr(self, key):
                    raise ConfigValidationError(f"Unknown configuration parameter: {key}")
                original_values[key] = getattr(self, key)
                setattr(self, key, value)

            self._validate()

        except Exception:
            # Rollback on validation failure
            for key, value in original_values.items():
                setattr(self, key, value)
            raise

    def get_ingestion_config(self) -> Dict[str, Any]:
        """Get ingestion-related configuration."""
        return {
            'feed_sources': list(self.feed_sources),
            'feed_max_items': self.feed_max_items,
            'ingest_max_workers': self.ingest_max_workers,
            'embedding_rate_per_second': self.embedding_rate_per_second,
            'collection_name': self.collection_name,
        }


# Singleton instance
_config_instance: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        Config: Global configuration instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def reset_config():
    """Reset the global configuration instance."""
    global _config_instance
    _config_instance = None
