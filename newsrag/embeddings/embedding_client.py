"""
Embedding Client

Converts text into a fixed-length dense vector through an external embedding
provider. Supports:
- Jina AI (OpenAI-compatible ``/v1/embeddings``, bearer token auth)
- A local Ollama server (``/api/embeddings``)

Every call has an explicit timeout; transient provider errors (timeouts,
429, 5xx) are retried with backoff, everything else raises EmbeddingFailure.
"""

import logging
from typing import Any, Callable, List, Optional

import numpy as np
import requests

from ..errors import EmbeddingFailure
from ..utils.http import create_session, post_json

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """
    Base class for embedding providers.

    Subclasses implement ``_request_embedding`` and return the raw vector;
    this class validates input, translates transport errors and checks the
    vector dimension.
    """

    provider = "base"

    def __init__(
        self,
        model: str,
        dimension: int = 768,
        timeout: int = 15,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
        session: Optional[requests.Session] = None
    ):
        """
        Args:
            model: Provider model name
            dimension: Expected vector length
            timeout: Request timeout in seconds
            max_retries: Retries for transient failures
            retry_backoff: Base backoff delay in seconds
            session: Optional requests session (default: pooled session)
        """
        self.model = model
        self.dimension = dimension
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.session = session or create_session()

    def _request_embedding(
        self,
        text: str,
        throttle: Optional[Callable[[], Any]] = None
    ) -> List[float]:
        raise NotImplementedError

    def embed(self, text: str, throttle: Optional[Callable[[], Any]] = None) -> List[float]:
        """
        Embed a single text.

        Args:
            text: Non-empty input text (caller truncates/combines)
            throttle: Called before every HTTP attempt, retries included

        Returns:
            Embedding vector as a list of floats

        Raises:
            ValueError: If text is empty
            EmbeddingFailure: On provider, transport or format errors
        """
        if not text or not text.strip():
            raise ValueError("Text to embed cannot be empty")

        try:
            vector = self._request_embedding(text, throttle)
        except EmbeddingFailure:
            raise
        except requests.exceptions.Timeout:
            raise EmbeddingFailure(
                f"{self.provider} embedding request timed out after {self.timeout}s"
            )
        except requests.exceptions.ConnectionError as e:
            raise EmbeddingFailure(f"Unable to connect to {self.provider} embedding provider: {e}")
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            message = f"HTTP error from {self.provider} embedding provider: {e}"
            if status_code == 422:
                detail = _response_detail(e.response)
                if detail:
                    logger.error(f"{self.provider} 422 detail: {detail}")
                    message = f"{message} (detail: {detail})"
            raise EmbeddingFailure(message, status_code=status_code)
        except requests.exceptions.RequestException as e:
            raise EmbeddingFailure(f"Error calling {self.provider} embedding provider: {e}")
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingFailure(f"Unexpected embedding response format: {e!r}")

        embedding = np.asarray(vector, dtype=np.float32)
        if embedding.ndim != 1 or len(embedding) != self.dimension:
            raise EmbeddingFailure(
                f"Expected {self.dimension} dimensions, got {embedding.shape}. "
                f"Check that EMBEDDING_DIMENSION matches model '{self.model}'."
            )

        return embedding.tolist()


class JinaEmbeddingClient(EmbeddingClient):
    """Embedding client for Jina AI's OpenAI-compatible embeddings API."""

    provider = "jina"

    def __init__(
        self,
        api_key: str,
        model: str = "jina-embeddings-v2-base-en",
        api_url: str = "https://api.jina.ai/v1/embeddings",
        **kwargs
    ):
        super().__init__(model=model, **kwargs)
        self.api_key = api_key
        self.api_url = api_url

    def _request_embedding(
        self,
        text: str,
        throttle: Optional[Callable[[], Any]] = None
    ) -> List[float]:
        response = post_json(
            self.session,
            self.api_url,
            {'model': self.model, 'input': [text]},
            headers={
                'Content-Type': 'application/json',
                'Authorization': f'Bearer {self.api_key}',
            },
            timeout=self.timeout,
            max_retries=self.max_retries,
            backoff=self.retry_backoff,
            throttle=throttle,
        )
        return response.json()['data'][0]['embedding']


class OllamaEmbeddingClient(EmbeddingClient):
    """Embedding client for a local Ollama server."""

    provider = "ollama"

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        **kwargs
    ):
        super().__init__(model=model, **kwargs)
        self.base_url = base_url.rstrip('/')

    def _request_embedding(
        self,
        text: str,
        throttle: Optional[Callable[[], Any]] = None
    ) -> List[float]:
        response = post_json(
            self.session,
            f"{self.base_url}/api/embeddings",
            {'model': self.model, 'prompt': text},
            timeout=self.timeout,
            max_retries=self.max_retries,
            backoff=self.retry_backoff,
            throttle=throttle,
        )
        return response.json()['embedding']


def _response_detail(response: Optional[requests.Response]) -> Optional[str]:
    """Pull the ``detail`` field out of an error body, if any."""
    if response is None:
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get('detail'):
        return str(body['detail'])
    return None


def create_embedding_client(config) -> EmbeddingClient:
    """
    Build the embedding client selected by configuration.

    Args:
        config: Config instance

    Returns:
        EmbeddingClient for ``config.embedding_provider``
    """
    common = {
        'dimension': config.embedding_dimension,
        'timeout': config.embedding_timeout,
        'max_retries': config.max_retries,
        'retry_backoff': config.retry_backoff,
    }
    if config.embedding_provider == 'ollama':
        return OllamaEmbeddingClient(
            model=config.embedding_model,
            base_url=config.ollama_base_url,
            **common
        )
    if not config.jina_api_key:
        logger.warning("JINA_API_KEY is not set; embedding requests will be rejected")
    return JinaEmbeddingClient(
        api_key=config.jina_api_key,
        model=config.embedding_model,
        api_url=config.jina_api_url,
        **common
    )
