"""
Generation Client

Sends a grounded prompt (retrieved news context + user query) to a generative
model and returns the completion text. Supports Google Gemini over HTTPS and
a local Ollama chat model through LangChain.
"""

import logging
from typing import Optional

import requests
from langchain_ollama import ChatOllama

from ..errors import GenerationFailure
from ..utils.http import create_session, post_json

logger = logging.getLogger(__name__)


GROUNDED_PROMPT_TEMPLATE = """Based on the following news context, please answer the user's query.

Context: {context}

User Query: {query}

Please provide a comprehensive answer based on the news articles provided. Answer using ONLY the information in the context above. If the context doesn't contain relevant information, please say so."""


def build_prompt(query: str, context: str) -> str:
    """
    Build the single grounded prompt sent to the model.

    Args:
        query: User's question
        context: Retrieved context, inserted verbatim (may be empty)

    Returns:
        Complete prompt string
    """
    return GROUNDED_PROMPT_TEMPLATE.format(context=context, query=query)


class GenerationClient:
    """Base class for generative model providers."""

    provider = "base"

    def __init__(self, model: str):
        self.model = model

    def _request_completion(self, prompt: str) -> str:
        raise NotImplementedError

    def generate(self, prompt: str) -> str:
        """
        Generate a completion for a prompt.

        Args:
            prompt: Complete prompt

        Returns:
            Completion text

        Raises:
            GenerationFailure: On provider, transport or format errors, or an
                empty completion
        """
        try:
            text = self._request_completion(prompt)
        except GenerationFailure:
            raise
        except requests.exceptions.Timeout as e:
            raise GenerationFailure(f"{self.provider} generation request timed out: {e}")
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            raise GenerationFailure(
                f"HTTP error from {self.provider} generation provider: {e}",
                status_code=status_code
            )
        except requests.exceptions.RequestException as e:
            raise GenerationFailure(f"Error calling {self.provider} generation provider: {e}")
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationFailure(f"Unexpected generation response format: {e!r}")
        except Exception as e:
            raise GenerationFailure(f"Error generating answer with {self.provider}: {e}")

        if not isinstance(text, str) or not text.strip():
            raise GenerationFailure(f"{self.provider} returned an empty completion")

        return text


class GeminiGenerationClient(GenerationClient):
    """Google Gemini ``generateContent`` over HTTPS."""

    provider = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        api_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: int = 20,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
        session: Optional[requests.Session] = None
    ):
        """
        Args:
            api_key: Gemini API key (sent as ``X-goog-api-key``)
            model: Gemini model name
            api_url: API base URL
            timeout: Request timeout in seconds
            max_retries: Retries for transient failures
            retry_backoff: Base backoff delay in seconds
            session: Optional requests session
        """
        super().__init__(model)
        self.api_key = api_key
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.session = session or create_session()

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/models/{self.model}:generateContent"

    def _request_completion(self, prompt: str) -> str:
        response = post_json(
            self.session,
            self.endpoint,
            {'contents': [{'parts': [{'text': prompt}]}]},
            headers={
                'Content-Type': 'application/json',
                'X-goog-api-key': self.api_key,
            },
            timeout=self.timeout,
            max_retries=self.max_retries,
            backoff=self.retry_backoff,
        )
        return response.json()['candidates'][0]['content']['parts'][0]['text']


class OllamaGenerationClient(GenerationClient):
    """Local Ollama chat model through LangChain."""

    provider = "ollama"

    def __init__(
        self,
        model: str = "llama3.1:latest",
        base_url: str = "http://localhost:11434",
        temperature: float = 0.7,
        max_tokens: int = 1000
    ):
        super().__init__(model)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.llm = ChatOllama(
            model=model,
            temperature=temperature,
            base_url=base_url,
            num_predict=max_tokens
        )

    def _request_completion(self, prompt: str) -> str:
        response = self.llm.invoke(prompt)

        # Extract content from response
        if hasattr(response, 'content'):
            return response.content
        return str(response)


def create_generation_client(config) -> GenerationClient:
    """
    Build the generation client selected by configuration.

    Args:
        config: Config instance

    Returns:
        GenerationClient for ``config.generation_provider``
    """
    if config.generation_provider == 'ollama':
        return OllamaGenerationClient(
            model=config.generation_model,
            base_url=config.ollama_base_url
        )
    if not config.gemini_api_key:
        logger.warning("GEMINI_API_KEY is not set; generation requests will be rejected")
    return GeminiGenerationClient(
        api_key=config.gemini_api_key,
        model=config.generation_model,
        api_url=config.gemini_api_url,
        timeout=config.generation_timeout,
        max_retries=config.max_retries,
        retry_backoff=config.retry_backoff
    )
