"""
Tests for the Generation Client

Tests cover:
- Prompt construction
- Gemini request format and response parsing
- Error translation and empty completions
- Ollama generation through LangChain
- Factory selection from configuration
"""

import pytest
import requests
from unittest.mock import Mock, patch

from conftest import make_response
from newsrag.config import Config
from newsrag.errors import GenerationFailure
from newsrag.generation.generation_client import (
    GeminiGenerationClient,
    OllamaGenerationClient,
    build_prompt,
    create_generation_client,
)


def gemini_body(text):
    return {'candidates': [{'content': {'parts': [{'text': text}], 'role': 'model'}}]}


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def gemini(session):
    return GeminiGenerationClient(api_key="g-key", max_retries=0, session=session)


class TestBuildPrompt:
    """Test the grounded prompt."""

    def test_contains_context_and_query(self):
        prompt = build_prompt("What happened?", "Title: A\nContent: B")

        assert "Context: Title: A\nContent: B" in prompt
        assert "User Query: What happened?" in prompt
        assert "ONLY the information" in prompt
        assert "please say so" in prompt

    def test_empty_context(self):
        prompt = build_prompt("What happened?", "")

        assert "Context: \n" in prompt


class TestGeminiGenerationClient:
    """Test the Gemini provider."""

    def test_generate_success(self, gemini, session):
        session.post.return_value = make_response(200, gemini_body("Rates rose."))

        assert gemini.generate("prompt") == "Rates rose."

    def test_request_format(self, gemini, session):
        session.post.return_value = make_response(200, gemini_body("ok"))

        gemini.generate("the prompt")

        args, kwargs = session.post.call_args
        assert args[0] == (
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent"
        )
        assert kwargs['json'] == {'contents': [{'parts': [{'text': 'the prompt'}]}]}
        assert kwargs['headers']['X-goog-api-key'] == "g-key"
        assert kwargs['timeout'] == 20

    def test_malformed_response(self, gemini, session):
        session.post.return_value = make_response(200, {'candidates': []})

        with pytest.raises(GenerationFailure, match="format"):
            gemini.generate("prompt")

    def test_empty_completion(self, gemini, session):
        session.post.return_value = make_response(200, gemini_body("   "))

        with pytest.raises(GenerationFailure, match="empty"):
            gemini.generate("prompt")

    def test_http_error(self, gemini, session):
        session.post.return_value = make_response(403, {'error': {'message': 'denied'}})

        with pytest.raises(GenerationFailure) as exc_info:
            gemini.generate("prompt")

        assert exc_info.value.status_code == 403

    def test_timeout(self, gemini, session):
        session.post.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(GenerationFailure, match="timed out"):
            gemini.generate("prompt")


class TestOllamaGenerationClient:
    """Test the Ollama provider."""

    @patch('newsrag.generation.generation_client.ChatOllama')
    def test_generate(self, mock_chat):
        mock_chat.return_value.invoke.return_value = Mock(content="Local answer")

        client = OllamaGenerationClient(model="llama3.1:latest", base_url="http://localhost:11434")

        assert client.generate("prompt") == "Local answer"
        mock_chat.assert_called_once_with(
            model="llama3.1:latest",
            temperature=0.7,
            base_url="http://localhost:11434",
            num_predict=1000
        )

    @patch('newsrag.generation.generation_client.ChatOllama')
    def test_llm_error_translated(self, mock_chat):
        mock_chat.return_value.invoke.side_effect = RuntimeError("model not found")

        client = OllamaGenerationClient()

        with pytest.raises(GenerationFailure, match="model not found"):
            client.generate("prompt")


class TestCreateGenerationClient:
    """Test provider selection."""

    def test_gemini_by_default(self):
        with patch.dict('os.environ', {}, clear=True):
            config = Config(gemini_api_key="abc")
            client = create_generation_client(config)

        assert isinstance(client, GeminiGenerationClient)
        assert client.api_key == "abc"
        assert client.model == "gemini-2.0-flash"

    @patch('newsrag.generation.generation_client.ChatOllama')
    def test_ollama_selected(self, mock_chat):
        with patch.dict('os.environ', {}, clear=True):
            config = Config(generation_provider="ollama", generation_model="llama3.1:latest")
            client = create_generation_client(config)

        assert isinstance(client, OllamaGenerationClient)
