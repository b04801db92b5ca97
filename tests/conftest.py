"""
Shared fixtures and helpers for the test suite.
"""

import json

import pytest
import requests

from newsrag.models import Article


def make_response(status_code=200, body=None, url="https://api.example.com/"):
    """Build a real requests.Response with a JSON (or raw) body."""
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    if isinstance(body, (bytes, str)):
        response._content = body.encode() if isinstance(body, str) else body
    else:
        response._content = json.dumps(body if body is not None else {}).encode()
    return response


def make_article(title="Title", content="Content", link="https://news.example.com/a",
                 published_at="2024-05-01T10:00:00+00:00", source_name="Example News",
                 article_id=None):
    return Article(
        id=article_id or f"id-{title}",
        title=title,
        content=content,
        link=link,
        published_at=published_at,
        source_name=source_name,
    )


def unit_vector(dimension, index, weight=1.0):
    """Vector with ``weight`` at ``index`` and zeros elsewhere."""
    vector = [0.0] * dimension
    vector[index] = weight
    return vector


@pytest.fixture
def response_factory():
    return make_response
