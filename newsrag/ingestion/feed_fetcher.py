"""
Feed Fetcher

Retrieves a syndication feed (RSS/Atom) and normalizes its entries into
RawItem records, capped to a configurable number per source.
"""

import logging
import re
from typing import Optional
from urllib.parse import urlparse

import feedparser
import requests
from bs4 import BeautifulSoup
from dateutil import parser as dateparser

from ..errors import FeedFailure
from ..models import FetchedFeed, RawItem
from ..utils.http import create_session

logger = logging.getLogger(__name__)


def strip_html(text: Optional[str]) -> str:
    """Drop markup and collapse whitespace."""
    if not text:
        return ""
    text = BeautifulSoup(text, 'html.parser').get_text(separator=' ')
    return re.sub(r'\s+', ' ', text).strip()


def normalize_date(value: Optional[str]) -> Optional[str]:
    """
    Convert a feed timestamp to ISO 8601.

    Malformed values are returned unchanged; missing values stay None.
    """
    if not value:
        return None
    try:
        return dateparser.parse(value).isoformat()
    except (ValueError, OverflowError, TypeError):
        logger.debug(f"Keeping unparseable publish date as-is: {value!r}")
        return value


class FeedFetcher:
    """Fetches and parses syndication feeds."""

    def __init__(
        self,
        max_items: int = 20,
        timeout: int = 15,
        session: Optional[requests.Session] = None
    ):
        """
        Args:
            max_items: Maximum items kept per source
            timeout: Request timeout in seconds
            session: Optional requests session (default: pooled session)
        """
        if max_items < 1:
            raise ValueError("max_items must be at least 1")
        self.max_items = max_items
        self.timeout = timeout
        self.session = session or create_session()

    def _parse_entry(self, entry) -> RawItem:
        summary = entry.get('summary')
        content = None
        if entry.get('content'):
            content = entry['content'][0].get('value')

        return RawItem(
            title=strip_html(entry.get('title', '')),
            link=entry.get('link', ''),
            content_snippet=strip_html(summary) or None,
            content=content or summary or None,
            pub_date=normalize_date(entry.get('published') or entry.get('updated')),
        )

    def fetch(self, source_url: str) -> FetchedFeed:
        """
        Fetch one feed source.

        Args:
            source_url: Feed URL

        Returns:
            FetchedFeed with the feed title and at most ``max_items`` items

        Raises:
            FeedFailure: On transport errors, non-2xx responses or unparseable feeds
        """
        try:
            response = self.session.get(source_url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout:
            raise FeedFailure(source_url, f"request timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            raise FeedFailure(source_url, f"request failed: {e}")

        parsed = feedparser.parse(response.content)
        if parsed.get('bozo') and not parsed.get('entries'):
            reason = parsed.get('bozo_exception', 'unknown parse error')
            raise FeedFailure(source_url, f"unparseable feed: {reason}")

        feed_title = strip_html(parsed.get('feed', {}).get('title', '')) or urlparse(source_url).netloc

        items = []
        for entry in parsed.entries[:self.max_items]:
            try:
                items.append(self._parse_entry(entry))
            except Exception as e:
                logger.warning(f"Failed to parse entry from {source_url}: {e}")

        logger.info(f"Fetched {len(items)} items from '{feed_title}'")
        return FetchedFeed(title=feed_title, items=items)
