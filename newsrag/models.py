"""
Data Model

Plain dataclasses passed between the feed fetcher, the ingestion and query
pipelines and the chat layer.
"""

import uuid
from dataclasses import dataclass, field, asdict
from typing import List, Dict, Optional, Any, Tuple


@dataclass
class RawItem:
    """A single entry as parsed from a syndication feed."""
    title: str = ""
    link: str = ""
    content_snippet: Optional[str] = None
    content: Optional[str] = None
    pub_date: Optional[str] = None

    @property
    def text(self) -> str:
        """Snippet if present, else full content, else empty string."""
        return self.content_snippet or self.content or ""


@dataclass
class FetchedFeed:
    """Feed title plus its (already capped) items."""
    title: str
    items: List[RawItem] = field(default_factory=list)


@dataclass(frozen=True)
class Article:
    """A news item ready for indexing. Never mutated after creation."""
    id: str
    title: str
    content: str
    link: str
    published_at: Optional[str]
    source_name: str

    @classmethod
    def from_raw(cls, item: RawItem, source_name: str) -> "Article":
        return cls(
            id=str(uuid.uuid4()),
            title=(item.title or "").strip(),
            content=item.text.strip(),
            link=item.link or "",
            published_at=item.pub_date,
            source_name=source_name,
        )

    def combined_text(self) -> str:
        """Text sent to the embedding provider."""
        return f"{self.title} {self.content}"

    def to_payload(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'content': self.content,
            'link': self.link,
            'published_at': self.published_at,
            'source_name': self.source_name,
        }


@dataclass
class IndexEntry:
    """Persisted unit of the vector index: id, vector and display payload."""
    id: str
    vector: List[float]
    payload: Dict[str, Any]

    @classmethod
    def from_article(cls, article: Article, vector: List[float]) -> "IndexEntry":
        return cls(id=article.id, vector=list(vector), payload=article.to_payload())


@dataclass
class SearchHit:
    """One search result: payload and similarity score (higher is closer)."""
    payload: Dict[str, Any]
    score: float


@dataclass
class Source:
    """Citation shown alongside an answer."""
    title: str
    link: str
    source_name: str

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Source":
        return cls(
            title=payload.get('title', ''),
            link=payload.get('link', ''),
            source_name=payload.get('source_name', ''),
        )


@dataclass
class Answer:
    """Generated answer plus one citation per retrieved article, in rank order."""
    response_text: str
    sources: List[Source] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'response': self.response_text,
            'sources': [asdict(source) for source in self.sources],
        }


@dataclass
class SourceResult:
    """Outcome of processing one feed source during an ingestion run."""
    source_url: str
    source_name: str = ""
    articles: List[Tuple[Article, List[float]]] = field(default_factory=list)
    fetched: int = 0
    failed_items: List[Tuple[str, str]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class IngestionReport:
    """Aggregated result of one ingestion run."""
    succeeded: int = 0
    fetched: int = 0
    failed_items: int = 0
    failed_sources: List[Dict[str, str]] = field(default_factory=list)
    upsert_error: Optional[str] = None
    duration_s: float = 0.0

    @classmethod
    def from_results(cls, results: List[SourceResult]) -> "IngestionReport":
        report = cls()
        for result in results:
            report.fetched += result.fetched
            report.failed_items += len(result.failed_items)
            if result.error is not None:
                report.failed_sources.append({'url': result.source_url, 'error': result.error})
        return report

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
