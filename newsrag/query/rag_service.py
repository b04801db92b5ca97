"""
RAG Service for Question Answering with Context Retrieval

Orchestrates the query pipeline:
1. Query embedding generation
2. Context retrieval from the vector index
3. Context assembly in rank order
4. Grounded answer generation
5. One citation per retrieved article

Every step is sequential and any failure is fatal to the query; no partial
or degraded answer is produced.
"""

import logging
import time
from typing import List, Optional

from ..embeddings.embedding_client import EmbeddingClient
from ..generation.generation_client import GenerationClient, build_prompt
from ..models import Answer, SearchHit, Source
from ..storage.index_store import IndexStore

logger = logging.getLogger(__name__)


def format_context(hits: List[SearchHit]) -> str:
    """
    Format retrieved articles for inclusion in the prompt.

    One ``Title/Content/Source/Link`` block per hit, most similar first,
    blocks separated by a blank line. No hits gives an empty string.
    """
    blocks = []
    for hit in hits:
        payload = hit.payload
        blocks.append(
            f"Title: {payload.get('title', '')}\n"
            f"Content: {payload.get('content', '')}\n"
            f"Source: {payload.get('source_name', '')}\n"
            f"Link: {payload.get('link', '')}"
        )
    return "\n\n".join(blocks)


class RAGService:
    """
    RAG (Retrieval-Augmented Generation) query pipeline.

    Combines semantic search over embedded news articles with grounded
    answer generation and returns the articles used as citations.
    """

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        index_store: IndexStore,
        generation_client: GenerationClient,
        collection_name: str = "news_articles",
        top_k: int = 5
    ):
        """
        Args:
            embedding_client: Embeds the query
            index_store: Vector index to search
            generation_client: Produces the answer
            collection_name: Collection to search
            top_k: Default number of articles to retrieve
        """
        self.embedding_client = embedding_client
        self.index_store = index_store
        self.generation_client = generation_client
        self.collection_name = collection_name
        self.top_k = top_k

    def retrieve(self, query: str, top_k: Optional[int] = None) -> List[SearchHit]:
        """
        Embed a query and return the nearest articles.

        Args:
            query: Query text
            top_k: Number of articles (overrides default)

        Returns:
            SearchHit list, most similar first
        """
        k = top_k if top_k is not None else self.top_k
        query_embedding = self.embedding_client.embed(query)
        return self.index_store.search(self.collection_name, query_embedding, limit=k)

    def query(self, question: str, top_k: Optional[int] = None) -> Answer:
        """
        Answer a question from the indexed articles.

        Args:
            question: User's question
            top_k: Number of articles to retrieve (overrides default)

        Returns:
            Answer with the generated text and one Source per retrieved article

        Raises:
            ValueError: If question is empty
            EmbeddingFailure, IndexStoreFailure, GenerationFailure: From the
                failing step
        """
        if not question or not question.strip():
            raise ValueError("Question cannot be empty")

        start_time = time.time()

        # Step 1-2: Embed and search
        hits = self.retrieve(question, top_k)

        # Step 3: Build context in rank order
        context = format_context(hits)

        # Step 4: Generate grounded answer
        response_text = self.generation_client.generate(build_prompt(question, context))

        # Step 5: Citations, same order as the hits
        sources = [Source.from_payload(hit.payload) for hit in hits]

        logger.debug(
            f"Answered query with {len(hits)} context articles in {time.time() - start_time:.2f}s"
        )
        return Answer(response_text=response_text, sources=sources)
