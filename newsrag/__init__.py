"""
News RAG

Ingests recent news articles from syndication feeds into a vector index and
answers questions about them with a generative model grounded on the
retrieved articles.
"""

__version__ = "0.1.0"
