"""
Retrieval module: embeddings, vector backends and ingestion.

This module implements the indexing side of the answering pipeline using:
- OpenAI-compatible embeddings (text-embedding-3-small by default)
- Pinecone, Postgres + pgvector or ChromaDB as vector backends
- Heading-aware text chunking

Backends are selected by key through the registry in rag.factory.
"""

__version__ = "1.0.0"
