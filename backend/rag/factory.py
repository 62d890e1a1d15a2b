"""
Indexer registry - built once per process from configuration.

Each configured backend registers under its own key. Asking for an unknown or
unconfigured key is a configuration error; there is no fallback, because
embeddings written by one backend cannot be searched in another.
"""

import logging
from typing import Dict, List, Optional

from domain.errors import ConfigurationError, IndexerNotFoundError
from domain.interfaces import IEmbeddingService, IIndexer
from rag.chroma_indexer import ChromaIndexer
from rag.config import RAGConfig
from rag.embeddings import OpenAIEmbeddingService
from rag.pgvector_indexer import PgVectorIndexer
from rag.pinecone_indexer import PineconeIndexer

logger = logging.getLogger(__name__)


class IndexerRegistry:
    """Indexers by key, in priority order."""

    def __init__(self):
        self._indexers: Dict[str, IIndexer] = {}

    def register(self, indexer: IIndexer) -> None:
        key = indexer.get_key()
        if key in self._indexers:
            raise ConfigurationError(f"Indexer {key} registered twice")
        self._indexers[key] = indexer
        logger.info(f"Registered indexer: {key}")

    def get(self, key: Optional[str]) -> IIndexer:
        indexer = self._indexers.get(key) if key else None
        if indexer is None:
            raise IndexerNotFoundError(key, self.keys())
        return indexer

    def keys(self) -> List[str]:
        return list(self._indexers)

    @property
    def default_key(self) -> Optional[str]:
        """Highest-priority configured backend."""
        return next(iter(self._indexers), None)

    async def close(self) -> None:
        for indexer in self._indexers.values():
            await indexer.close()


def build_indexer_registry(
    config: RAGConfig,
    embedding_service: Optional[IEmbeddingService] = None
) -> IndexerRegistry:
    """Register every configured backend: pinecone, then pgvector, then chroma."""
    registry = IndexerRegistry()

    configured = [config.pinecone.is_configured, config.pgvector.is_configured, config.chroma.is_configured]
    if not any(configured):
        logger.warning("No vector backend configured; retrieval is disabled")
        return registry

    if embedding_service is None:
        embedding_service = OpenAIEmbeddingService(config.embedding)

    top_n = config.retrieval.top_n
    if config.pinecone.is_configured:
        registry.register(PineconeIndexer(config.pinecone, embedding_service, top_n=top_n))
    if config.pgvector.is_configured:
        registry.register(PgVectorIndexer(
            config.pgvector, embedding_service, config.embedding.embedding_dim, top_n=top_n
        ))
    if config.chroma.is_configured:
        registry.register(ChromaIndexer(config.chroma, embedding_service, top_n=top_n))

    return registry


_registry: Optional[IndexerRegistry] = None


def get_indexer_registry() -> IndexerRegistry:
    """Process-wide registry, built from the environment on first use."""
    global _registry
    if _registry is None:
        _registry = build_indexer_registry(RAGConfig.from_env())
    return _registry


def set_indexer_registry(registry: Optional[IndexerRegistry]) -> None:
    global _registry
    _registry = registry


def make_indexer(key: Optional[str]) -> IIndexer:
    """
    Look up a configured indexer.

    Raises:
        IndexerNotFoundError: If the key is unknown or its backend is not configured
    """
    return get_indexer_registry().get(key)
