"""
ChromaDB indexer for local and single-node deployments.

Single collection with scope_id metadata filtering for multi-tenancy. The
collection uses cosine space, so score = 1 - distance.
"""

import asyncio
import logging
from typing import Any, Callable, Collection, Dict, List, Optional

import chromadb
from chromadb.config import Settings
from chromadb.errors import ChromaError

from domain.errors import IndexerError
from domain.interfaces import IEmbeddingService
from domain.models import IndexDocument, SearchMatch, SearchResult
from rag.base_indexer import DEFAULT_TOP_N, BaseIndexer
from rag.config import ChromaConfig

logger = logging.getLogger(__name__)

CHROMA_ERRORS = (ChromaError, ValueError)


def _chroma_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    # Chroma accepts scalar values only
    clean: Dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, bool, int, float)):
            clean[key] = value
        elif isinstance(value, (list, tuple)):
            clean[key] = ",".join(str(item) for item in value)
        else:
            clean[key] = str(value)
    return clean


class ChromaIndexer(BaseIndexer):
    """ChromaDB implementation of the indexer."""

    key = "chroma"

    def __init__(
        self,
        config: ChromaConfig,
        embedding_service: IEmbeddingService,
        top_n: int = DEFAULT_TOP_N,
        client: Optional[Any] = None
    ):
        super().__init__(embedding_service, top_n)
        self.config = config

        settings = Settings(anonymized_telemetry=False)
        if client is not None:
            self.client = client
        elif config.persist_directory:
            self.client = chromadb.PersistentClient(path=config.persist_directory, settings=settings)
        else:
            self.client = chromadb.EphemeralClient(settings=settings)

        self.collection = self.client.get_or_create_collection(
            name=config.collection_name,
            metadata={"hnsw:space": "cosine"}
        )

        logger.info(
            f"Initialized ChromaDB indexer: {config.collection_name} "
            f"at {config.persist_directory or 'memory'}"
        )

    async def _call(self, operation: str, fn: Callable[..., Any], **kwargs) -> Any:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, **kwargs),
                timeout=self.config.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Chroma {operation} timed out after {self.config.timeout_seconds}s")
            raise IndexerError(f"Chroma {operation} timed out") from e
        except CHROMA_ERRORS as e:
            logger.error(f"Chroma {operation} failed: {e}")
            raise IndexerError(f"Chroma {operation} failed: {e}") from e

    async def upsert(self, scope_id: str, group_id: str, documents: List[IndexDocument]) -> None:
        if not documents:
            return

        embeddings = await self.embedding_service.embed_texts([doc.text for doc in documents])
        metadatas = [
            _chroma_metadata({
                **doc.metadata,
                "record_id": doc.id,
                "scope_id": scope_id,
                "group_id": group_id,
                "content": str(doc.metadata.get("content", doc.text)),
                "url": str(doc.metadata.get("url", "")),
            })
            for doc in documents
        ]

        await self._call(
            "upsert",
            self.collection.upsert,
            ids=[doc.id for doc in documents],
            embeddings=embeddings,
            documents=[doc.text for doc in documents],
            metadatas=metadatas
        )

        logger.info(f"Upserted {len(documents)} records into ChromaDB for scope {scope_id}")

    async def search(
        self,
        scope_id: str,
        query: str,
        top_k: int = 5,
        exclude_ids: Optional[Collection[str]] = None
    ) -> SearchResult:
        embedding = await self.embedding_service.embed_query(query)

        where: Dict[str, Any] = {"scope_id": scope_id}
        if exclude_ids:
            where = {"$and": [
                {"scope_id": {"$eq": scope_id}},
                {"record_id": {"$nin": list(exclude_ids)}},
            ]}

        def run_query() -> Optional[Dict[str, Any]]:
            # Chroma rejects queries against an empty collection
            if self.collection.count() == 0:
                return None
            return self.collection.query(
                query_embeddings=[embedding],
                n_results=top_k,
                where=where,
                include=["metadatas", "distances"]
            )

        results = await self._call("search", run_query)
        if not results or not results["ids"] or not results["ids"][0]:
            logger.info(f"No results found for scope: {scope_id}")
            return SearchResult()

        # Chroma returns lists of lists (one per query embedding)
        matches = [
            SearchMatch(id=record_id, score=1.0 - float(distance), metadata=dict(metadata or {}))
            for record_id, metadata, distance in zip(
                results["ids"][0], results["metadatas"][0], results["distances"][0]
            )
        ]
        return SearchResult(matches=matches)

    async def delete_by_scope(self, scope_id: str) -> None:
        await self._call("delete", self.collection.delete, where={"scope_id": scope_id})
        logger.info(f"Deleted scope {scope_id} from ChromaDB")

    async def delete_by_ids(self, ids: List[str]) -> None:
        if not ids:
            return
        await self._call("delete", self.collection.delete, ids=list(ids))
