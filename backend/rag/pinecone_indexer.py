"""
Pinecone indexer (managed similarity-index service).

The Pinecone SDK is synchronous; every call runs in a worker thread and is
bounded by config.timeout_seconds. Record ids are expected to be built with
make_record_id so a whole scope can be listed by id prefix.
"""

import asyncio
import logging
from typing import Any, Callable, Collection, Dict, List, Optional

from pinecone import Pinecone
from pinecone.exceptions import PineconeException

from domain.errors import IndexerError
from domain.interfaces import IEmbeddingService
from domain.models import IndexDocument, SearchMatch, SearchResult
from rag.base_indexer import DEFAULT_TOP_N, BaseIndexer
from rag.config import PineconeConfig

logger = logging.getLogger(__name__)


def sanitize_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Pinecone metadata accepts strings, numbers, booleans and lists of strings only."""
    clean: Dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, bool, int, float)):
            clean[key] = value
        elif isinstance(value, (list, tuple)):
            clean[key] = [str(item) for item in value]
        else:
            clean[key] = str(value)
    return clean


class PineconeIndexer(BaseIndexer):
    """Managed vector index; one shared Index handle per process."""

    key = "pinecone"

    def __init__(
        self,
        config: PineconeConfig,
        embedding_service: IEmbeddingService,
        top_n: int = DEFAULT_TOP_N,
        index: Any = None
    ):
        super().__init__(embedding_service, top_n)
        self.config = config
        self.namespace = config.namespace
        self._index = index

    @property
    def index(self) -> Any:
        if self._index is None:
            client = Pinecone(api_key=self.config.api_key)
            self._index = client.Index(self.config.index_name)
            logger.info(f"Connected to Pinecone index {self.config.index_name}")
        return self._index

    async def _call(self, operation: str, fn: Callable[..., Any], **kwargs) -> Any:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, **kwargs),
                timeout=self.config.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Pinecone {operation} timed out after {self.config.timeout_seconds}s")
            raise IndexerError(f"Pinecone {operation} timed out") from e
        except PineconeException as e:
            logger.error(f"Pinecone {operation} failed: {e}")
            raise IndexerError(f"Pinecone {operation} failed: {e}") from e

    async def upsert(self, scope_id: str, group_id: str, documents: List[IndexDocument]) -> None:
        if not documents:
            return

        embeddings = await self.embedding_service.embed_texts([doc.text for doc in documents])
        vectors = []
        for doc, embedding in zip(documents, embeddings):
            metadata = sanitize_metadata({
                **doc.metadata,
                "record_id": doc.id,
                "scope_id": scope_id,
                "group_id": group_id,
                "content": str(doc.metadata.get("content", doc.text)),
                "url": str(doc.metadata.get("url", "")),
            })
            vectors.append({"id": doc.id, "values": embedding, "metadata": metadata})

        for i in range(0, len(vectors), self.config.batch_size):
            batch = vectors[i:i + self.config.batch_size]
            await self._call("upsert", self.index.upsert, vectors=batch, namespace=self.namespace)

        logger.info(f"Upserted {len(vectors)} vectors into Pinecone for scope {scope_id}")

    async def search(
        self,
        scope_id: str,
        query: str,
        top_k: int = 5,
        exclude_ids: Optional[Collection[str]] = None
    ) -> SearchResult:
        embedding = await self.embedding_service.embed_query(query)

        filter_: Dict[str, Any] = {"scope_id": {"$eq": scope_id}}
        if exclude_ids:
            filter_ = {"$and": [filter_, {"record_id": {"$nin": list(exclude_ids)}}]}

        response = await self._call(
            "query",
            self.index.query,
            vector=embedding,
            top_k=top_k,
            filter=filter_,
            include_metadata=True,
            namespace=self.namespace
        )

        matches = [
            SearchMatch(id=match.id, score=float(match.score or 0.0), metadata=dict(match.metadata or {}))
            for match in response.matches
        ]
        return SearchResult(matches=matches)

    async def delete_by_scope(self, scope_id: str) -> None:
        prefix = self.make_record_id(scope_id, "")

        def collect_ids() -> List[str]:
            ids: List[str] = []
            for page in self.index.list(prefix=prefix, namespace=self.namespace):
                ids.extend(page)
            return ids

        ids = await self._call("list", collect_ids)
        await self.delete_by_ids(ids)
        logger.info(f"Deleted scope {scope_id} from Pinecone ({len(ids)} vectors)")

    async def delete_by_ids(self, ids: List[str]) -> None:
        if not ids:
            return
        for i in range(0, len(ids), self.config.batch_size):
            batch = list(ids[i:i + self.config.batch_size])
            await self._call("delete", self.index.delete, ids=batch, namespace=self.namespace)
