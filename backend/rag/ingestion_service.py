"""
Ingestion service for the indexers.

Handles the pipeline for one page/item:
1. Text chunking
2. Stable record ids derived from the item URL
3. Upsert through the configured indexer (embedding happens there)
4. Removal of records left over from a previous ingestion of the item
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from domain.interfaces import IIndexer
from domain.models import IndexDocument
from rag.chunking import OverlappingChunker

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    scope_id: str
    url: str
    record_ids: List[str] = field(default_factory=list)
    deleted_ids: List[str] = field(default_factory=list)


class IngestionService:
    """
    Service for indexing pages into a vector backend.

    Pipeline: text → chunks → documents → indexer.upsert → stale id cleanup
    """

    def __init__(self, chunker: OverlappingChunker, indexer: IIndexer):
        self.chunker = chunker
        self.indexer = indexer

    def make_document_ids(self, scope_id: str, url: str, count: int) -> List[str]:
        url_hash = hashlib.sha1(url.encode("utf-8")).hexdigest()[:16]
        return [self.indexer.make_record_id(scope_id, f"{url_hash}-{i}") for i in range(count)]

    async def ingest_item(
        self,
        scope_id: str,
        group_id: str,
        url: str,
        text: str,
        item_id: Optional[str] = None,
        context: Optional[str] = None,
        previous_record_ids: Optional[List[str]] = None
    ) -> IngestionResult:
        """
        Index one page, replacing whatever it previously produced.

        Args:
            scope_id: Knowledge base the page belongs to
            group_id: Source group inside the knowledge base
            url: Display URL; also the seed for record ids
            text: Markdown content
            item_id: Caller-side item id, carried in metadata for citations
            context: Optional source description prepended to every chunk
            previous_record_ids: Record ids from the last ingestion of this item

        Returns:
            IngestionResult with the written and the deleted record ids
        """
        chunks = self.chunker.chunk_text(text, context=context)
        ids = self.make_document_ids(scope_id, url, len(chunks))

        documents = []
        for record_id, chunk in zip(ids, chunks):
            metadata = {"content": chunk.text, "url": url}
            if item_id:
                metadata["scrape_item_id"] = item_id
            documents.append(IndexDocument(id=record_id, text=chunk.text, metadata=metadata))

        await self.indexer.upsert(scope_id, group_id, documents)

        # Ids are positional, so a shorter page leaves stale tail records behind
        written = set(ids)
        stale = [record_id for record_id in previous_record_ids or [] if record_id not in written]
        if stale:
            await self.indexer.delete_by_ids(stale)

        logger.info(
            f"Ingested {url} into scope {scope_id} via {self.indexer.get_key()}: "
            f"{len(ids)} records, {len(stale)} stale removed"
        )
        return IngestionResult(scope_id=scope_id, url=url, record_ids=ids, deleted_ids=stale)

    async def delete_scope(self, scope_id: str) -> None:
        await self.indexer.delete_by_scope(scope_id)
        logger.info(f"Deleted scope {scope_id} from {self.indexer.get_key()}")
