"""
Shared indexer behaviour: record id namespacing and result post-processing.

Backends subclass BaseIndexer and implement storage only; ranking and
citation tagging are identical across backends.
"""

import logging
import random
from typing import List, Optional, Set

from domain.interfaces import IEmbeddingService, IIndexer
from domain.models import ProcessedPassage, SearchResult

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 4


def generate_fetch_unique_id(taken: Set[str]) -> str:
    """Random 5-digit correlation id, unique within one process() call."""
    while True:
        candidate = str(random.randint(10000, 99999))
        if candidate not in taken:
            taken.add(candidate)
            return candidate


class BaseIndexer(IIndexer):
    """Common base for vector backends."""

    key: str = ""

    def __init__(self, embedding_service: IEmbeddingService, top_n: int = DEFAULT_TOP_N):
        self.embedding_service = embedding_service
        self.top_n = top_n

    def get_key(self) -> str:
        return self.key

    def make_record_id(self, scope_id: str, id: str) -> str:
        return f"{scope_id}/{id}"

    async def process(
        self,
        query: str,
        result: SearchResult,
        top_n: Optional[int] = None
    ) -> List[ProcessedPassage]:
        """
        Rank matches by descending score, keep the best top_n and tag each with a
        fresh fetch_unique_id. Ties keep their backend order.
        """
        limit = top_n if top_n is not None else self.top_n
        ranked = sorted(result.matches, key=lambda match: match.score, reverse=True)[:limit]

        taken: Set[str] = set()
        passages = []
        for match in ranked:
            scrape_item_id = match.metadata.get("scrape_item_id")
            passages.append(ProcessedPassage(
                id=match.id,
                content=str(match.metadata.get("content", "")),
                url=str(match.metadata.get("url", "")),
                score=match.score,
                fetch_unique_id=generate_fetch_unique_id(taken),
                scrape_item_id=str(scrape_item_id) if scrape_item_id is not None else None,
                query=query
            ))
        return passages
