"""
Domain interfaces - Abstractions for providers, indexers and tool clients.
Following SOLID: Dependency Inversion Principle - depend on abstractions, not concrete implementations.
Interface Segregation Principle - specific interfaces for different concerns.
"""
from abc import ABC, abstractmethod
from typing import AsyncIterator, Collection, List, Optional, Dict, Any

from domain.models import (
    CompletionRequest, DeltaEvent, IndexDocument, SearchResult, ProcessedPassage
)


class IChatProvider(ABC):
    """Streaming chat completion provider normalised to DeltaEvents."""

    @abstractmethod
    def stream(self, request: CompletionRequest) -> AsyncIterator[DeltaEvent]:
        """Issue one streaming completion call."""
        pass


class IEmbeddingService(ABC):
    """Interface for embedding services."""

    @abstractmethod
    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts."""
        pass

    @abstractmethod
    async def embed_query(self, query: str) -> List[float]:
        """Generate embedding for a single query."""
        pass


class IIndexer(ABC):
    """
    Uniform contract over a vector-search backend.

    Instances are shared read-only across concurrent flows.
    """

    @abstractmethod
    def get_key(self) -> str:
        """Registry key of this backend."""
        pass

    @abstractmethod
    def make_record_id(self, scope_id: str, id: str) -> str:
        """Build a record id namespaced by scope."""
        pass

    @abstractmethod
    async def upsert(self, scope_id: str, group_id: str, documents: List[IndexDocument]) -> None:
        """Embed and write documents, overwriting rows with the same id."""
        pass

    @abstractmethod
    async def search(
        self,
        scope_id: str,
        query: str,
        top_k: int = 5,
        exclude_ids: Optional[Collection[str]] = None
    ) -> SearchResult:
        """Nearest-neighbour search within a scope."""
        pass

    @abstractmethod
    async def process(
        self,
        query: str,
        result: SearchResult,
        top_n: Optional[int] = None
    ) -> List[ProcessedPassage]:
        """Rank, truncate and tag raw matches for citation."""
        pass

    @abstractmethod
    async def delete_by_scope(self, scope_id: str) -> None:
        """Delete every record of a scope. No-op for unknown scopes."""
        pass

    @abstractmethod
    async def delete_by_ids(self, ids: List[str]) -> None:
        """Delete records by id. Unknown ids are ignored."""
        pass

    async def close(self) -> None:
        """Release pooled resources."""
        return None


class IActionClient(ABC):
    """Interface for outbound HTTP actions invoked by tools."""

    @abstractmethod
    async def call(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Execute the request. Returns status_code/text or an error entry."""
        pass
