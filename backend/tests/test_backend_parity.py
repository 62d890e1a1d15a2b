"""
The same documents and query give the same ranking on every backend.
"""
import uuid

import pytest

from domain.models import IndexDocument
from fakes import InMemoryIndex
from rag.chroma_indexer import ChromaIndexer
from rag.config import ChromaConfig, PineconeConfig
from rag.embeddings import MockEmbeddingService
from rag.pinecone_indexer import PineconeIndexer

DOCUMENTS = [
    IndexDocument(id="s1/a", text="install the cli with the installer script"),
    IndexDocument(id="s1/b", text="configure the cli after install"),
    IndexDocument(id="s1/c", text="pricing for teams and enterprises"),
]


@pytest.fixture
def backends():
    embeddings = MockEmbeddingService(embedding_dim=128)
    return [
        ChromaIndexer(ChromaConfig(enabled=True, collection_name=f"parity_{uuid.uuid4().hex}"), embeddings),
        PineconeIndexer(PineconeConfig(api_key="k", index_name="i"), embeddings, index=InMemoryIndex()),
    ]


@pytest.mark.asyncio
async def test_same_ranking_across_backends(backends):
    rankings = []
    for indexer in backends:
        await indexer.upsert("s1", "g1", DOCUMENTS)
        result = await indexer.search("s1", "how to install the cli", top_k=3)
        processed = await indexer.process("how to install the cli", result)
        rankings.append([(passage.id, passage.score) for passage in processed])

    chroma, pinecone = rankings
    assert [record_id for record_id, _ in chroma] == [record_id for record_id, _ in pinecone]
    for (_, chroma_score), (_, pinecone_score) in zip(chroma, pinecone):
        assert chroma_score == pytest.approx(pinecone_score, abs=1e-4)


@pytest.mark.asyncio
async def test_exclusions_and_deletes_agree(backends):
    for indexer in backends:
        await indexer.upsert("s1", "g1", DOCUMENTS)
        await indexer.delete_by_ids(["s1/c"])
        result = await indexer.search("s1", "how to install the cli", top_k=3, exclude_ids=["s1/a"])
        assert [match.id for match in result.matches] == ["s1/b"]
