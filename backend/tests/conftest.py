"""
Pytest configuration and shared fixtures.
"""
from typing import List

import pytest

from domain.models import SearchMatch
from fakes import FakeChatProvider
from rag.embeddings import MockEmbeddingService


@pytest.fixture
def fake_provider() -> FakeChatProvider:
    """Chat provider replaying scripted delta streams."""
    return FakeChatProvider()


@pytest.fixture
def mock_embeddings() -> MockEmbeddingService:
    """Deterministic offline embedder."""
    return MockEmbeddingService(embedding_dim=64)


@pytest.fixture
def passages() -> List[SearchMatch]:
    """Raw matches in deliberately unsorted order."""
    return [
        SearchMatch(id="s1/a", score=0.42, metadata={"content": "Alpha content", "url": "https://docs/a"}),
        SearchMatch(id="s1/b", score=0.91, metadata={"content": "Beta content", "url": "https://docs/b",
                                                      "scrape_item_id": "item-b"}),
        SearchMatch(id="s1/c", score=0.67, metadata={"content": "Gamma content", "url": "https://docs/c"}),
    ]
