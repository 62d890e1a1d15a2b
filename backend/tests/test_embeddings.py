"""
Tests for embedding services.
"""
import asyncio
import math
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from domain.errors import ConfigurationError, EmbeddingError
from rag.config import EmbeddingConfig
from rag.embeddings import MockEmbeddingService, OpenAIEmbeddingService


def embedding_response(*vectors):
    # Provider may return items out of order
    items = [SimpleNamespace(index=i, embedding=vector) for i, vector in enumerate(vectors)]
    return SimpleNamespace(data=list(reversed(items)))


def make_service(create, **config_kwargs):
    client = MagicMock()
    client.embeddings.create = create
    return OpenAIEmbeddingService(EmbeddingConfig(**config_kwargs), client=client)


def rate_limit_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    return openai.RateLimitError("slow down", response=httpx.Response(429, request=request), body=None)


class TestOpenAIEmbeddingService:
    """Provider calls through a mocked client."""

    @pytest.mark.asyncio
    async def test_embeddings_follow_input_order(self):
        create = AsyncMock(return_value=embedding_response([1.0, 0.0], [0.0, 1.0]))
        service = make_service(create, embedding_dim=2)

        embeddings = await service.embed_texts(["first", "second"])

        assert embeddings == [[1.0, 0.0], [0.0, 1.0]]
        create.assert_awaited_once_with(model="text-embedding-3-small", input=["first", "second"])

    @pytest.mark.asyncio
    async def test_batches(self):
        create = AsyncMock(side_effect=[
            embedding_response([1.0], [1.0]),
            embedding_response([1.0]),
        ])
        service = make_service(create, embedding_dim=1, batch_size=2)

        embeddings = await service.embed_texts(["a", "b", "c"])

        assert len(embeddings) == 3
        assert create.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_call(self):
        create = AsyncMock()
        assert await make_service(create).embed_texts([]) == []
        create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dimension_mismatch(self):
        service = make_service(AsyncMock(return_value=embedding_response([1.0, 2.0, 3.0])), embedding_dim=2)
        with pytest.raises(EmbeddingError, match="backend expects 2"):
            await service.embed_query("q")

    @pytest.mark.asyncio
    async def test_timeout_is_not_retried(self):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        create = AsyncMock(side_effect=slow)
        service = make_service(create, embedding_dim=2, timeout_seconds=0.05)

        with pytest.raises(EmbeddingError, match="timed out"):
            await service.embed_query("q")
        assert create.await_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        create = AsyncMock(side_effect=[rate_limit_error(), embedding_response([1.0, 0.0])])
        service = make_service(create, embedding_dim=2, max_retries=1)

        assert await service.embed_query("q") == [1.0, 0.0]
        assert create.await_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self):
        service = make_service(AsyncMock(side_effect=rate_limit_error()), embedding_dim=2, max_retries=0)
        with pytest.raises(EmbeddingError, match="rate limit"):
            await service.embed_query("q")

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("TEST_EMBEDDING_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            _ = EmbeddingConfig(api_key_env_var="TEST_EMBEDDING_KEY").api_key


class TestMockEmbeddingService:
    """Deterministic offline embedder."""

    @pytest.mark.asyncio
    async def test_deterministic_and_normalised(self, mock_embeddings):
        first = await mock_embeddings.embed_query("Install the CLI")
        second = await mock_embeddings.embed_query("install the cli")

        assert first == second
        assert len(first) == 64
        assert math.isclose(math.sqrt(sum(value * value for value in first)), 1.0)

    @pytest.mark.asyncio
    async def test_shared_words_are_similar(self, mock_embeddings):
        query, related, unrelated = await mock_embeddings.embed_texts([
            "install the cli", "how to install the cli tool", "pricing plans"
        ])

        def dot(a, b):
            return sum(x * y for x, y in zip(a, b))

        assert dot(query, related) > dot(query, unrelated)

    @pytest.mark.asyncio
    async def test_empty_text_is_non_zero(self):
        vector = await MockEmbeddingService(embedding_dim=4).embed_query("")
        assert vector == [1.0, 0.0, 0.0, 0.0]
