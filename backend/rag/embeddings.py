"""
Embedding services for the indexers.

Provides:
- Batch processing
- A hard timeout per provider call (no silent retry on timeout)
- Backoff on rate limits
- A deterministic offline embedder for local runs and tests
"""

import asyncio
import hashlib
import logging
import math
import re
from typing import List

import openai
from openai import AsyncOpenAI

from domain.errors import EmbeddingError
from domain.interfaces import IEmbeddingService
from rag.config import EmbeddingConfig

logger = logging.getLogger(__name__)


class OpenAIEmbeddingService(IEmbeddingService):
    """
    Embedding service for any OpenAI-compatible embeddings endpoint.

    Every vector is checked against config.embedding_dim, since the backends'
    storage schemas are sized for exactly one dimensionality.
    """

    def __init__(self, config: EmbeddingConfig, client: AsyncOpenAI = None):
        self.config = config
        # Rate-limit retries happen in _embed_batch
        self.client = client or AsyncOpenAI(api_key=config.api_key, base_url=config.base_url, max_retries=0)
        self.model = config.model_name

        logger.info(f"Initialized embedding service with model: {self.model} ({config.embedding_dim} dims)")

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts with batching.

        Raises:
            EmbeddingError: On timeout, provider error or dimension mismatch
        """
        if not texts:
            return []

        all_embeddings = []
        batch_size = self.config.batch_size

        for i in range(0, len(texts), batch_size):
            batch = texts[i:i + batch_size]
            batch_embeddings = await self._embed_batch(batch)
            all_embeddings.extend(batch_embeddings)

        logger.debug(f"Generated {len(all_embeddings)} embeddings")
        return all_embeddings

    async def embed_query(self, query: str) -> List[float]:
        """Generate embedding for single query."""
        embeddings = await self.embed_texts([query])
        return embeddings[0]

    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        for attempt in range(self.config.max_retries + 1):
            try:
                response = await asyncio.wait_for(
                    self.client.embeddings.create(model=self.model, input=texts),
                    timeout=self.config.timeout_seconds
                )
            except asyncio.TimeoutError as e:
                logger.error(f"Embedding call timed out after {self.config.timeout_seconds}s")
                raise EmbeddingError(f"Embedding call timed out after {self.config.timeout_seconds}s") from e
            except openai.RateLimitError as e:
                if attempt >= self.config.max_retries:
                    logger.error("Max retries reached for embedding batch")
                    raise EmbeddingError(f"Embedding rate limit: {e}") from e
                wait_time = 2 ** attempt
                logger.warning(
                    f"Rate limit hit, retrying in {wait_time}s (attempt {attempt + 1}/{self.config.max_retries})"
                )
                await asyncio.sleep(wait_time)
                continue
            except openai.OpenAIError as e:
                logger.error(f"Embedding API error: {e}")
                raise EmbeddingError(f"Embedding API error: {e}") from e

            embeddings = [item.embedding for item in sorted(response.data, key=lambda item: item.index)]
            if len(embeddings) != len(texts):
                raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(embeddings)}")
            for embedding in embeddings:
                if len(embedding) != self.config.embedding_dim:
                    raise EmbeddingError(
                        f"Embedding has {len(embedding)} dims, backend expects {self.config.embedding_dim}"
                    )
            return embeddings

        raise EmbeddingError("Embedding retries exhausted")


_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class MockEmbeddingService(IEmbeddingService):
    """
    Deterministic bag-of-words embedder.

    Each lowercase word is hashed into a bucket; the vector is L2-normalised, so
    texts sharing words have positive cosine similarity. Identical input always
    gives identical output.
    """

    def __init__(self, embedding_dim: int = 1536):
        self.embedding_dim = embedding_dim
        logger.info("Initialized mock embedding service (for testing only)")

    def _embed(self, text: str) -> List[float]:
        vector = [0.0] * self.embedding_dim
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self.embedding_dim] += 1.0
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0:
            # Cosine backends reject zero vectors
            vector[0] = 1.0
            return vector
        return [value / norm for value in vector]

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        return [self._embed(text) for text in texts]

    async def embed_query(self, query: str) -> List[float]:
        return self._embed(query)
