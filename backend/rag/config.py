"""
RAG configuration dataclasses for all retrieval components.

Provides centralized configuration with sensible defaults for:
- Chunking (size, overlap, heading awareness)
- Embeddings (model selection, dimensions, timeout)
- Vector backends (Pinecone, Postgres + pgvector, Chroma)
- Retrieval (top_n passages surfaced, top_k raw matches)

A backend counts as configured only when its required settings are present.
"""

from dataclasses import dataclass, field
from typing import Optional
import os

from dotenv import load_dotenv

from domain.errors import ConfigurationError


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e


@dataclass
class ChunkingConfig:
    """Configuration for text chunking."""

    chunk_size: int = 600  # Target tokens per chunk
    chunk_overlap: int = 90  # ~15% overlap
    markdown_heading_aware: bool = True  # Keep a heading breadcrumb per chunk

    def __post_init__(self):
        """Validate configuration."""
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be positive")
        if self.chunk_overlap >= self.chunk_size:
            raise ConfigurationError("chunk_overlap must be less than chunk_size")


@dataclass
class EmbeddingConfig:
    """Configuration for embedding service."""

    model_name: str = "text-embedding-3-small"
    embedding_dim: int = 1536  # Must match every backend's storage schema
    base_url: Optional[str] = None
    batch_size: int = 100  # Max texts per API call
    max_retries: int = 3  # Rate-limit retries only
    timeout_seconds: float = 30.0

    api_key_env_var: str = "OPENAI_API_KEY"

    def __post_init__(self):
        if self.embedding_dim <= 0:
            raise ConfigurationError("embedding_dim must be positive")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive")

    @property
    def api_key(self) -> str:
        """Get the embedding API key from environment."""
        key = os.getenv(self.api_key_env_var)
        if not key:
            raise ConfigurationError(
                f"Embedding API key not found in environment variable: {self.api_key_env_var}"
            )
        return key


@dataclass
class PineconeConfig:
    """Managed Pinecone index."""

    api_key: Optional[str] = None
    index_name: Optional[str] = None
    namespace: str = ""
    timeout_seconds: float = 30.0
    batch_size: int = 100

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.index_name)


@dataclass
class PgVectorConfig:
    """Postgres + pgvector store."""

    dsn: Optional[str] = None
    table_name: str = "passage_embeddings"
    command_timeout: float = 30.0
    min_pool_size: int = 1
    max_pool_size: int = 10

    def __post_init__(self):
        if not self.table_name.replace("_", "").isalnum():
            raise ConfigurationError(f"Invalid pgvector table name: {self.table_name!r}")

    @property
    def is_configured(self) -> bool:
        return bool(self.dsn)


@dataclass
class ChromaConfig:
    """Local ChromaDB store. In-memory when persist_directory is unset."""

    enabled: bool = False
    persist_directory: Optional[str] = None
    collection_name: str = "passages"
    timeout_seconds: float = 30.0

    @property
    def is_configured(self) -> bool:
        return self.enabled


@dataclass
class RetrievalConfig:
    """Configuration for retrieval."""

    top_n: int = 4  # Passages surfaced to the model per search
    top_k: int = 20  # Raw matches requested from the backend

    def __post_init__(self):
        """Validate configuration."""
        if self.top_n <= 0 or self.top_k <= 0:
            raise ConfigurationError("top_n and top_k must be positive")


@dataclass
class RAGConfig:
    """Aggregated RAG configuration."""

    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    pinecone: PineconeConfig = field(default_factory=PineconeConfig)
    pgvector: PgVectorConfig = field(default_factory=PgVectorConfig)
    chroma: ChromaConfig = field(default_factory=ChromaConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)

    @classmethod
    def from_env(cls) -> "RAGConfig":
        """Create configuration from environment variables (and .env, if present)."""
        load_dotenv()

        return cls(
            chunking=ChunkingConfig(
                chunk_size=_env_int("RAG_CHUNK_SIZE", 600),
                chunk_overlap=_env_int("RAG_CHUNK_OVERLAP", 90),
            ),
            embedding=EmbeddingConfig(
                model_name=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
                embedding_dim=_env_int("EMBEDDING_DIM", 1536),
                base_url=os.getenv("EMBEDDING_BASE_URL") or None,
                timeout_seconds=_env_float("EMBEDDING_TIMEOUT_SECONDS", 30.0),
                api_key_env_var=os.getenv("EMBEDDING_API_KEY_ENV", "OPENAI_API_KEY"),
            ),
            pinecone=PineconeConfig(
                api_key=os.getenv("PINECONE_API_KEY") or None,
                index_name=os.getenv("PINECONE_INDEX") or None,
                namespace=os.getenv("PINECONE_NAMESPACE", ""),
            ),
            pgvector=PgVectorConfig(
                dsn=os.getenv("PGVECTOR_URL") or None,
                table_name=os.getenv("PGVECTOR_TABLE", "passage_embeddings"),
            ),
            chroma=ChromaConfig(
                enabled=_env_bool("CHROMA_ENABLED"),
                persist_directory=os.getenv("CHROMA_PERSIST_DIR") or None,
                collection_name=os.getenv("CHROMA_COLLECTION", "passages"),
                timeout_seconds=_env_float("CHROMA_TIMEOUT_SECONDS", 30.0),
            ),
            retrieval=RetrievalConfig(
                top_n=_env_int("RAG_TOP_N", 4),
                top_k=_env_int("RAG_TOP_K", 20),
            ),
        )
