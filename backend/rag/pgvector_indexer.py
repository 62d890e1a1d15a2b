"""
Postgres + pgvector indexer.

One shared asyncpg pool per process, created lazily on first use together with
the schema bootstrap (extension, table, indexes). Similarity is cosine:
score = 1 - (embedding <=> query).
"""

import asyncio
import json
import logging
from typing import Collection, List, Optional

import asyncpg
from pgvector.asyncpg import register_vector

from domain.errors import IndexerError
from domain.interfaces import IEmbeddingService
from domain.models import IndexDocument, SearchMatch, SearchResult
from rag.base_indexer import DEFAULT_TOP_N, BaseIndexer
from rag.config import PgVectorConfig

logger = logging.getLogger(__name__)

DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


class PgVectorIndexer(BaseIndexer):
    """Relational store with the vector extension."""

    key = "pgvector"

    def __init__(
        self,
        config: PgVectorConfig,
        embedding_service: IEmbeddingService,
        embedding_dim: int,
        top_n: int = DEFAULT_TOP_N
    ):
        super().__init__(embedding_service, top_n)
        self.config = config
        self.table = config.table_name
        self.embedding_dim = embedding_dim
        self.pool: Optional[asyncpg.Pool] = None
        self._init_lock: Optional[asyncio.Lock] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ensure_initialized(self) -> None:
        """Bootstrap schema and pool once (lazy init, safe under concurrency)."""
        if self.pool is not None:
            return

        if self._init_lock is None:
            self._init_lock = asyncio.Lock()

        async with self._init_lock:
            # Double-check after acquiring lock
            if self.pool is not None:
                return

            logger.info(f"Initializing pgvector store (table {self.table}, {self.embedding_dim} dims)")
            try:
                await self._bootstrap_schema()
                self.pool = await asyncpg.create_pool(
                    dsn=self.config.dsn,
                    min_size=self.config.min_pool_size,
                    max_size=self.config.max_pool_size,
                    command_timeout=self.config.command_timeout,
                    init=self._init_connection
                )
            except DB_ERRORS as e:
                logger.error(f"Failed to initialize pgvector store: {e}")
                raise IndexerError(f"pgvector initialization failed: {e}") from e
            logger.info("pgvector connection pool created")

    async def _bootstrap_schema(self) -> None:
        # Standalone connection: the vector type must exist before the pool registers its codec
        conn = await asyncpg.connect(dsn=self.config.dsn, timeout=self.config.command_timeout)
        try:
            await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    id TEXT PRIMARY KEY,
                    scope_id TEXT NOT NULL,
                    group_id TEXT,
                    embedding vector({self.embedding_dim}) NOT NULL,
                    content TEXT NOT NULL DEFAULT '',
                    url TEXT NOT NULL DEFAULT '',
                    metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                )
            """)
            await conn.execute(
                f"CREATE INDEX IF NOT EXISTS {self.table}_scope_id_idx ON {self.table} (scope_id)"
            )
            try:
                await conn.execute(
                    f"CREATE INDEX IF NOT EXISTS {self.table}_embedding_idx "
                    f"ON {self.table} USING hnsw (embedding vector_cosine_ops)"
                )
            except asyncpg.PostgresError as e:
                # HNSW is capped at 2000 dims; exact scan still works without it
                logger.warning(f"Skipping HNSW index on {self.table}: {e}")
        finally:
            await conn.close()

    @staticmethod
    async def _init_connection(conn: asyncpg.Connection) -> None:
        await register_vector(conn)
        await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            logger.info("pgvector connection pool closed")
            self.pool = None
            self._init_lock = None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def upsert(self, scope_id: str, group_id: str, documents: List[IndexDocument]) -> None:
        if not documents:
            return

        # A failed embedding writes nothing
        embeddings = await self.embedding_service.embed_texts([doc.text for doc in documents])
        rows = [
            (
                doc.id,
                scope_id,
                group_id,
                embedding,
                str(doc.metadata.get("content", doc.text)),
                str(doc.metadata.get("url", "")),
                doc.metadata,
            )
            for doc, embedding in zip(documents, embeddings)
        ]

        await self.ensure_initialized()
        try:
            async with self.pool.acquire() as conn:
                await conn.executemany(f"""
                    INSERT INTO {self.table} (id, scope_id, group_id, embedding, content, url, metadata)
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                    ON CONFLICT (id) DO UPDATE SET
                        scope_id = EXCLUDED.scope_id,
                        group_id = EXCLUDED.group_id,
                        embedding = EXCLUDED.embedding,
                        content = EXCLUDED.content,
                        url = EXCLUDED.url,
                        metadata = EXCLUDED.metadata,
                        updated_at = now()
                """, rows)
        except DB_ERRORS as e:
            logger.error(f"pgvector upsert failed for scope {scope_id}: {e}")
            raise IndexerError(f"pgvector upsert failed: {e}") from e

        logger.info(f"Upserted {len(rows)} records into {self.table} for scope {scope_id}")

    async def search(
        self,
        scope_id: str,
        query: str,
        top_k: int = 5,
        exclude_ids: Optional[Collection[str]] = None
    ) -> SearchResult:
        embedding = await self.embedding_service.embed_query(query)

        await self.ensure_initialized()
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(f"""
                    SELECT id, content, url, metadata, 1 - (embedding <=> $1) AS score
                    FROM {self.table}
                    WHERE scope_id = $2 AND id <> ALL($3::text[])
                    ORDER BY embedding <=> $1
                    LIMIT $4
                """, embedding, scope_id, list(exclude_ids or []), top_k)
        except DB_ERRORS as e:
            logger.error(f"pgvector search failed for scope {scope_id}: {e}")
            raise IndexerError(f"pgvector search failed: {e}") from e

        matches = []
        for row in rows:
            metadata = dict(row["metadata"] or {})
            metadata["content"] = row["content"]
            metadata["url"] = row["url"]
            matches.append(SearchMatch(id=row["id"], score=float(row["score"]), metadata=metadata))
        return SearchResult(matches=matches)

    async def delete_by_scope(self, scope_id: str) -> None:
        await self.ensure_initialized()
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute(f"DELETE FROM {self.table} WHERE scope_id = $1", scope_id)
        except DB_ERRORS as e:
            raise IndexerError(f"pgvector delete failed: {e}") from e
        logger.info(f"Deleted scope {scope_id} from {self.table} ({status})")

    async def delete_by_ids(self, ids: List[str]) -> None:
        if not ids:
            return
        await self.ensure_initialized()
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(f"DELETE FROM {self.table} WHERE id = ANY($1::text[])", list(ids))
        except DB_ERRORS as e:
            raise IndexerError(f"pgvector delete failed: {e}") from e
        logger.info(f"Deleted {len(ids)} record id(s) from {self.table}")
