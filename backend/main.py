"""
API layer - FastAPI application exposing answering and indexing endpoints.
Following SOLID:
- Single Responsibility - Controllers are thin, delegate to services.
- Dependency Inversion - Controllers receive services through FastAPI dependencies.
"""
import json
import logging
from contextlib import aclosing, asynccontextmanager
from typing import Any, AsyncIterator, Dict, List

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import Field

from domain.errors import ConfigurationError, FlowStateError, IndexerError
from domain.models import AnswerRequest, DeleteIdsRequest, IngestItemRequest
from rag.chunking import OverlappingChunker
from rag.config import RAGConfig
from rag.factory import IndexerRegistry, build_indexer_registry, set_indexer_registry
from rag.ingestion_service import IngestionService
from services.action_tool import ApiAction
from services.answer_service import AnswerService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class AnswerPayload(AnswerRequest):
    """Answer request plus the API actions the assistant may call."""
    actions: List[ApiAction] = Field(default_factory=list)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the indexer registry once and release backend pools on shutdown."""
    logger.info("Initializing services...")
    config = RAGConfig.from_env()
    registry = build_indexer_registry(config)
    set_indexer_registry(registry)

    app.state.config = config
    app.state.registry = registry
    app.state.chunker = OverlappingChunker(config.chunking)
    app.state.answer_service = AnswerService(registry, top_k=config.retrieval.top_k)

    logger.info(f"Services initialized (indexers: {', '.join(registry.keys()) or 'none'})")
    yield

    await registry.close()
    set_indexer_registry(None)
    logger.info("Services shut down")


app = FastAPI(
    title="Knowledge Base Answering API",
    description="Retrieval-augmented answering over indexed knowledge bases",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# ERROR MAPPING
# ============================================================================

@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.warning(f"Configuration error on {request.url.path}: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(IndexerError)
async def indexer_error_handler(request: Request, exc: IndexerError):
    logger.error(f"Indexer error on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(FlowStateError)
async def flow_state_error_handler(request: Request, exc: FlowStateError):
    logger.warning(f"Conversation state rejected on {request.url.path}: {exc}")
    return JSONResponse(status_code=409, content={"detail": str(exc)})


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_registry(request: Request) -> IndexerRegistry:
    return request.app.state.registry


def get_answer_service(request: Request) -> AnswerService:
    return request.app.state.answer_service


def get_chunker(request: Request) -> OverlappingChunker:
    return request.app.state.chunker


# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get("/api/health")
async def health(registry: IndexerRegistry = Depends(get_registry)) -> Dict[str, Any]:
    return {
        "status": "ok",
        "indexers": registry.keys(),
        "default_indexer": registry.default_key
    }


@app.post("/api/answer")
async def answer(
    payload: AnswerPayload,
    answer_service: AnswerService = Depends(get_answer_service)
) -> StreamingResponse:
    """Stream answer events as newline-delimited JSON."""
    # Raises ConfigurationError or FlowStateError before the first byte is streamed
    flow = answer_service.build_flow(payload, payload.actions)
    logger.info(f"Answering in scope {payload.scope_id} with {payload.indexer_key}")

    async def ndjson() -> AsyncIterator[str]:
        async with aclosing(answer_service.stream_flow(flow, show_sources=payload.show_sources)) as events:
            async for event in events:
                yield json.dumps(event) + "\n"

    return StreamingResponse(ndjson(), media_type="application/x-ndjson")


@app.post("/api/index/{scope_id}/items")
async def index_item(
    scope_id: str,
    item: IngestItemRequest,
    registry: IndexerRegistry = Depends(get_registry),
    chunker: OverlappingChunker = Depends(get_chunker)
) -> Dict[str, Any]:
    service = IngestionService(chunker, registry.get(item.indexer_key))
    result = await service.ingest_item(
        scope_id,
        item.group_id,
        item.url,
        item.text,
        item_id=item.item_id,
        context=item.context,
        previous_record_ids=item.previous_record_ids
    )
    return {
        "scope_id": result.scope_id,
        "url": result.url,
        "record_ids": result.record_ids,
        "deleted_ids": result.deleted_ids
    }


@app.delete("/api/index/{scope_id}")
async def delete_scope(
    scope_id: str,
    indexer_key: str,
    registry: IndexerRegistry = Depends(get_registry)
) -> Dict[str, Any]:
    await registry.get(indexer_key).delete_by_scope(scope_id)
    return {"success": True, "scope_id": scope_id}


@app.post("/api/index/delete-ids")
async def delete_ids(
    payload: DeleteIdsRequest,
    registry: IndexerRegistry = Depends(get_registry)
) -> Dict[str, Any]:
    await registry.get(payload.indexer_key).delete_by_ids(payload.ids)
    return {"success": True, "deleted": len(payload.ids)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
