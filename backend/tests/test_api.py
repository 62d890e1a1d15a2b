"""
Tests for the HTTP API with services replaced through dependency overrides.
"""
import json

import pytest
from fastapi.testclient import TestClient

from domain.errors import IndexerError
from fakes import (
    FakeChatProvider, RecordingClient, StaticIndexer, order_status_action, text_events, tool_call_events
)
from main import app, get_answer_service, get_chunker, get_registry
from rag.chunking import OverlappingChunker
from rag.factory import IndexerRegistry
from services.answer_service import AnswerService
from services.llm_config import OPENAI_BASE_URL, LlmConfig


class BrokenIndexer(StaticIndexer):
    key = "broken"

    async def delete_by_scope(self, scope_id):
        raise IndexerError("backend unreachable")


@pytest.fixture
def indexer():
    return StaticIndexer()


@pytest.fixture
def provider():
    return FakeChatProvider()


@pytest.fixture
def action_client():
    return RecordingClient({"status_code": 200, "text": '{"status": "shipped"}'})


@pytest.fixture
def client(indexer, provider, action_client):
    registry = IndexerRegistry()
    registry.register(indexer)
    registry.register(BrokenIndexer())
    service = AnswerService(
        registry,
        provider=provider,
        llm_config_resolver=lambda model: LlmConfig(model="gpt-4o-mini", base_url=OPENAI_BASE_URL, api_key="k"),
        action_client=action_client
    )

    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_answer_service] = lambda: service
    app.dependency_overrides[get_chunker] = lambda: OverlappingChunker()
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    def test_lists_indexers(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "indexers": ["static", "broken"], "default_indexer": "static"}


class TestAnswer:
    def test_streams_ndjson(self, client, provider):
        provider.add(text_events("Hello", " there"))

        response = client.post("/api/answer", json={"scope_id": "s1", "query": "Hi", "indexer_key": "static"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        events = [json.loads(line) for line in response.text.splitlines() if line]
        assert [event["type"] for event in events] == ["llm-chunk", "llm-chunk", "answer-complete"]
        assert events[-1]["content"] == "Hello there"

    def test_unknown_indexer_is_400(self, client):
        response = client.post("/api/answer", json={"scope_id": "s1", "query": "Hi", "indexer_key": "pinecone"})

        assert response.status_code == 400
        assert "pinecone" in response.json()["detail"]

    def test_actions_become_tools(self, client, provider):
        provider.add(text_events("ok"))
        action = {
            "id": "act-1",
            "title": "Order Status",
            "description": "Look up an order",
            "url": "https://shop.example.com/orders",
            "data": {"items": [{"key": "order-id", "data_type": "number"}]},
        }

        client.post("/api/answer", json={
            "scope_id": "s1", "query": "Where is my order?", "indexer_key": "static", "actions": [action]
        })

        tool_names = [tool["function"]["name"] for tool in provider.requests[0].tools]
        assert tool_names == ["search_data", "report_data_gap", "order-status"]

    def test_secret_reaches_action_headers(self, client, provider, action_client):
        provider.add(tool_call_events("call_1", "order-status", '{"order-id": 42}'))
        provider.add(text_events("Your order has shipped."))

        response = client.post("/api/answer", json={
            "scope_id": "s1",
            "query": "Where is order 42?",
            "indexer_key": "static",
            "secret": "s3cret",
            "actions": [order_status_action().model_dump()],
        })

        assert response.status_code == 200
        assert action_client.calls[0]["headers"] == {"Authorization": "Bearer s3cret"}
        events = [json.loads(line) for line in response.text.splitlines() if line]
        assert events[-1]["content"] == "Your order has shipped."

    def test_pending_tool_call_in_history_is_409(self, client, provider):
        history = [
            {"llm_message": {"role": "user", "content": "How do I install the CLI?"}},
            {"llm_message": {
                "role": "assistant",
                "tool_calls": [{"id": "c1", "function": {"name": "search_data", "arguments": "{}"}}],
            }},
        ]

        response = client.post("/api/answer", json={
            "scope_id": "s1", "query": "Any update?", "indexer_key": "static", "messages": history
        })

        assert response.status_code == 409
        assert "pending" in response.json()["detail"]
        assert provider.requests == []


class TestIndexing:
    def test_index_item(self, client, indexer):
        response = client.post("/api/index/s1/items", json={
            "group_id": "g1",
            "indexer_key": "static",
            "url": "https://docs.example.com/install",
            "text": "# Install\n\nRun the installer.",
            "item_id": "item-1",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["scope_id"] == "s1"
        assert len(body["record_ids"]) == 1
        assert body["record_ids"][0].startswith("s1/")
        assert indexer.upserts[0][0] == "s1"

    def test_delete_scope(self, client, indexer):
        response = client.delete("/api/index/s1", params={"indexer_key": "static"})

        assert response.json() == {"success": True, "scope_id": "s1"}
        assert indexer.deleted_scopes == ["s1"]

    def test_delete_ids(self, client, indexer):
        response = client.post("/api/index/delete-ids", json={"indexer_key": "static", "ids": ["s1/a", "s1/b"]})

        assert response.json() == {"success": True, "deleted": 2}
        assert indexer.deleted_ids == ["s1/a", "s1/b"]

    def test_backend_failure_is_502(self, client):
        response = client.delete("/api/index/s1", params={"indexer_key": "broken"})

        assert response.status_code == 502
        assert response.json()["detail"] == "backend unreachable"

    def test_unknown_indexer_is_400(self, client):
        response = client.post("/api/index/delete-ids", json={"indexer_key": "chroma", "ids": ["x"]})
        assert response.status_code == 400
