"""
Tests for the search_data tool.
"""
import json

import pytest

from domain.errors import IndexerError
from domain.models import SearchMatch
from fakes import StaticIndexer
from services.search_tool import (
    NO_RESULTS_MESSAGE, SEARCH_TOOL_ID, SEARCH_TOP_K, SearchQueryArgs, SearchToolContext, make_search_tool
)

QUERY = "how to install the cli"


def run(tool, query):
    return tool.execute(SearchQueryArgs(query=query))


class TestSearch:
    """Successful searches."""

    @pytest.mark.asyncio
    async def test_returns_context_block(self, passages):
        indexer = StaticIndexer(passages)
        tool = make_search_tool("s1", indexer, top_n=2)

        result = await run(tool, QUERY)

        assert tool.id == SEARCH_TOOL_ID
        assert result.content.startswith("<context>\n")
        assert result.content.endswith("\n</context>")
        payload = json.loads(result.content[len("<context>\n"):-len("\n</context>")])
        assert [item["url"] for item in payload] == ["https://docs/b", "https://docs/c"]
        assert set(payload[0]) == {"url", "content", "fetchUniqueId"}
        assert result.custom_message.query == QUERY
        assert payload[0]["fetchUniqueId"] == result.custom_message.result[0].fetch_unique_id

    @pytest.mark.asyncio
    async def test_searches_scope_with_wide_top_k(self, passages):
        indexer = StaticIndexer(passages)
        await run(make_search_tool("s1", indexer), QUERY)

        assert indexer.searches == [{"scope_id": "s1", "query": QUERY, "top_k": SEARCH_TOP_K, "exclude_ids": None}]

    @pytest.mark.asyncio
    async def test_top_k_is_configurable(self, passages):
        indexer = StaticIndexer(passages)
        await run(make_search_tool("s1", indexer, top_k=7), QUERY)

        assert indexer.searches[0]["top_k"] == 7

    @pytest.mark.asyncio
    async def test_min_score_filters_context_but_keeps_payload(self, passages):
        tool = make_search_tool("s1", StaticIndexer(passages), min_score=0.6)
        result = await run(tool, QUERY)

        payload = json.loads(result.content[len("<context>\n"):-len("\n</context>")])
        assert len(payload) == 2
        assert len(result.custom_message.result) == 3

    @pytest.mark.asyncio
    async def test_nothing_above_min_score(self, passages):
        result = await run(make_search_tool("s1", StaticIndexer(passages), min_score=0.95), QUERY)
        assert result.content == NO_RESULTS_MESSAGE

    @pytest.mark.asyncio
    async def test_no_matches(self):
        result = await run(make_search_tool("s1", StaticIndexer([])), QUERY)
        assert result.content == NO_RESULTS_MESSAGE

    @pytest.mark.asyncio
    async def test_pre_search_hook_receives_query(self, passages):
        seen = []

        async def hook(query):
            seen.append(query)

        await run(make_search_tool("s1", StaticIndexer(passages), on_pre_search=hook), QUERY)
        assert seen == [QUERY]


class TestGuards:
    """Queries the tool refuses before touching the backend."""

    @pytest.mark.asyncio
    async def test_duplicate_query(self, passages):
        indexer = StaticIndexer(passages)
        tool = make_search_tool("s1", indexer)

        await run(tool, QUERY)
        result = await run(tool, QUERY)

        assert result.content == f'The query "{QUERY}" is already searched.'
        assert len(indexer.searches) == 1

    @pytest.mark.asyncio
    async def test_short_query(self, passages):
        indexer = StaticIndexer(passages)
        result = await run(make_search_tool("s1", indexer), "install cli")

        assert "too short" in result.content
        assert indexer.searches == []

    @pytest.mark.asyncio
    async def test_query_limit(self, passages):
        context = SearchToolContext(queries=[f"query number {i} about things" for i in range(2)])
        tool = make_search_tool("s1", StaticIndexer(passages), context=context, max_queries=2)

        result = await run(tool, QUERY)

        assert result.content == "Maximum number of queries reached. Now frame your answer."

    @pytest.mark.asyncio
    async def test_backend_failure_is_reported_to_model(self):
        indexer = StaticIndexer(error=IndexerError("pinecone query timed out"))
        context = SearchToolContext()
        result = await run(make_search_tool("s1", indexer, context=context), QUERY)

        assert result.content.startswith("Search failed: pinecone query timed out")
        assert context.queries == []


class TestExcludeSeen:
    """Passages surfaced earlier in the answer can be excluded."""

    @pytest.mark.asyncio
    async def test_second_search_excludes_first_results(self, passages):
        indexer = StaticIndexer(passages)
        context = SearchToolContext()
        tool = make_search_tool("s1", indexer, top_n=1, context=context, exclude_seen=True)

        first = await run(tool, QUERY)
        second = await run(tool, "how to configure the cli")

        assert first.custom_message.result[0].id == "s1/b"
        assert indexer.searches[1]["exclude_ids"] == {"s1/b"}
        assert second.custom_message.result[0].id == "s1/c"
        assert context.seen_ids == {"s1/b", "s1/c"}
