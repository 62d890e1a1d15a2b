"""
Tests for shared indexer post-processing.
"""
import pytest

from domain.models import SearchMatch, SearchResult
from fakes import StaticIndexer
from rag.base_indexer import generate_fetch_unique_id


class TestProcess:
    """Ranking and citation tagging."""

    @pytest.mark.asyncio
    async def test_sorted_by_descending_score(self, passages):
        indexer = StaticIndexer()
        processed = await indexer.process("alpha beta", SearchResult(matches=passages))

        assert [passage.id for passage in processed] == ["s1/b", "s1/c", "s1/a"]
        assert [passage.score for passage in processed] == [0.91, 0.67, 0.42]

    @pytest.mark.asyncio
    async def test_top_n_limits_output(self, passages):
        indexer = StaticIndexer()
        processed = await indexer.process("q", SearchResult(matches=passages), top_n=2)
        assert [passage.id for passage in processed] == ["s1/b", "s1/c"]

    @pytest.mark.asyncio
    async def test_default_top_n_from_constructor(self, passages):
        indexer = StaticIndexer()
        indexer.top_n = 1
        processed = await indexer.process("q", SearchResult(matches=passages))
        assert len(processed) == 1

    @pytest.mark.asyncio
    async def test_passage_fields_come_from_metadata(self, passages):
        indexer = StaticIndexer()
        processed = await indexer.process("what is beta", SearchResult(matches=passages))
        best = processed[0]

        assert best.content == "Beta content"
        assert best.url == "https://docs/b"
        assert best.scrape_item_id == "item-b"
        assert best.query == "what is beta"
        assert processed[1].scrape_item_id is None

    @pytest.mark.asyncio
    async def test_fetch_ids_are_unique_five_digit_strings(self):
        matches = [SearchMatch(id=f"s/{i}", score=i / 100, metadata={}) for i in range(50)]
        processed = await StaticIndexer().process("q", SearchResult(matches=matches), top_n=50)

        fetch_ids = [passage.fetch_unique_id for passage in processed]
        assert len(set(fetch_ids)) == 50
        assert all(len(fetch_id) == 5 and fetch_id.isdigit() for fetch_id in fetch_ids)

    @pytest.mark.asyncio
    async def test_ties_keep_backend_order(self):
        matches = [
            SearchMatch(id="first", score=0.5),
            SearchMatch(id="second", score=0.5),
            SearchMatch(id="third", score=0.9),
        ]
        processed = await StaticIndexer().process("q", SearchResult(matches=matches))
        assert [passage.id for passage in processed] == ["third", "first", "second"]

    @pytest.mark.asyncio
    async def test_empty_result(self):
        assert await StaticIndexer().process("q", SearchResult()) == []


def test_make_record_id_namespaces_by_scope():
    assert StaticIndexer().make_record_id("scope-1", "doc") == "scope-1/doc"


def test_generate_fetch_unique_id_skips_taken(monkeypatch):
    values = iter([12345, 12345, 54321])
    monkeypatch.setattr("rag.base_indexer.random.randint", lambda low, high: next(values))
    taken = {"12345"}

    assert generate_fetch_unique_id(taken) == "54321"
    assert taken == {"12345", "54321"}
