"""
Service layer - knowledge base search tool.
Following SOLID: Single Responsibility - one tool, one indexer, one scope.

The tool returns retrieved passages as a <context> JSON block for the model and
the processed passages as custom payload for citation rendering.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Set

from pydantic import BaseModel, Field

from agentic.agent import Tool, ToolResult
from domain.errors import IndexerError
from domain.interfaces import IIndexer
from domain.models import CustomMessage

logger = logging.getLogger(__name__)

SEARCH_TOOL_ID = "search_data"
MAX_QUERIES = 5
SEARCH_TOP_K = 20
MIN_QUERY_CHARS = 5
MIN_QUERY_WORDS = 4

NO_RESULTS_MESSAGE = (
    "No relevant information found. Don't answer the query. Inform that you don't know the answer."
)


@dataclass
class SearchToolContext:
    """Per-answer search state shared by the tool invocations of one flow."""
    queries: List[str] = field(default_factory=list)
    seen_ids: Set[str] = field(default_factory=set)


class SearchQueryArgs(BaseModel):
    query: str = Field(description="The query to search the vector database with")


def make_search_tool(
    scope_id: str,
    indexer: IIndexer,
    top_n: Optional[int] = None,
    top_k: int = SEARCH_TOP_K,
    min_score: Optional[float] = None,
    context: Optional[SearchToolContext] = None,
    exclude_seen: bool = False,
    max_queries: int = MAX_QUERIES,
    on_pre_search: Optional[Callable[[str], Awaitable[None]]] = None
) -> Tool:
    """
    Build the search_data tool bound to one scope.

    Args:
        scope_id: Knowledge base to search
        indexer: Backend the scope was indexed with
        top_n: Passages surfaced per search (indexer default when None)
        top_k: Candidates fetched from the backend before re-ranking
        min_score: Drop passages scoring below this
        context: Shared state for query de-duplication; a fresh one when None
        exclude_seen: Skip records already surfaced earlier in this answer
        max_queries: Searches allowed per answer
        on_pre_search: Awaited with the query before the backend is hit
    """
    context = context or SearchToolContext()

    async def execute(args: SearchQueryArgs) -> ToolResult:
        query = args.query.strip()

        if query in context.queries:
            logger.info(f"Query already searched - {query}")
            return ToolResult(content=f'The query "{query}" is already searched.')

        if len(context.queries) >= max_queries:
            logger.info(f"Maximum number of queries reached - {query}")
            return ToolResult(content="Maximum number of queries reached. Now frame your answer.")

        if len(query) < MIN_QUERY_CHARS or len(query.split()) < MIN_QUERY_WORDS:
            logger.info(f"Query is too short - {query}")
            return ToolResult(content=f'The query "{query}" is too short. Search again with a longer query.')

        logger.info(f"Searching {indexer.get_key()} for - {query}")
        if on_pre_search is not None:
            await on_pre_search(query)

        try:
            result = await indexer.search(
                scope_id,
                query,
                top_k=top_k,
                exclude_ids=context.seen_ids if exclude_seen else None
            )
            processed = await indexer.process(query, result, top_n=top_n)
        except IndexerError as e:
            logger.error(f"Search failed for '{query}': {e}")
            return ToolResult(content=f"Search failed: {e}. Try again later or answer without the knowledge base.")

        context.queries.append(query)

        filtered = [passage for passage in processed if min_score is None or passage.score >= min_score]
        context.seen_ids.update(passage.id for passage in filtered)

        if not filtered:
            return ToolResult(
                content=NO_RESULTS_MESSAGE,
                custom_message=CustomMessage(result=processed, query=query)
            )

        payload = json.dumps([
            {"url": passage.url, "content": passage.content, "fetchUniqueId": passage.fetch_unique_id}
            for passage in filtered
        ])
        return ToolResult(
            content=f"<context>\n{payload}\n</context>",
            custom_message=CustomMessage(result=processed, query=query)
        )

    return Tool(
        id=SEARCH_TOOL_ID,
        description="Search the vector database for the most relevant documents.",
        execute=execute,
        args_schema=SearchQueryArgs
    )
