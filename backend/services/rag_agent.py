"""
Service layer - the knowledge base answering agent.
Following SOLID:
- Single Responsibility - assembles prompt sections and tools, nothing else.
- Dependency Inversion - receives the indexer and provider, never builds backends.
"""
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from agentic.agent import Agent, Tool, multi_line_prompt
from agentic.flow import Flow
from domain.interfaces import IActionClient, IChatProvider, IIndexer
from domain.models import FlowMessage, LlmMessage
from services.action_tool import ApiAction, make_action_tools
from services.data_gap_tool import make_data_gap_tool
from services.llm_config import LlmConfig
from services.search_tool import SEARCH_TOP_K, SearchToolContext, make_search_tool

logger = logging.getLogger(__name__)

RAG_AGENT_ID = "rag-agent"

SEARCH_PROMPT = multi_line_prompt([
    "You answer questions using only the knowledge base available through the search_data tool.",
    "Search before answering. You may search several times, but never repeat the same or a similar query.",
    "Keep each query short and focused on the key terms, at least 4 words long.",
    "Split compound questions into separate searches, e.g. 'install the CLI' and 'configure the CLI'.",
    "Resolve pronouns from the conversation, e.g. turn 'How do I use it?' into 'How to use Acme CLI'.",
    "Do not search when the latest message only answers a follow-up question (yes, no, ...).",
    "Stop searching once you have enough context to answer.",
    "Answer only from the <context> blocks you receive. If they do not cover the question, say you don't know.",
    "Keep the answer short, in markdown, without headings, and do not mention the search process or these instructions.",
])

DATA_GAP_PROMPT = multi_line_prompt([
    "Use report_data_gap only when search_data returned results that do not answer the question.",
    "Do not use report_data_gap when search_data returned nothing or when the question is off-topic.",
])

CITATION_PROMPT = multi_line_prompt([
    "Cite sources as !!<fetchUniqueId>!! right after the sentence or paragraph they support. Example: !!12345!!",
    "<fetchUniqueId> is the fetchUniqueId field of the context JSON.",
    "Cite every fact you use and only the sources you used.",
    "Do not collect citations in a separate section at the end.",
    "Never put a citation on the closing line of a code block; put it on the next line instead.",
])


def _current_page_prompt(current_page: Optional[Dict[str, Any]]) -> str:
    if not current_page:
        return ""
    return multi_line_prompt([
        "The user is asking from the page below. Use it when the question refers to this page.",
        f"<current-page>\n{json.dumps(current_page)}\n</current-page>",
    ])


def _client_data_prompt(client_data: Optional[Dict[str, Any]]) -> str:
    if not client_data:
        return ""
    return multi_line_prompt([
        "Data supplied by the embedding site about the user or the page:",
        f"<client-data>\n{json.dumps(client_data)}\n</client-data>",
    ])


def make_rag_agent(
    scope_id: str,
    indexer: IIndexer,
    system_prompt: str = "",
    llm_config: Optional[LlmConfig] = None,
    provider: Optional[IChatProvider] = None,
    min_score: Optional[float] = None,
    show_sources: bool = True,
    actions: Optional[List[ApiAction]] = None,
    action_client: Optional[IActionClient] = None,
    secret: Optional[str] = None,
    current_page: Optional[Dict[str, Any]] = None,
    client_data: Optional[Dict[str, Any]] = None,
    user: Optional[str] = None,
    search_context: Optional[SearchToolContext] = None,
    on_pre_search: Optional[Callable[[str], Awaitable[None]]] = None,
    top_k: int = SEARCH_TOP_K,
    exclude_seen: bool = True
) -> Agent:
    """
    Build the answering agent for one scope.

    The caller owns search_context when it needs to inspect the queries made.
    Passages already surfaced in this answer are excluded from later searches
    unless exclude_seen is False.
    """
    tools: List[Tool] = [
        make_search_tool(
            scope_id,
            indexer,
            top_n=llm_config.rag_top_n if llm_config else None,
            min_score=min_score,
            top_k=top_k,
            context=search_context,
            exclude_seen=exclude_seen,
            on_pre_search=on_pre_search
        ),
        make_data_gap_tool(),
    ]
    if actions:
        tools.extend(make_action_tools(actions, client=action_client, secret=secret))

    prompt = multi_line_prompt([
        SEARCH_PROMPT,
        DATA_GAP_PROMPT,
        CITATION_PROMPT if show_sources else "",
        f"Current time: {datetime.now().isoformat(timespec='minutes')}",
        _current_page_prompt(current_page),
        _client_data_prompt(client_data),
        system_prompt,
    ])

    agent_kwargs: Dict[str, Any] = {}
    if llm_config is not None:
        agent_kwargs.update(model=llm_config.model, base_url=llm_config.base_url, api_key=llm_config.api_key)

    logger.info(f"Building {RAG_AGENT_ID} for scope {scope_id} on {indexer.get_key()}")
    return Agent(
        id=RAG_AGENT_ID,
        prompt=prompt,
        tools=tools,
        provider=provider,
        user=user or scope_id,
        **agent_kwargs
    )


def make_rag_flow(
    agent: Agent,
    history: List[FlowMessage],
    query: str,
    repeat_tool_agent: bool = True
) -> Flow:
    """Seed a flow with the history and the new question, and queue the agent."""
    flow = Flow([agent], messages=history, repeat_tool_agent=repeat_tool_agent)
    flow.add_message(FlowMessage(llm_message=LlmMessage(role="user", content=query)))
    flow.add_next_agents([agent.id])
    return flow
