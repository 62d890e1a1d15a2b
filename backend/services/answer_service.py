"""
Service layer - answers one question by driving a RAG flow to completion.
Following SOLID:
- Single Responsibility - translates flow steps into a stream of client events.
- Dependency Inversion - indexers, provider and model config are injected.

Event types:
- llm-chunk: incremental answer text
- tool-message: a tool result with its custom payload
- answer-complete: final content, cited sources, new messages and usage
- error: the flow failed after streaming had started
"""
import asyncio
import contextlib
import logging
import re
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from agentic.flow import Flow
from agentic.stream import StreamUpdate
from domain.interfaces import IActionClient, IChatProvider
from domain.models import AnswerRequest, CustomMessage, FlowMessage, Usage
from rag.factory import IndexerRegistry
from services.action_tool import ApiAction
from services.llm_config import LlmConfig, get_config
from services.rag_agent import make_rag_agent, make_rag_flow
from services.search_tool import SEARCH_TOP_K

logger = logging.getLogger(__name__)

CITATION_PATTERN = re.compile(r"!!(\d+)!!")

_DONE = object()


def cited_sources(content: str, messages: List[FlowMessage]) -> List[Dict[str, Any]]:
    """Passages from this answer's tool results whose fetch id is cited in content."""
    cited = set(CITATION_PATTERN.findall(content or ""))
    sources = []
    for message in messages:
        custom = message.custom
        if isinstance(custom, CustomMessage) and custom.result:
            sources.extend(
                passage.model_dump(mode="json") for passage in custom.result
                if passage.fetch_unique_id in cited
            )
    return sources


class AnswerService:
    """Builds a flow per request and streams its progress."""

    def __init__(
        self,
        registry: IndexerRegistry,
        provider: Optional[IChatProvider] = None,
        llm_config_resolver: Callable[[Optional[str]], LlmConfig] = get_config,
        action_client: Optional[IActionClient] = None,
        top_k: int = SEARCH_TOP_K
    ):
        self.registry = registry
        self.provider = provider
        self.llm_config_resolver = llm_config_resolver
        self.action_client = action_client
        self.top_k = top_k

    def build_flow(self, request: AnswerRequest, actions: Optional[List[ApiAction]] = None) -> Flow:
        """
        Resolve indexer and model, then build the flow.

        Raises:
            ConfigurationError: Unknown indexer key or model
        """
        indexer = self.registry.get(request.indexer_key)
        llm_config = self.llm_config_resolver(request.model)
        agent = make_rag_agent(
            request.scope_id,
            indexer,
            system_prompt=request.system_prompt,
            llm_config=llm_config,
            provider=self.provider,
            min_score=request.min_score,
            show_sources=request.show_sources,
            actions=actions,
            action_client=self.action_client,
            secret=request.secret,
            current_page=request.current_page,
            client_data=request.client_data,
            user=request.user,
            top_k=self.top_k
        )
        return make_rag_flow(agent, list(request.messages), request.query)

    async def stream_flow(self, flow: Flow, show_sources: bool = True) -> AsyncIterator[Dict[str, Any]]:
        """
        Run the flow in a producer task and yield its events.

        Closing this generator cancels the producer, which stops the LLM stream.
        """
        queue: asyncio.Queue = asyncio.Queue()
        first_new = len(flow.messages)

        def on_delta(update: StreamUpdate) -> None:
            if update.delta:
                queue.put_nowait({"type": "llm-chunk", "content": update.delta, "role": update.role})

        async def produce() -> None:
            usage = Usage()
            try:
                async for step in flow.steps(on_delta):
                    if step.usage is not None:
                        usage.prompt_tokens += step.usage.prompt_tokens
                        usage.completion_tokens += step.usage.completion_tokens
                        usage.total_tokens += step.usage.total_tokens
                    for message in step.messages:
                        if message.llm_message.role == "tool":
                            queue.put_nowait({
                                "type": "tool-message",
                                "agent_id": step.agent_id,
                                "tool_call_id": message.llm_message.tool_call_id,
                                "custom": message.model_dump(mode="json")["custom"],
                            })

                new_messages = flow.messages[first_new:]
                answer = next(
                    (
                        message.llm_message.content or "" for message in reversed(new_messages)
                        if message.llm_message.role == "assistant" and not message.llm_message.tool_calls
                    ),
                    ""
                )
                queue.put_nowait({
                    "type": "answer-complete",
                    "content": answer,
                    "sources": cited_sources(answer, new_messages) if show_sources else [],
                    "messages": [message.model_dump(mode="json") for message in new_messages],
                    "usage": usage.model_dump(),
                })
            except asyncio.CancelledError:
                logger.info("Answer stream cancelled by consumer")
                raise
            except Exception as e:
                # Failures after the first event are reported in-band
                logger.error(f"Answer flow failed: {e}")
                queue.put_nowait({"type": "error", "message": str(e)})
            finally:
                queue.put_nowait(_DONE)

        task = asyncio.create_task(produce())
        try:
            while True:
                event = await queue.get()
                if event is _DONE:
                    break
                yield event
        finally:
            if not task.done():
                task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def stream_answer(
        self,
        request: AnswerRequest,
        actions: Optional[List[ApiAction]] = None
    ) -> AsyncIterator[Dict[str, Any]]:
        flow = self.build_flow(request, actions)
        async with contextlib.aclosing(self.stream_flow(flow, show_sources=request.show_sources)) as events:
            async for event in events:
                yield event
