"""
Chat completion providers and their stream adapters.

Each adapter normalises a vendor chunk into a DeltaEvent so the stream decoder
stays provider-agnostic.
"""
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import (
    AIMessage, AIMessageChunk, BaseMessage, HumanMessage, SystemMessage, ToolMessage
)
from langchain_openai import ChatOpenAI
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletionChunk

from domain.interfaces import IChatProvider
from domain.models import CompletionRequest, DeltaEvent, LlmMessage, ToolCallDelta, Usage

logger = logging.getLogger(__name__)


# ============================================================================
# OpenAI-compatible endpoints (OpenAI, OpenRouter, Anthropic/Gemini compat APIs)
# ============================================================================

def openai_chunk_to_delta(chunk: ChatCompletionChunk) -> DeltaEvent:
    """Convert an OpenAI chat completion chunk into a DeltaEvent."""
    usage = None
    if chunk.usage is not None:
        usage = Usage(
            prompt_tokens=chunk.usage.prompt_tokens or 0,
            completion_tokens=chunk.usage.completion_tokens or 0,
            total_tokens=chunk.usage.total_tokens or 0,
            # OpenRouter reports cost as an extra field
            cost=getattr(chunk.usage, "cost", None)
        )

    if not chunk.choices:
        return DeltaEvent(usage=usage)

    delta = chunk.choices[0].delta
    fragments = [
        ToolCallDelta(
            index=tool_call.index,
            id=tool_call.id,
            name=tool_call.function.name if tool_call.function else None,
            arguments=tool_call.function.arguments if tool_call.function else None
        )
        for tool_call in delta.tool_calls or []
    ]

    return DeltaEvent(
        role=delta.role,
        content=delta.content,
        tool_calls=fragments or None,
        usage=usage
    )


class OpenAIChatProvider(IChatProvider):
    """Streams from any OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None
    ):
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)

    def build_params(self, request: CompletionRequest) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": request.model,
            "messages": [message.to_openai() for message in request.messages],
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if request.tools:
            params["tools"] = request.tools
        if request.response_format:
            params["response_format"] = request.response_format
        if request.user:
            params["user"] = request.user
        if request.max_tokens:
            params["max_tokens"] = request.max_tokens
        return params

    async def stream(self, request: CompletionRequest) -> AsyncIterator[DeltaEvent]:
        stream = await self.client.chat.completions.create(**self.build_params(request))
        async for chunk in stream:
            yield openai_chunk_to_delta(chunk)


# ============================================================================
# LangChain chat models
# ============================================================================

def langchain_chunk_to_delta(chunk: AIMessageChunk) -> DeltaEvent:
    """Convert a LangChain AIMessageChunk into a DeltaEvent."""
    if isinstance(chunk.content, str):
        content = chunk.content
    else:
        content = "".join(
            part.get("text", "") for part in chunk.content
            if isinstance(part, dict) and part.get("type") == "text"
        )

    fragments = [
        ToolCallDelta(
            index=fragment.get("index") if fragment.get("index") is not None else position,
            id=fragment.get("id"),
            name=fragment.get("name"),
            arguments=fragment.get("args")
        )
        for position, fragment in enumerate(chunk.tool_call_chunks)
    ]

    usage = None
    if chunk.usage_metadata:
        usage = Usage(
            prompt_tokens=chunk.usage_metadata.get("input_tokens", 0),
            completion_tokens=chunk.usage_metadata.get("output_tokens", 0),
            total_tokens=chunk.usage_metadata.get("total_tokens", 0)
        )

    return DeltaEvent(
        role="assistant",
        content=content or None,
        tool_calls=fragments or None,
        usage=usage
    )


def to_langchain_messages(messages: List[LlmMessage]) -> List[BaseMessage]:
    """Convert conversation messages into LangChain message objects."""
    converted: List[BaseMessage] = []
    for message in messages:
        if message.role in ("system", "developer"):
            converted.append(SystemMessage(content=message.content or ""))
        elif message.role == "user":
            converted.append(HumanMessage(content=message.content or ""))
        elif message.role == "tool":
            converted.append(ToolMessage(content=message.content or "", tool_call_id=message.tool_call_id or ""))
        else:
            tool_calls = []
            invalid_tool_calls = []
            for call in message.tool_calls or []:
                try:
                    args = json.loads(call.function.arguments or "{}")
                    tool_calls.append({"name": call.function.name, "args": args, "id": call.id, "type": "tool_call"})
                except json.JSONDecodeError as e:
                    invalid_tool_calls.append({
                        "name": call.function.name,
                        "args": call.function.arguments,
                        "id": call.id,
                        "error": str(e),
                        "type": "invalid_tool_call"
                    })
            converted.append(AIMessage(
                content=message.content or "",
                tool_calls=tool_calls,
                invalid_tool_calls=invalid_tool_calls
            ))
    return converted


class LangChainChatProvider(IChatProvider):
    """
    Streams from a LangChain chat model.

    The model name and token budget are fixed when the chat model is built, so
    request.model and request.max_tokens are not forwarded.
    """

    def __init__(self, llm: Optional[BaseChatModel] = None, api_key: Optional[str] = None, model: str = "gpt-4o-mini"):
        self.llm = llm or ChatOpenAI(model=model, api_key=api_key, streaming=True)

    async def stream(self, request: CompletionRequest) -> AsyncIterator[DeltaEvent]:
        runnable = self.llm.bind_tools(request.tools) if request.tools else self.llm
        async for chunk in runnable.astream(to_langchain_messages(request.messages)):
            yield langchain_chunk_to_delta(chunk)
