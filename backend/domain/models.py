"""
Domain models - Core entities shared by the orchestrator and the retrieval layer.
Following SOLID: Single Responsibility Principle - each model has one clear purpose.
"""
from typing import List, Dict, Any, Optional, Literal
from pydantic import BaseModel, Field


Role = Literal["system", "developer", "user", "assistant", "tool"]


# ============================================================================
# Conversation messages
# ============================================================================

class ToolCallFunction(BaseModel):
    """Function name and the raw JSON argument string requested by the model."""
    name: str
    arguments: str = ""


class ToolCall(BaseModel):
    """A single tool call emitted by an assistant message."""
    id: str
    type: Literal["function"] = "function"
    function: ToolCallFunction


class LlmMessage(BaseModel):
    """One turn in a conversation, in the shape the completion provider expects."""
    role: Role
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None

    def is_tool_call(self) -> bool:
        return self.role == "assistant" and bool(self.tool_calls)

    def to_openai(self) -> Dict[str, Any]:
        """Render the provider wire format."""
        data: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [call.model_dump() for call in self.tool_calls]
        elif data["content"] is None:
            data["content"] = ""
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        return data


class FlowMessage(BaseModel):
    """
    A message owned by a Flow.

    agent_id is absent for messages injected by the caller. custom is an opaque
    payload attached by a tool result (citations, action calls, ...).
    """
    llm_message: LlmMessage
    agent_id: Optional[str] = None
    custom: Optional[Any] = None


class Usage(BaseModel):
    """Token/cost usage reported by the provider."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: Optional[float] = None


# ============================================================================
# Provider-neutral streaming events
# ============================================================================

class ToolCallDelta(BaseModel):
    """Fragment of a tool call, keyed by its index in the assistant turn."""
    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


class DeltaEvent(BaseModel):
    """Normalised stream chunk. Every provider adapter emits these."""
    role: Optional[str] = None
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCallDelta]] = None
    usage: Optional[Usage] = None


class CompletionRequest(BaseModel):
    """Outbound streaming completion request."""
    model: str
    messages: List[LlmMessage]
    tools: Optional[List[Dict[str, Any]]] = None
    response_format: Optional[Dict[str, Any]] = None
    user: Optional[str] = None
    max_tokens: Optional[int] = None


# ============================================================================
# Retrieval
# ============================================================================

class IndexDocument(BaseModel):
    """
    A unit of content to embed and store.

    id must be stable across re-upserts of the same logical item. metadata should
    carry `url` and `content` when the display content differs from `text`.
    """
    id: str
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchMatch(BaseModel):
    """Raw nearest-neighbour match. Score is backend-native; higher is more similar."""
    id: str
    score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    matches: List[SearchMatch] = Field(default_factory=list)


class ProcessedPassage(BaseModel):
    """A ranked, citable passage surfaced to the model."""
    id: str
    content: str
    url: str = ""
    score: float
    fetch_unique_id: str
    scrape_item_id: Optional[str] = None
    query: Optional[str] = None


# ============================================================================
# Tool payloads
# ============================================================================

class ActionCall(BaseModel):
    """Record of an external HTTP action executed by a tool."""
    action_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    response: str = ""
    status_code: Optional[int] = None


class DataGap(BaseModel):
    title: str
    description: str


class CustomMessage(BaseModel):
    """Custom payload attached to RAG agent tool results."""
    result: Optional[List[ProcessedPassage]] = None
    query: Optional[str] = None
    action_call: Optional[ActionCall] = None
    data_gap: Optional[DataGap] = None


# ============================================================================
# API requests
# ============================================================================

class AnswerRequest(BaseModel):
    """Incoming question from a channel adapter."""
    scope_id: str
    query: str
    indexer_key: str
    messages: List[FlowMessage] = Field(default_factory=list)
    model: Optional[str] = None
    system_prompt: str = ""
    min_score: Optional[float] = None
    show_sources: bool = True
    user: Optional[str] = None
    client_data: Optional[Dict[str, Any]] = None
    secret: Optional[str] = None
    current_page: Optional[Dict[str, Any]] = None


class IngestItemRequest(BaseModel):
    """Incoming page/item to index."""
    group_id: str
    indexer_key: str
    url: str
    text: str
    item_id: Optional[str] = None
    context: Optional[str] = None
    previous_record_ids: List[str] = Field(default_factory=list)


class DeleteIdsRequest(BaseModel):
    indexer_key: str
    ids: List[str]
