"""
Agent layer - a configured LLM role (prompt + tools + model).
Following SOLID:
- Single Responsibility - Agent only builds and dispatches completion requests.
- Dependency Inversion - Agent talks to an IChatProvider, never to a vendor SDK directly.

Agents do not execute tools, decode streams or hold conversation state, so one
instance can be shared by many concurrent flows.
"""
import inspect
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Type, Union

from langchain_core.utils.function_calling import convert_to_openai_function
from pydantic import BaseModel

from agentic.providers import OpenAIChatProvider
from domain.interfaces import IChatProvider
from domain.models import CompletionRequest, DeltaEvent, LlmMessage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_TOKENS = 4000

# Models that drop markdown unless explicitly told otherwise
FORMATTING_DIRECTIVE_MODELS = {"o1-mini"}
FORMATTING_DIRECTIVE = "Formatting re-enabled"


@dataclass
class ToolResult:
    """What a tool hands back: text for the model, plus an optional payload for the caller."""
    content: str
    custom_message: Optional[Any] = None


ToolExecutor = Callable[[Any], Union[ToolResult, Awaitable[ToolResult]]]


class NoArgs(BaseModel):
    """Schema for tools that take no arguments."""


@dataclass
class Tool:
    """
    A named, schema-typed callable the model may request.

    execute receives a validated instance of args_schema.
    """
    id: str
    description: str
    execute: ToolExecutor
    args_schema: Type[BaseModel] = NoArgs

    def to_openai_tool(self) -> Dict[str, Any]:
        """Declare the tool as {name, description, parameters}."""
        function = convert_to_openai_function(self.args_schema)
        function["name"] = self.id
        function["description"] = self.description
        return {"type": "function", "function": function}

    async def run(self, arguments: Optional[str]) -> ToolResult:
        """
        Validate the raw argument JSON and execute.

        Raises:
            pydantic.ValidationError: If the arguments are malformed or invalid
        """
        args = self.args_schema.model_validate_json(arguments or "{}")
        result = self.execute(args)
        if inspect.isawaitable(result):
            result = await result
        return result


def multi_line_prompt(lines: List[str]) -> str:
    """Join prompt lines, dropping empty sections."""
    return "\n".join(line for line in lines if line)


class Agent:
    """A configured LLM role."""

    def __init__(
        self,
        id: str,
        prompt: str,
        tools: Optional[List[Tool]] = None,
        schema: Optional[Type[BaseModel]] = None,
        model: str = DEFAULT_MODEL,
        provider: Optional[IChatProvider] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        user: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS
    ):
        self.id = id
        self.prompt = prompt
        self.tools = tools or []
        self.schema = schema
        self.model = model
        self.user = user
        self.max_tokens = max_tokens

        self.provider = provider or OpenAIChatProvider(api_key=api_key, base_url=base_url)

        logger.info(f"Agent '{id}' created with model {model} and {len(self.tools)} tool(s)")

    def build_messages(self, conversation: List[LlmMessage]) -> List[LlmMessage]:
        """Outbound message list. The system prompt always goes last."""
        messages: List[LlmMessage] = []
        if self.model in FORMATTING_DIRECTIVE_MODELS:
            messages.append(LlmMessage(role="developer", content=FORMATTING_DIRECTIVE))
        messages.extend(conversation)
        messages.append(LlmMessage(role="system", content=self.prompt))
        return messages

    def response_format(self) -> Optional[Dict[str, Any]]:
        if self.schema is None:
            return None
        return {
            "type": "json_schema",
            "json_schema": {
                "name": "json_object",
                "schema": self.schema.model_json_schema()
            }
        }

    def build_request(self, conversation: List[LlmMessage]) -> CompletionRequest:
        return CompletionRequest(
            model=self.model,
            messages=self.build_messages(conversation),
            tools=[tool.to_openai_tool() for tool in self.tools] or None,
            response_format=self.response_format(),
            user=self.user,
            max_tokens=self.max_tokens
        )

    def stream(self, conversation: List[LlmMessage]) -> AsyncIterator[DeltaEvent]:
        """Issue one streaming completion call for the given conversation."""
        return self.provider.stream(self.build_request(conversation))
