"""
Stream decoder - assembles a provider-neutral delta stream into a finished message.

Tool-call argument JSON arrives as a byte stream split across chunks, so fragments
are appended per call index and never parsed here.
"""
import inspect
import logging
from dataclasses import dataclass, field
from typing import AsyncIterable, Awaitable, Callable, Dict, List, Optional, Union

from domain.models import DeltaEvent, LlmMessage, ToolCall, ToolCallFunction, Usage

logger = logging.getLogger(__name__)


@dataclass
class StreamUpdate:
    """Running state passed to on_delta callbacks."""
    content: str
    role: str
    delta: Optional[str] = None


OnDelta = Callable[[StreamUpdate], Union[None, Awaitable[None]]]


@dataclass
class StreamResult:
    content: str
    messages: List[LlmMessage] = field(default_factory=list)
    usage: Optional[Usage] = None


async def _notify(on_delta: OnDelta, update: StreamUpdate) -> None:
    result = on_delta(update)
    if inspect.isawaitable(result):
        await result


async def handle_stream(
    events: AsyncIterable[DeltaEvent],
    on_delta: Optional[OnDelta] = None
) -> StreamResult:
    """
    Consume a delta stream and build exactly one assistant message.

    Args:
        events: Normalised stream events from a provider adapter
        on_delta: Optional sync or async callback, invoked per event until the
            first tool-call fragment is seen

    Returns:
        StreamResult with the accumulated content, the finished message and the
        last usage report
    """
    tool_calls: Dict[int, ToolCall] = {}
    content = ""
    role = "assistant"
    usage: Optional[Usage] = None

    async for event in events:
        if event.role:
            role = event.role

        if event.content:
            content += event.content

        for fragment in event.tool_calls or []:
            call = tool_calls.get(fragment.index)
            if call is None:
                call = ToolCall(
                    id=fragment.id or "",
                    function=ToolCallFunction(name=fragment.name or "", arguments="")
                )
                tool_calls[fragment.index] = call
            else:
                # Some providers only send id/name on a later fragment
                if fragment.id and not call.id:
                    call.id = fragment.id
                if fragment.name and not call.function.name:
                    call.function.name = fragment.name
            if fragment.arguments:
                call.function.arguments += fragment.arguments

        if event.usage is not None:
            usage = event.usage

        if not tool_calls and on_delta is not None:
            await _notify(on_delta, StreamUpdate(content=content, role=role, delta=event.content))

    if tool_calls:
        ordered = [tool_calls[index] for index in sorted(tool_calls)]
        logger.debug(f"Stream finished with {len(ordered)} tool call(s)")
        message = LlmMessage(role="assistant", content=content or None, tool_calls=ordered)
    else:
        message = LlmMessage(role=role, content=content)

    return StreamResult(content=content, messages=[message], usage=usage)
