"""
Agentic core: stream decoding, agents and the flow orchestrator.
"""
from agentic.agent import Agent, Tool, ToolResult, multi_line_prompt
from agentic.flow import Flow, FlowStep
from agentic.stream import StreamResult, StreamUpdate, handle_stream

__all__ = [
    "Agent",
    "Tool",
    "ToolResult",
    "multi_line_prompt",
    "Flow",
    "FlowStep",
    "StreamResult",
    "StreamUpdate",
    "handle_stream",
]
