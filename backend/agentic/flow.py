"""
Flow orchestrator - drives one conversation exchange across agents and tools.
Following SOLID:
- Single Responsibility - Flow owns the message log and the run queue, nothing else.
- Open/Closed - new agents/tools plug in through the registry built at construction.

States are implicit in the data:
- idle: empty run queue, no pending tool calls
- agent-turn-pending: run queue non-empty
- tool-pending: an assistant tool call has no matching tool-result message
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Deque, Dict, Iterable, List, Optional

from pydantic import ValidationError

from agentic.agent import Agent, Tool
from agentic.stream import OnDelta, handle_stream
from domain.errors import (
    AgentNotFoundError, ConfigurationError, DuplicateToolError, FlowStateError, ToolNotFoundError
)
from domain.models import FlowMessage, LlmMessage, ToolCall, Usage

logger = logging.getLogger(__name__)


@dataclass
class FlowState:
    messages: List[FlowMessage] = field(default_factory=list)
    next_agent_ids: Deque[str] = field(default_factory=deque)
    started_at: Optional[datetime] = None


@dataclass
class PendingToolCall:
    """A tool call still waiting for its result, with the agent that emitted it."""
    call: ToolCall
    agent_id: Optional[str]


@dataclass
class FlowStep:
    """Messages appended by one stream() step."""
    messages: List[FlowMessage]
    agent_id: str
    usage: Optional[Usage] = None


@dataclass
class ToolBinding:
    agent_id: str
    tool: Tool


class Flow:
    """
    One orchestrated conversation exchange.

    Not safe for concurrent use; create one Flow per in-flight exchange. Agents
    may be shared between flows.
    """

    def __init__(
        self,
        agents: List[Agent],
        messages: Optional[List[FlowMessage]] = None,
        repeat_tool_agent: bool = True
    ):
        self.agents: Dict[str, Agent] = {}
        self.tools: Dict[str, ToolBinding] = {}
        self.repeat_tool_agent = repeat_tool_agent
        self.state = FlowState(messages=list(messages or []))

        for agent in agents:
            if agent.id in self.agents:
                raise ConfigurationError(f"Agent {agent.id} registered twice")
            self.agents[agent.id] = agent
            for tool in agent.tools:
                if tool.id in self.tools:
                    raise DuplicateToolError(
                        f"Tool {tool.id} provided by both {self.tools[tool.id].agent_id} and {agent.id}"
                    )
                self.tools[tool.id] = ToolBinding(agent_id=agent.id, tool=tool)

    @property
    def messages(self) -> List[FlowMessage]:
        return self.state.messages

    def get_agent(self, agent_id: str) -> Agent:
        agent = self.agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def add_message(self, message: FlowMessage) -> None:
        self.state.messages.append(message)

    def get_llm_messages(self) -> List[LlmMessage]:
        return [message.llm_message for message in self.state.messages]

    def get_pending_tool_calls(self) -> List[PendingToolCall]:
        """Tool calls without a result, in the order they were emitted."""
        calls: List[PendingToolCall] = []
        answered = set()
        for message in self.state.messages:
            llm_message = message.llm_message
            if llm_message.role == "tool" and llm_message.tool_call_id is not None:
                answered.add(llm_message.tool_call_id)
            elif llm_message.tool_calls:
                calls.extend(PendingToolCall(call=call, agent_id=message.agent_id) for call in llm_message.tool_calls)
        return [pending for pending in calls if pending.call.id not in answered]

    def is_tool_pending(self) -> bool:
        return len(self.get_pending_tool_calls()) > 0

    def has_started(self) -> bool:
        return self.state.started_at is not None

    def add_next_agents(self, agent_ids: Iterable[str]) -> None:
        """
        Append agents to the back of the run queue.

        Raises:
            FlowStateError: If a tool call is still waiting for its result
            AgentNotFoundError: If an id is not registered in this flow
        """
        agent_ids = list(agent_ids)
        if self.is_tool_pending():
            raise FlowStateError("Cannot schedule agents while a tool call is pending")
        for agent_id in agent_ids:
            self.get_agent(agent_id)
        self.state.next_agent_ids.extend(agent_ids)

    schedule_agents = add_next_agents

    def pop_next_agent(self) -> Optional[str]:
        if not self.state.next_agent_ids:
            return None
        return self.state.next_agent_ids.popleft()

    def _push_front(self, agent_id: str) -> None:
        self.state.next_agent_ids.appendleft(agent_id)

    async def run_tool(self, call: ToolCall) -> FlowMessage:
        """
        Execute one tool call and build its tool-result message.

        Raises:
            ToolNotFoundError: If no registered agent provides the tool
        """
        binding = self.tools.get(call.function.name)
        if binding is None:
            raise ToolNotFoundError(call.function.name)

        logger.info(f"Running tool {call.function.name} for agent {binding.agent_id}")
        custom = None
        try:
            result = await binding.tool.run(call.function.arguments)
            content = result.content
            custom = result.custom_message
        except ValidationError as e:
            logger.warning(f"Invalid arguments for tool {call.function.name}: {e}")
            content = f"Invalid arguments for tool {call.function.name}: {e}"
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Tool {call.function.name} failed: {e}")
            content = f"Tool {call.function.name} failed: {e}"

        return FlowMessage(
            llm_message=LlmMessage(role="tool", content=content, tool_call_id=call.id),
            agent_id=binding.agent_id,
            custom=custom
        )

    async def stream(self, on_delta: Optional[OnDelta] = None) -> Optional[FlowStep]:
        """
        Run a single step.

        Returns:
            The appended messages and the agent that produced them, or None once
            the run queue is empty
        """
        agent_id = self.pop_next_agent()
        if agent_id is None:
            return None

        if self.state.started_at is None:
            self.state.started_at = datetime.now()

        pending = self.get_pending_tool_calls()
        if pending:
            message = await self.run_tool(pending[0].call)
            self.add_message(message)
            if len(pending) > 1:
                self._push_front(agent_id)
            return FlowStep(messages=[message], agent_id=agent_id)

        agent = self.get_agent(agent_id)
        result = await handle_stream(agent.stream(self.get_llm_messages()), on_delta)
        new_messages = [FlowMessage(llm_message=message, agent_id=agent_id) for message in result.messages]
        self.state.messages.extend(new_messages)

        if any(message.llm_message.tool_calls for message in new_messages):
            self._push_front(agent_id)
            if self.repeat_tool_agent:
                self._push_front(agent_id)

        logger.debug(f"Agent {agent_id} appended {len(new_messages)} message(s)")
        return FlowStep(messages=new_messages, agent_id=agent_id, usage=result.usage)

    async def steps(self, on_delta: Optional[OnDelta] = None) -> AsyncIterator[FlowStep]:
        """Loop stream() until the run queue is exhausted."""
        while True:
            step = await self.stream(on_delta)
            if step is None:
                return
            yield step
