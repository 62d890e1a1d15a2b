"""
Domain errors.

ConfigurationError and its subclasses are fatal for the current flow step.
IndexerError covers transient I/O failures of embedding providers and vector backends.
FlowStateError signals a violated orchestration invariant (a programmer error).
"""
from typing import Iterable, Optional


class ConfigurationError(Exception):
    """Invalid or missing configuration."""


class IndexerNotFoundError(ConfigurationError):
    """Requested indexer key is unknown or its backend is not configured."""

    def __init__(self, key: Optional[str], available: Iterable[str] = ()):
        self.key = key
        self.available = list(available)
        super().__init__(
            f"Indexer {key!r} not found (configured: {', '.join(self.available) or 'none'})"
        )


class ToolNotFoundError(ConfigurationError):
    """A tool call names a tool that no registered agent provides."""

    def __init__(self, tool_id: str):
        self.tool_id = tool_id
        super().__init__(f"Tool {tool_id} not found")


class DuplicateToolError(ConfigurationError):
    """Two agents in one flow register the same tool id."""


class AgentNotFoundError(ConfigurationError):
    """An agent id is not registered in the flow."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id} not found")


class UnknownModelError(ConfigurationError):
    """Model identifier is not in the model catalogue."""


class FlowStateError(RuntimeError):
    """Operation is illegal in the flow's current state."""


class IndexerError(Exception):
    """Vector backend call failed or timed out."""


class EmbeddingError(IndexerError):
    """Embedding provider call failed or timed out."""
