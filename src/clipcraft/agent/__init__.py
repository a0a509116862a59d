"""Conversational, tool-using content agent."""

from clipcraft.agent.session import AgentEvent, AgentSession, CancellationToken
from clipcraft.agent.tools import ToolRegistry, ToolResult

__all__ = ["AgentEvent", "AgentSession", "CancellationToken", "ToolRegistry", "ToolResult"]
