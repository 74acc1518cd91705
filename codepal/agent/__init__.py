"""Agent bridge package."""

from .base import AgentCore, AgentError
from .runner import ClaudeAgentBridge

__all__ = [
    "AgentCore",
    "AgentError",
    "ClaudeAgentBridge",
]
