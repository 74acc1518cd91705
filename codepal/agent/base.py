from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from ..core.tool_events import ToolEventEmitter


class AgentError(Exception):
    """The agent finished a turn with an error result."""


@runtime_checkable
class AgentCore(Protocol):
    """The narrow surface the terminal front-end needs from an agent."""

    tool_events: ToolEventEmitter

    async def process_message(
        self, text: str, context: Optional[str] = None, verbose: bool = False
    ) -> str:
        ...

    async def clear_history_and_refresh(self) -> None:
        ...

    async def refresh_project_context(self) -> None:
        ...
