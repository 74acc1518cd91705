from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Literal, Optional

from .session_log import log_exception

ToolEventType = Literal["tool_call", "tool_result"]


@dataclass(frozen=True)
class ToolEvent:
    """Start or completion of a tool invocation inside the agent.

    Consumed transiently by the UI; only its rendering is kept.
    """

    type: ToolEventType
    tool_name: str
    args: Any = None
    success: Optional[bool] = None
    result: Any = None
    timestamp: datetime = field(default_factory=datetime.now)


ToolEventListener = Callable[[ToolEvent], None]


class ToolEventEmitter:
    def __init__(self) -> None:
        self._listeners: List[ToolEventListener] = []

    def subscribe(self, listener: ToolEventListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ToolEventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: ToolEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:  # noqa: BLE001
                log_exception("tool_events", exc)

    def emit_tool_call(self, tool_name: str, args: Any = None) -> None:
        self.emit(ToolEvent(type="tool_call", tool_name=tool_name, args=args))

    def emit_tool_result(
        self, tool_name: str, success: bool, result: Any = None, args: Any = None
    ) -> None:
        self.emit(
            ToolEvent(
                type="tool_result",
                tool_name=tool_name,
                args=args,
                success=success,
                result=result,
            )
        )

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
