from __future__ import annotations

import itertools
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Literal, Optional

from .tool_events import ToolEvent

MessageKind = Literal["user", "agent", "system", "tool_call", "error"]

ESSENTIAL_ARG_KEYS = ("path", "file", "file_path", "command", "pattern", "query", "name")
ARG_PREVIEW_LIMIT = 30
ERROR_PREVIEW_LIMIT = 50
VERBOSE_RESULT_LIMIT = 200


@dataclass(frozen=True)
class DisplayMessage:
    id: str
    kind: MessageKind
    content: str
    timestamp: datetime = field(default_factory=datetime.now)
    success: Optional[bool] = None


TranscriptListener = Callable[[DisplayMessage], None]


class Transcript:
    """Append-only conversation log shown to the user.

    Messages are never edited once appended; only :meth:`clear` removes them.
    """

    def __init__(self) -> None:
        self._messages: List[DisplayMessage] = []
        self._ids = itertools.count(1)
        self._listeners: List[TranscriptListener] = []

    @property
    def messages(self) -> tuple[DisplayMessage, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def add_listener(self, listener: TranscriptListener) -> None:
        self._listeners.append(listener)

    def append(
        self, kind: MessageKind, content: str, *, success: Optional[bool] = None
    ) -> DisplayMessage:
        message = DisplayMessage(
            id=str(next(self._ids)), kind=kind, content=content, success=success
        )
        self._messages.append(message)
        for listener in list(self._listeners):
            listener(message)
        return message

    def clear(self) -> None:
        self._messages = []

    def append_tool_event(self, event: ToolEvent, *, verbose: bool = False) -> DisplayMessage:
        if event.type == "tool_call":
            return self.append("tool_call", format_tool_call(event.tool_name, event.args))
        success = bool(event.success)
        if verbose:
            content = format_tool_result_verbose(
                event.tool_name, success, event.result, event.args
            )
        else:
            content = format_tool_result(event.tool_name, success, event.result, event.args)
        return self.append("tool_call", content, success=success)


def format_tool_call(tool_name: str, args: Any) -> str:
    return f"{tool_name}{_essential_context(tool_name, args)}"


def format_tool_result(tool_name: str, success: bool, result: Any, args: Any) -> str:
    status = "✓" if success else "✗"
    outcome = _condensed_outcome(tool_name, success, result)
    return f"{status} {tool_name}{_essential_context(tool_name, args)}{outcome}"


def format_tool_result_verbose(tool_name: str, success: bool, result: Any, args: Any) -> str:
    lines = [f"{tool_name} {'completed' if success else 'failed'}"]
    if args:
        lines.append("Arguments:")
        lines.extend(f"  {line}" for line in _to_text(args).splitlines())
    if success:
        if result is not None and result != "":
            lines.append("Result:")
            lines.extend(f"  {line}" for line in shorten(_to_text(result), VERBOSE_RESULT_LIMIT).splitlines())
    else:
        lines.append("Error:")
        detail = _error_text(result) or "No details returned."
        lines.extend(f"  {line}" for line in shorten(detail, VERBOSE_RESULT_LIMIT).splitlines())
    return "\n".join(lines)


def shorten(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}…"


def _essential_context(tool_name: str, args: Any) -> str:
    if not isinstance(args, dict):
        return ""
    is_shell = "bash" in tool_name.lower() or "shell" in tool_name.lower()
    for key in ESSENTIAL_ARG_KEYS:
        value = args.get(key)
        if not value:
            continue
        text = value if isinstance(value, str) else str(value)
        if key == "command" and is_shell:
            return f' "{text}"'
        if key == "pattern":
            return f' "{shorten(text, ARG_PREVIEW_LIMIT)}"'
        return f" {shorten(text, ARG_PREVIEW_LIMIT)}"
    return ""


def _condensed_outcome(tool_name: str, success: bool, result: Any) -> str:
    if not success:
        message = _error_text(result).strip()
        if message:
            return f" failed: {shorten(message, ERROR_PREVIEW_LIMIT)}"
        return " failed"
    if isinstance(result, dict) and "exitCode" in result:
        return f" (exit {result['exitCode']})"
    if isinstance(result, dict) and "exit_code" in result:
        return f" (exit {result['exit_code']})"
    if isinstance(result, str) and result:
        return f" ({len(result.splitlines())} lines, {len(result)} chars)"
    if isinstance(result, list):
        return f" ({len(result)} items)"
    return ""


def _error_text(result: Any) -> str:
    if isinstance(result, BaseException):
        return str(result)
    if isinstance(result, dict):
        for key in ("error", "message", "stderr"):
            if result.get(key):
                return str(result[key])
        return ""
    if result is None:
        return ""
    return result if isinstance(result, str) else str(result)


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)
