from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Any, Callable, Dict, List, Optional

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeSDKClient,
    ResultMessage,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)

from ..config import ConfigManager, SessionConfig
from ..core.file_listing import list_workspace_files
from ..core.session_log import SessionLogger
from ..core.tool_events import ToolEventEmitter
from .base import AgentError

LISTING_LIMIT = 40

SYSTEM_PROMPT_TEMPLATE = """You are codepal, a coding assistant working inside the user's terminal.

Working directory: {cwd}

Top-level entries:
{listing}

Answer concisely. When the user writes @path, they are referring to a file or
directory relative to the working directory; read it before answering questions
about it. Prefer small, reviewable edits and explain what you changed."""


class ClaudeAgentBridge:
    """Maintains a Claude Agent SDK session for the interactive front-end.

    One client is kept per conversation so follow-up messages share history.
    Tool use and tool results seen in the stream are re-published as tool
    events; the text of the assistant reply is returned to the caller.
    """

    def __init__(
        self,
        config: ConfigManager,
        session_config: Callable[[], SessionConfig],
        *,
        tool_events: ToolEventEmitter | None = None,
        session_logger: SessionLogger | None = None,
        client_factory: Callable[..., ClaudeSDKClient] = ClaudeSDKClient,
    ) -> None:
        self.config = config
        self._session_config = session_config
        self.tool_events = tool_events or ToolEventEmitter()
        self._session_logger = session_logger
        self._client_factory = client_factory
        self._client: Optional[ClaudeSDKClient] = None
        self._session_id: Optional[str] = None
        self._tool_calls: Dict[str, tuple[str, Any]] = {}
        self._lock = asyncio.Lock()
        self._system_prompt = self.build_system_prompt()

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    def build_system_prompt(self) -> str:
        config = self._session_config()
        root = config.working_directory
        entries = list_workspace_files(
            root,
            max_depth=1,
            include_hidden=config.allow_hidden,
            blocked_paths=config.blocked_paths,
        )
        names = [f"{entry.path}/" if entry.is_dir else entry.path for entry in entries]
        if len(names) > LISTING_LIMIT:
            names = names[:LISTING_LIMIT] + [f"... ({len(entries) - LISTING_LIMIT} more)"]
        listing = "\n".join(f"- {name}" for name in names) or "- (empty)"
        return SYSTEM_PROMPT_TEMPLATE.format(cwd=root, listing=listing)

    async def process_message(
        self, text: str, context: Optional[str] = None, verbose: bool = False
    ) -> str:
        prompt = f"{context}\n\n{text}" if context else text
        status = "error"
        if self._session_logger:
            self._session_logger.start_interaction("agent", summary=text[:240])
            self._session_logger.log_system_prompt("agent", self._system_prompt)
            self._session_logger.log_user_prompt("agent", prompt)
        try:
            async with self._lock:
                client = self._client or await self._connect(resume=self._session_id)
                await client.query(prompt)
                reply = await self._collect_reply(client, verbose=verbose)
            status = "completed"
            return reply
        except asyncio.CancelledError:
            status = "interrupted"
            await self._safe_disconnect(interrupted=True)
            raise
        except Exception as exc:
            if self._session_logger:
                self._session_logger.log_exception("agent", exc)
            await self._safe_disconnect()
            raise
        finally:
            if self._session_logger:
                self._session_logger.end_interaction("agent", status=status)

    async def clear_history_and_refresh(self) -> None:
        """Drop the conversation (a new client is created on the next message)."""
        async with self._lock:
            await self._safe_disconnect()
            self._tool_calls = {}
            self._session_id = None
            self._system_prompt = self.build_system_prompt()

    async def refresh_project_context(self) -> None:
        """Rebuild the system prompt and restart any live client with it.

        The CLI process reads its system prompt only at connect time, so a
        connected client is replaced by one that resumes the same session.
        """
        system_prompt = self.build_system_prompt()
        async with self._lock:
            self._system_prompt = system_prompt
            if self._client is not None:
                await self._safe_disconnect()
                await self._connect(resume=self._session_id)

    async def reset(self) -> None:
        async with self._lock:
            await self._safe_disconnect()

    async def _connect(self, *, resume: Optional[str] = None) -> ClaudeSDKClient:
        options = self.config.build_options(
            self._system_prompt,
            working_directory=self._session_config().working_directory,
            resume=resume,
        )
        client = self._client_factory(options=options)
        await client.connect()
        self._client = client
        return client

    async def _collect_reply(self, client: ClaudeSDKClient, *, verbose: bool) -> str:
        texts: List[str] = []
        async for message in client.receive_response():
            if isinstance(message, AssistantMessage):
                texts.extend(self._handle_blocks(message.content))
            elif isinstance(message, UserMessage):
                if isinstance(message.content, list):
                    self._handle_blocks(message.content)
            elif isinstance(message, ResultMessage):
                session_id = getattr(message, "session_id", None)
                if isinstance(session_id, str) and session_id:
                    self._session_id = session_id
                result_text = message.result or ""
                if getattr(message, "is_error", False):
                    raise AgentError(result_text or "Agent returned an error result.")
                if not texts and result_text:
                    texts.append(result_text)
                break
        reply = "\n\n".join(part.strip() for part in texts if part and part.strip())
        if verbose and self._session_logger:
            self._session_logger.log_level("agent", "debug", "agent.reply", reply)
        return reply

    def _handle_blocks(self, blocks: List[Any]) -> List[str]:
        texts: List[str] = []
        for block in blocks:
            if isinstance(block, TextBlock):
                if block.text:
                    if self._session_logger:
                        self._session_logger.log_assistant_text("agent", block.text)
                    texts.append(block.text)
            elif isinstance(block, ToolUseBlock):
                self._tool_calls[block.id] = (block.name, block.input)
                if self._session_logger:
                    self._session_logger.log_tool_use("agent", name=block.name, input_data=block.input)
                self.tool_events.emit_tool_call(block.name, block.input)
            elif isinstance(block, ToolResultBlock):
                name, args = self._tool_calls.pop(block.tool_use_id, ("tool", None))
                success = not bool(getattr(block, "is_error", False))
                content = _tool_result_text(block.content)
                if self._session_logger:
                    self._session_logger.log_tool_result(
                        "agent", name=name, content=content, success=success
                    )
                self.tool_events.emit_tool_result(name, success, content, args)
        return texts

    async def _safe_disconnect(self, interrupted: bool = False) -> None:
        if not self._client:
            return
        with suppress(Exception):
            if interrupted:
                await self._client.interrupt()
        with suppress(Exception):
            await self._client.disconnect()
        self._client = None


def _tool_result_text(content: Any) -> Any:
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text":
                parts.append(str(item.get("text", "")))
            else:
                parts.append(str(item))
        return "\n".join(parts)
    return content
