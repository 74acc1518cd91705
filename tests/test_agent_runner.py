import asyncio
import io
import os
import tempfile
import unittest
from pathlib import Path
from typing import Any, List
from unittest import mock

from claude_agent_sdk import (
    AssistantMessage,
    ResultMessage,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)
from rich.console import Console

from codepal.agent import AgentError, ClaudeAgentBridge
from codepal.config import CodepalPaths, ConfigManager
from codepal.config.manager import SessionConfig
from codepal.core.session_log import SessionLogger


def _message(cls: type, **attrs: Any) -> Any:
    message = mock.Mock(spec=cls)
    for key, value in attrs.items():
        setattr(message, key, value)
    return message


def _text(text: str) -> Any:
    return _message(TextBlock, text=text)


def _result(result: str = "", is_error: bool = False, session_id: str = "session-1") -> Any:
    return _message(ResultMessage, result=result, is_error=is_error, session_id=session_id)


class FakeClient:
    instances: List["FakeClient"] = []

    def __init__(self, options: Any) -> None:
        self.options = options
        self.queries: List[str] = []
        self.connected = False
        self.interrupted = False
        self.disconnected = False
        self.script: List[Any] = []
        self.hang = False
        FakeClient.instances.append(self)

    async def connect(self) -> None:
        self.connected = True

    async def query(self, prompt: str) -> None:
        self.queries.append(prompt)

    async def receive_response(self):  # type: ignore[no-untyped-def]
        if self.hang:
            await asyncio.sleep(10)
        for message in self.script:
            yield message

    async def interrupt(self) -> None:
        self.interrupted = True

    async def disconnect(self) -> None:
        self.disconnected = True


class AgentBridgeTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        FakeClient.instances = []
        self._tmp_home = tempfile.TemporaryDirectory()
        self._tmp_root = tempfile.TemporaryDirectory()
        self._env = mock.patch.dict(os.environ, {"HOME": self._tmp_home.name})
        self._env.start()
        self.root = Path(self._tmp_root.name)
        (self.root / "src").mkdir()
        (self.root / "README.md").write_text("hello", encoding="utf-8")
        self.paths = CodepalPaths(self.root)
        self.config = ConfigManager(
            self.paths, console=Console(file=io.StringIO(), color_system=None)
        )
        self.session_config = SessionConfig(working_directory=self.root)
        self.script: List[Any] = []
        self.hang = False
        self.bridge = ClaudeAgentBridge(
            self.config,
            lambda: self.session_config,
            session_logger=SessionLogger(self.paths, "session"),
            client_factory=self._make_client,
        )

    async def asyncTearDown(self) -> None:
        self._env.stop()
        self._tmp_home.cleanup()
        self._tmp_root.cleanup()

    def _make_client(self, options: Any) -> FakeClient:
        client = FakeClient(options)
        client.script = self.script
        client.hang = self.hang
        return client

    def test_system_prompt_lists_workspace(self) -> None:
        prompt = self.bridge.system_prompt
        self.assertIn(str(self.root), prompt)
        self.assertIn("- src/", prompt)
        self.assertIn("- README.md", prompt)

    async def test_reply_text_is_collected(self) -> None:
        self.script.extend(
            [
                _message(AssistantMessage, content=[_text("Hello"), _text("there")]),
                _result("done"),
            ]
        )
        reply = await self.bridge.process_message("hi", context="@README.md")
        self.assertEqual(reply, "Hello\n\nthere")
        client = FakeClient.instances[0]
        self.assertTrue(client.connected)
        self.assertEqual(client.queries, ["@README.md\n\nhi"])
        self.assertEqual(client.options.system_prompt, self.bridge.system_prompt)

    async def test_result_text_used_when_no_text_blocks(self) -> None:
        self.script.append(_result("final answer"))
        self.assertEqual(await self.bridge.process_message("hi"), "final answer")

    async def test_client_is_reused_between_turns(self) -> None:
        self.script.append(_result("ok"))
        await self.bridge.process_message("one")
        await self.bridge.process_message("two")
        self.assertEqual(len(FakeClient.instances), 1)
        self.assertEqual(FakeClient.instances[0].queries, ["one", "two"])

    async def test_tool_blocks_become_events(self) -> None:
        events = []
        self.bridge.tool_events.subscribe(events.append)
        self.script.extend(
            [
                _message(
                    AssistantMessage,
                    content=[_message(ToolUseBlock, id="t1", name="Read", input={"file_path": "a.py"})],
                ),
                _message(
                    UserMessage,
                    content=[
                        _message(
                            ToolResultBlock,
                            tool_use_id="t1",
                            content=[{"type": "text", "text": "line"}],
                            is_error=False,
                        )
                    ],
                ),
                _result("read it"),
            ]
        )
        await self.bridge.process_message("read a.py")
        self.assertEqual([event.type for event in events], ["tool_call", "tool_result"])
        self.assertEqual(events[1].tool_name, "Read")
        self.assertTrue(events[1].success)
        self.assertEqual(events[1].result, "line")
        self.assertEqual(events[1].args, {"file_path": "a.py"})

    async def test_error_result_raises_and_disconnects(self) -> None:
        self.script.append(_result("rate limited", is_error=True))
        with self.assertRaises(AgentError) as ctx:
            await self.bridge.process_message("hi")
        self.assertIn("rate limited", str(ctx.exception))
        self.assertTrue(FakeClient.instances[0].disconnected)

    async def test_cancel_interrupts_client(self) -> None:
        self.hang = True
        task = asyncio.ensure_future(self.bridge.process_message("slow"))
        await asyncio.sleep(0.01)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertTrue(FakeClient.instances[0].interrupted)
        self.assertTrue(FakeClient.instances[0].disconnected)

    async def test_clear_history_starts_new_client(self) -> None:
        self.script.append(_result("ok"))
        await self.bridge.process_message("one")
        await self.bridge.clear_history_and_refresh()
        self.assertTrue(FakeClient.instances[0].disconnected)
        await self.bridge.process_message("two")
        self.assertEqual(len(FakeClient.instances), 2)

    async def test_refresh_restarts_live_client_with_new_prompt(self) -> None:
        self.script.append(_result("ok"))
        await self.bridge.process_message("one")
        (self.root / "NEW.md").write_text("x", encoding="utf-8")
        await self.bridge.refresh_project_context()
        self.assertEqual(len(FakeClient.instances), 2)
        old, new = FakeClient.instances
        self.assertTrue(old.disconnected)
        self.assertNotIn("NEW.md", old.options.system_prompt)
        self.assertTrue(new.connected)
        self.assertIn("NEW.md", new.options.system_prompt)
        self.assertEqual(new.options.resume, "session-1")
        await self.bridge.process_message("two")
        self.assertEqual(new.queries, ["two"])

    async def test_refresh_without_client_defers_connect(self) -> None:
        (self.root / "NEW.md").write_text("x", encoding="utf-8")
        await self.bridge.refresh_project_context()
        self.assertEqual(FakeClient.instances, [])
        self.script.append(_result("ok"))
        await self.bridge.process_message("one")
        client = FakeClient.instances[0]
        self.assertIn("NEW.md", client.options.system_prompt)
        self.assertIsNone(client.options.resume)

    async def test_clear_forgets_session(self) -> None:
        self.script.append(_result("ok"))
        await self.bridge.process_message("one")
        await self.bridge.clear_history_and_refresh()
        await self.bridge.process_message("two")
        self.assertIsNone(FakeClient.instances[1].options.resume)


if __name__ == "__main__":
    unittest.main()
