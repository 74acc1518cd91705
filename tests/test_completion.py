import asyncio
import tempfile
import unittest
from pathlib import Path
from typing import List

from codepal.cli.completion import (
    CommandCompletionProvider,
    CompletionController,
    CompletionItem,
    CompletionManager,
    CompletionProvider,
    CompletionState,
    FileCompletionProvider,
)
from codepal.config.manager import SessionConfig

COMMANDS = [
    ("help", "Show help"),
    ("clear", "Clear history"),
    ("config", "Show configuration"),
    ("refresh", ""),
]


def _touch(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("x", encoding="utf-8")


class _StaticProvider(CompletionProvider):
    def __init__(self, trigger: str, values: List[str]) -> None:
        self.trigger = trigger
        self.values = values

    @property
    def type(self):  # type: ignore[override]
        return "command"

    def can_handle(self, text: str, cursor_position: int) -> bool:
        return text.startswith(self.trigger)

    def extract_partial(self, text: str, cursor_position: int) -> str:
        return text[len(self.trigger) : cursor_position]

    async def get_completions(self, partial: str) -> List[CompletionItem]:
        return [CompletionItem(value=v, type="command") for v in self.values if v.startswith(partial)]


class _GatedProvider(_StaticProvider):
    """Blocks the first request until released."""

    def __init__(self) -> None:
        super().__init__("/", ["alpha", "beta"])
        self.gate = asyncio.Event()
        self.calls = 0

    async def get_completions(self, partial: str) -> List[CompletionItem]:
        self.calls += 1
        if self.calls == 1:
            await self.gate.wait()
        return await super().get_completions(partial)


class _FailingProvider(_StaticProvider):
    async def get_completions(self, partial: str) -> List[CompletionItem]:
        raise OSError("disk unavailable")


class CommandCompletionProviderTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.provider = CommandCompletionProvider(lambda: COMMANDS)

    def test_can_handle(self) -> None:
        self.assertTrue(self.provider.can_handle("/he", 3))
        self.assertFalse(self.provider.can_handle("he", 2))
        self.assertFalse(self.provider.can_handle("/", 0))
        self.assertEqual(self.provider.extract_partial("/cle", 4), "cle")

    async def test_prefix_filter_keeps_table_order(self) -> None:
        items = await self.provider.get_completions("c")
        self.assertEqual([item.value for item in items], ["clear", "config"])
        items = await self.provider.get_completions("CL")
        self.assertEqual([item.value for item in items], ["clear"])
        self.assertEqual(items[0].description, "Clear history")

    async def test_empty_partial_lists_all(self) -> None:
        items = await self.provider.get_completions("")
        self.assertEqual([item.value for item in items], ["help", "clear", "config", "refresh"])
        self.assertIsNone(items[-1].description)
        self.assertTrue(all(item.type == "command" for item in items))


class FileCompletionProviderTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        _touch(self.root / "src" / "index.ts")
        _touch(self.root / "src" / "app.py")
        _touch(self.root / "docs" / "readme.md")
        _touch(self.root / "misc.bin")
        _touch(self.root / "Makefile")
        _touch(self.root / "node_modules" / "pkg" / "index.js")
        self.config = SessionConfig(working_directory=self.root)
        self.provider = FileCompletionProvider(lambda: self.config)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_trigger_rules(self) -> None:
        self.assertTrue(self.provider.can_handle("@sr", 3))
        self.assertTrue(self.provider.can_handle("look at @sr", 11))
        self.assertFalse(self.provider.can_handle("@sr foo", 7))
        self.assertFalse(self.provider.can_handle("no trigger", 10))
        self.assertEqual(self.provider.extract_partial("look at @sr", 11), "sr")

    async def test_ranks_prefix_matches_first(self) -> None:
        items = await self.provider.get_completions("sr")
        values = [item.value for item in items]
        self.assertEqual(values[0], "src/")
        self.assertIn("src/index.ts", values)
        if "docs/readme.md" in values:
            self.assertLess(values.index("src/index.ts"), values.index("docs/readme.md"))

    async def test_filters_extensions_and_blocked_paths(self) -> None:
        values = [item.value for item in await self.provider.get_completions("")]
        self.assertIn("Makefile", values)
        self.assertIn("docs/", values)
        self.assertNotIn("misc.bin", values)
        self.assertFalse(any(v.startswith("node_modules") for v in values))
        self.assertTrue(all(item.type == "file" for item in await self.provider.get_completions("")))

    async def test_allowed_extensions_override(self) -> None:
        self.config = SessionConfig(working_directory=self.root, allowed_extensions=(".bin",))
        values = [item.value for item in await self.provider.get_completions("")]
        self.assertIn("misc.bin", values)
        self.assertNotIn("src/app.py", values)


class CompletionStateTests(unittest.TestCase):
    def test_visibility_follows_items(self) -> None:
        state = CompletionState()
        state.show([], "file")
        self.assertFalse(state.is_visible)
        self.assertIsNone(state.type)
        state.show([CompletionItem("a", "file"), CompletionItem("b", "file")], "file")
        self.assertTrue(state.is_visible)
        self.assertEqual(state.selected_index, 0)

    def test_selection_is_clamped(self) -> None:
        state = CompletionState()
        state.show([CompletionItem("a", "file"), CompletionItem("b", "file")], "file")
        state.select_previous()
        self.assertEqual(state.selected_index, 0)
        state.select_next()
        state.select_next()
        self.assertEqual(state.selected_index, 1)
        self.assertEqual(state.selected_item().value, "b")
        state.hide()
        self.assertIsNone(state.selected_item())


class CompletionManagerTests(unittest.IsolatedAsyncioTestCase):
    async def test_first_matching_provider_wins(self) -> None:
        manager = CompletionManager()
        first = _StaticProvider("/", ["one"])
        second = _StaticProvider("/", ["two"])
        manager.add_provider(first)
        manager.add_provider(second)
        items = await manager.get_completions("/", 1)
        self.assertEqual([item.value for item in items], ["one"])
        manager.remove_provider(first)
        items = await manager.get_completions("/", 1)
        self.assertEqual([item.value for item in items], ["two"])

    async def test_no_provider_gives_empty_list(self) -> None:
        manager = CompletionManager([_StaticProvider("/", ["one"])])
        self.assertEqual(await manager.get_completions("plain text", 5), [])


class CompletionControllerTests(unittest.IsolatedAsyncioTestCase):
    async def test_refresh_shows_and_hides(self) -> None:
        controller = CompletionController(
            CompletionManager([CommandCompletionProvider(lambda: COMMANDS)])
        )
        self.assertTrue(await controller.refresh("/he", 3))
        self.assertTrue(controller.state.is_visible)
        self.assertEqual(controller.state.type, "command")
        self.assertTrue(await controller.refresh("/zzz", 4))
        self.assertFalse(controller.state.is_visible)
        await controller.refresh("/he", 3)
        self.assertTrue(await controller.refresh("hello", 5))
        self.assertFalse(controller.state.is_visible)

    async def test_latest_request_wins(self) -> None:
        provider = _GatedProvider()
        controller = CompletionController(CompletionManager([provider]))
        stale = asyncio.ensure_future(controller.refresh("/a", 2))
        await asyncio.sleep(0)
        self.assertTrue(await controller.refresh("/b", 2))
        provider.gate.set()
        self.assertFalse(await stale)
        self.assertEqual([item.value for item in controller.state.items], ["beta"])

    async def test_invalidate_discards_pending_refresh(self) -> None:
        provider = _GatedProvider()
        controller = CompletionController(CompletionManager([provider]))
        pending = asyncio.ensure_future(controller.refresh("/", 1))
        await asyncio.sleep(0)
        controller.invalidate()
        provider.gate.set()
        self.assertFalse(await pending)
        self.assertFalse(controller.state.is_visible)

    async def test_provider_failure_hides_list(self) -> None:
        controller = CompletionController(CompletionManager([_FailingProvider("/", [])]))
        controller.state.show([CompletionItem("x", "command")], "command")
        self.assertTrue(await controller.refresh("/x", 2))
        self.assertFalse(controller.state.is_visible)
        self.assertEqual(controller.state.items, [])


if __name__ == "__main__":
    unittest.main()
