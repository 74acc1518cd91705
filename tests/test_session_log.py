import tempfile
import unittest
from pathlib import Path

from codepal.config.paths import CodepalPaths
from codepal.core import session_log
from codepal.core.session_log import SessionLogger, resolve_debug_config


def _log_text(paths: CodepalPaths) -> str:
    files = list(paths.logs_dir.glob("codepal_session_*.md"))
    assert len(files) == 1, files
    return files[0].read_text(encoding="utf-8")


class SessionLoggerTests(unittest.TestCase):
    def test_logger_disabled_creates_no_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            paths = CodepalPaths(Path(tmp))
            logger = SessionLogger(paths, None)
            logger.log_user_prompt("agent", "hello")
            logger.log_level("cli", "error", "cli.failure", "x")
            self.assertFalse(paths.logs_dir.exists())
            self.assertIsNone(logger.path)

    def test_log_system_prompt_once(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            paths = CodepalPaths(Path(tmp))
            logger = SessionLogger(paths, "session")
            logger.log_system_prompt("agent", "system text")
            logger.log_system_prompt("agent", "system text")
            logger.close()
            text = _log_text(paths)
            self.assertIn("# Codepal Session Log", text)
            self.assertEqual(text.count("prompt.system"), 1)
            self.assertIn("system text", text)

    def test_tool_and_interaction_events(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            paths = CodepalPaths(Path(tmp))
            logger = SessionLogger(paths, "session")
            logger.start_interaction("agent", summary="read a file")
            logger.log_tool_use("agent", name="Read", input_data={"path": "a"})
            logger.log_tool_result("agent", name="Read", content="ok", success=True)
            logger.end_interaction("agent", status="completed")
            logger.close()
            text = _log_text(paths)
            for event in (
                "session.interaction.start",
                "tool.call",
                "tool.result",
                "session.interaction.end",
            ):
                self.assertIn(event, text)
            self.assertIn("interaction 1", text)

    def test_log_exception(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            paths = CodepalPaths(Path(tmp))
            logger = SessionLogger(paths, "error")
            try:
                raise ValueError("boom")
            except Exception as exc:  # noqa: BLE001
                logger.log_exception("agent", exc)
            logger.close()
            text = _log_text(paths)
            self.assertIn("exception", text)
            self.assertIn("ValueError", text)

    def test_log_order_newest_first(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            paths = CodepalPaths(Path(tmp))
            logger = SessionLogger(paths, "session")
            logger.log_user_prompt("agent", "first")
            logger.log_assistant_text("agent", "second")
            logger.close()
            text = _log_text(paths)
            self.assertLess(text.index("assistant.text"), text.index("prompt.user"))

    def test_level_filtering(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            paths = CodepalPaths(Path(tmp))
            logger = SessionLogger(paths, "warn")
            logger.log_level("cli", "info", "cli.info_event", "hidden")
            logger.log_level("cli", "warn", "cli.warn_event", "shown")
            logger.close()
            text = _log_text(paths)
            self.assertIn("cli.warn_event", text)
            self.assertNotIn("cli.info_event", text)

    def test_module_helpers_use_active_logger(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            paths = CodepalPaths(Path(tmp))
            logger = SessionLogger(paths, "warn")
            session_log.set_active_logger(logger)
            try:
                session_log.log_warn("clipboard", "clipboard.read_failed", {"error": "x"})
            finally:
                session_log.set_active_logger(None)
            session_log.log_warn("clipboard", "clipboard.after_reset")
            text = _log_text(paths)
            self.assertIn("clipboard.read_failed", text)
            self.assertNotIn("clipboard.after_reset", text)

    def test_resolve_debug_config_levels(self) -> None:
        selection = resolve_debug_config(["session", "info"])
        self.assertIn("session", selection.types)
        self.assertIn("error", selection.levels)
        self.assertIn("warn", selection.levels)
        self.assertIn("info", selection.levels)
        self.assertNotIn("debug", selection.levels)

    def test_resolve_debug_config_switches(self) -> None:
        self.assertTrue(resolve_debug_config(True).enabled)
        self.assertFalse(resolve_debug_config("off").enabled)
        self.assertFalse(resolve_debug_config(None).enabled)


if __name__ == "__main__":
    unittest.main()
