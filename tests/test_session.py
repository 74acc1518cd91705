import tempfile
import unittest
from pathlib import Path
from typing import List

from codepal.cli.session import InputSession, InteractiveSession, SessionCallbacks
from codepal.config.manager import SessionConfig


class InputSessionTests(unittest.TestCase):
    def test_start_stop_and_working_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            session = InputSession(SessionConfig(working_directory=Path(tmp)))
            self.assertFalse(session.is_active)
            session.start()
            self.assertTrue(session.is_active)
            session.set_working_directory(Path(tmp) / "src")
            self.assertEqual(session.working_directory, Path(tmp) / "src")
            self.assertEqual(session.config.working_directory, Path(tmp) / "src")
            session.stop()
            self.assertFalse(session.is_active)


class InteractiveSessionTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.received: List[str] = []
        self.ended: List[bool] = []
        self.keep_going = True

        async def on_input(text: str) -> bool:
            self.received.append(text)
            return self.keep_going

        self.session = InteractiveSession(
            SessionConfig(working_directory=Path(".")),
            SessionCallbacks(on_input=on_input, on_end=lambda: self.ended.append(True)),
        )
        self.session.start()

    async def test_routes_input_to_callback(self) -> None:
        self.assertTrue(await self.session.handle_input("hello"))
        self.assertEqual(self.received, ["hello"])
        self.assertEqual(self.ended, [])

    async def test_exit_commands_end_session(self) -> None:
        for text in ("exit", "quit", "q", "/exit", "/quit", "/q"):
            self.session.start()
            self.assertFalse(await self.session.handle_input(text))
        self.assertEqual(self.received, [])
        self.assertEqual(len(self.ended), 6)
        self.assertFalse(self.session.is_active)

    async def test_callback_can_end_session(self) -> None:
        self.keep_going = False
        self.assertFalse(await self.session.handle_input("/exit-like"))
        self.assertEqual(self.ended, [True])
        self.assertFalse(await self.session.handle_input("ignored"))
        self.assertEqual(self.received, ["/exit-like"])

    async def test_end_session_is_idempotent(self) -> None:
        self.session.end_session()
        self.session.end_session()
        self.assertEqual(self.ended, [True])

    async def test_missing_callbacks_raise(self) -> None:
        session = InteractiveSession(SessionConfig(working_directory=Path(".")))
        session.start()
        with self.assertRaises(RuntimeError):
            await session.handle_input("hello")


if __name__ == "__main__":
    unittest.main()
