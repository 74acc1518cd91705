import unittest

from codepal.cli.commands import CommandRegistry, is_exit_command


class CommandRegistryTests(unittest.TestCase):
    def test_register_and_lookup(self) -> None:
        registry = CommandRegistry()

        async def dummy_handler(cmd: str) -> bool:  # noqa: ARG001
            return True

        registry.register("clear", dummy_handler, "Clear history")

        self.assertIn("/clear", registry.names())
        command = registry.get("/CLEAR")
        self.assertIsNotNone(command)
        assert command
        self.assertEqual(command.handler, dummy_handler)
        self.assertIs(registry.get("clear"), command)
        self.assertIsNone(registry.get("/missing"))
        self.assertEqual(registry.descriptions(), ["/clear - Clear history"])

    def test_completion_entries_keep_order(self) -> None:
        registry = CommandRegistry()

        async def handler(cmd: str) -> bool:  # noqa: ARG001
            return True

        registry.register("/help", handler, "Show help")
        registry.register("/clear", handler, "Clear history")
        self.assertEqual(
            registry.completion_entries(),
            [("help", "Show help"), ("clear", "Clear history")],
        )

    def test_exit_commands(self) -> None:
        for text in ("exit", "quit", "q", "/exit", "/quit", "/q", "  Quit  "):
            self.assertTrue(is_exit_command(text), text)
        for text in ("/help", "question", "exit now"):
            self.assertFalse(is_exit_command(text), text)


if __name__ == "__main__":
    unittest.main()
