from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple


CommandHandler = Callable[[str], Awaitable[bool]]

EXIT_COMMANDS = frozenset({"exit", "quit", "q", "/exit", "/quit", "/q"})


@dataclass
class Command:
    name: str
    handler: CommandHandler
    description: str


def is_exit_command(text: str) -> bool:
    return text.strip().lower() in EXIT_COMMANDS


class CommandRegistry:
    """Registry for slash commands, kept in registration order.

    Handlers return False to end the interactive loop.
    """

    def __init__(self) -> None:
        self._commands: Dict[str, Command] = {}

    def register(self, name: str, handler: CommandHandler, description: str) -> None:
        if not name.startswith("/"):
            name = f"/{name}"
        self._commands[name] = Command(name=name, handler=handler, description=description)

    def get(self, name: str) -> Optional[Command]:
        if not name.startswith("/"):
            name = f"/{name}"
        return self._commands.get(name.lower())

    def names(self) -> List[str]:
        return list(self._commands.keys())

    def descriptions(self) -> List[str]:
        return [f"{cmd.name} - {cmd.description}" for cmd in self._commands.values()]

    def completion_entries(self) -> List[Tuple[str, str]]:
        """(name without slash, description) pairs for command completion."""
        return [(cmd.name[1:], cmd.description) for cmd in self._commands.values()]
