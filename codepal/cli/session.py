from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..config.manager import SessionConfig
from .commands import is_exit_command


class InputSession:
    """Owns the session configuration and the active flag of one prompt loop."""

    def __init__(self, config: SessionConfig) -> None:
        self._config = config
        self._active = False

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self) -> None:
        self._active = True

    def stop(self) -> None:
        self._active = False

    @property
    def working_directory(self) -> Path:
        return self._config.working_directory

    def set_working_directory(self, directory: Path | str) -> None:
        self._config = self._config.with_working_directory(directory)


@dataclass
class SessionCallbacks:
    on_input: Callable[[str], Awaitable[bool]]
    on_end: Callable[[], None]


class InteractiveSession(InputSession):
    """Routes submissions until an exit command, a handler asking to stop, or end_session()."""

    def __init__(self, config: SessionConfig, callbacks: Optional[SessionCallbacks] = None) -> None:
        super().__init__(config)
        self.callbacks = callbacks

    def set_callbacks(self, callbacks: SessionCallbacks) -> None:
        self.callbacks = callbacks

    async def handle_input(self, text: str) -> bool:
        """Returns False once the session has ended."""
        if self.callbacks is None:
            raise RuntimeError("No callbacks set for interactive session")
        if not self.is_active:
            return False
        if is_exit_command(text):
            self.end_session()
            return False
        keep_going = await self.callbacks.on_input(text)
        if not keep_going:
            self.end_session()
            return False
        return True

    def end_session(self) -> None:
        if not self.is_active:
            return
        self.stop()
        if self.callbacks is not None:
            self.callbacks.on_end()
