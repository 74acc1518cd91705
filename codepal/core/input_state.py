from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional


PASTE_INDICATOR_SECONDS = 1.0


@dataclass
class InputState:
    value: str = ""
    cursor_position: int = 0
    is_multiline_mode: bool = False
    paste_indicator: bool = False


class InputBuffer:
    """Owns the text being composed at the prompt.

    Every mutation re-clamps the cursor to ``0..len(value)``; out-of-range
    arguments are clamped, never rejected.
    """

    def __init__(
        self,
        initial_value: str = "",
        *,
        paste_indicator_seconds: float = PASTE_INDICATOR_SECONDS,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.state = InputState(value=initial_value, cursor_position=len(initial_value))
        self.paste_indicator_seconds = paste_indicator_seconds
        self._on_change = on_change
        self._paste_timer: asyncio.TimerHandle | None = None

    @property
    def value(self) -> str:
        return self.state.value

    @property
    def cursor_position(self) -> int:
        return self.state.cursor_position

    def set_value(self, value: str) -> None:
        self.state.value = value
        self.state.cursor_position = self._clamp(self.state.cursor_position)
        if "\n" in value:
            self.state.is_multiline_mode = True
        self._changed()

    def set_cursor(self, position: int) -> None:
        self.state.cursor_position = self._clamp(position)
        self._changed()

    def set_multiline_mode(self, enabled: bool) -> None:
        self.state.is_multiline_mode = enabled
        self._changed()

    def insert_at_cursor(self, text: str) -> None:
        if not text:
            return
        pos = self.state.cursor_position
        current = self.state.value
        self.state.value = current[:pos] + text + current[pos:]
        self.state.cursor_position = pos + len(text)
        if "\n" in text:
            self.state.is_multiline_mode = True
        self._changed()

    def delete_at_cursor(self, count: int = 1) -> None:
        pos = self.state.cursor_position
        if pos == 0 or count <= 0:
            return
        start = max(0, pos - count)
        self.state.value = self.state.value[:start] + self.state.value[pos:]
        self.state.cursor_position = start
        self._changed()

    def move_cursor(self, delta: int) -> None:
        self.state.cursor_position = self._clamp(self.state.cursor_position + delta)
        self._changed()

    def move_cursor_line(self, delta: int) -> bool:
        """Move the cursor ``delta`` logical lines, keeping the column if possible.

        Returns False when there is no line in that direction.
        """
        value = self.state.value
        lines = value.split("\n")
        before = value[: self.state.cursor_position]
        row = before.count("\n")
        col = len(before) - (before.rfind("\n") + 1)
        target = row + delta
        if delta == 0 or target < 0 or target >= len(lines):
            return False
        offset = sum(len(line) + 1 for line in lines[:target])
        self.state.cursor_position = offset + min(col, len(lines[target]))
        self._changed()
        return True

    def show_paste_indicator(self) -> None:
        """Flag a recent paste; the flag clears itself after a short delay."""
        self.state.paste_indicator = True
        if self._paste_timer is not None:
            self._paste_timer.cancel()
            self._paste_timer = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._paste_timer = loop.call_later(
                self.paste_indicator_seconds, self._clear_paste_indicator
            )
        self._changed()

    def reset(self) -> None:
        if self._paste_timer is not None:
            self._paste_timer.cancel()
            self._paste_timer = None
        self.state = InputState()
        self._changed()

    def _clear_paste_indicator(self) -> None:
        self._paste_timer = None
        self.state.paste_indicator = False
        self._changed()

    def _clamp(self, position: int) -> int:
        return max(0, min(position, len(self.state.value)))

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
