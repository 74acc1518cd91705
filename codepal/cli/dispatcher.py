from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..core.input_state import InputBuffer
from .completion import CompletionItem, CompletionState
from .keys import BACKSPACE, DELETE, DOWN, ESCAPE, LEFT, RIGHT, TAB, UP, KeyChord

CONTINUATION_MARKER = "\\"


class Intent(Enum):
    NONE = "none"
    SUBMIT = "submit"
    EXIT = "exit"
    KILL = "kill"
    INTERRUPT = "interrupt"
    PASTE = "paste"


@dataclass(frozen=True)
class DispatchResult:
    intent: Intent = Intent.NONE
    value: Optional[str] = None
    buffer_changed: bool = False


IGNORED = DispatchResult()
CHANGED = DispatchResult(buffer_changed=True)


class KeyboardDispatcher:
    """Turns key chords into buffer edits, completion moves and intents.

    Rules are checked in a fixed priority order and the first one that
    matches handles the chord. Nothing here performs I/O: clipboard reads
    and completion refreshes are left to the caller, signalled through the
    returned :class:`DispatchResult`.
    """

    def __init__(self, buffer: InputBuffer, completions: CompletionState) -> None:
        self.buffer = buffer
        self.completions = completions
        self.disabled = False

    def dispatch(self, chord: KeyChord) -> DispatchResult:
        if chord.is_kill:
            return DispatchResult(Intent.KILL)

        if self.disabled:
            if chord.key == ESCAPE and not chord.meta:
                return DispatchResult(Intent.INTERRUPT)
            return IGNORED

        if chord.paste is not None:
            return self.insert_paste(chord.paste)

        visible = self.completions.is_visible

        if chord.is_return and (chord.ctrl or chord.meta or visible):
            if visible:
                return self._apply_selected()
            return self._submit()

        if chord.is_return:
            return self._enter()

        if chord.key == ESCAPE:
            if visible:
                self.completions.hide()
                return IGNORED
            return DispatchResult(Intent.EXIT)

        if chord.char.lower() == "v" and (chord.ctrl or chord.meta):
            return DispatchResult(Intent.PASTE)

        if chord.key == TAB:
            if visible:
                self.completions.select_first()
                return self._apply_selected()
            return IGNORED

        if chord.key in (UP, DOWN):
            if visible:
                if chord.key == UP:
                    self.completions.select_previous()
                else:
                    self.completions.select_next()
                return IGNORED
            moved = self.buffer.move_cursor_line(-1 if chord.key == UP else 1)
            return CHANGED if moved else IGNORED

        if chord.key in (LEFT, RIGHT):
            self.buffer.move_cursor(-1 if chord.key == LEFT else 1)
            return CHANGED

        if chord.key in (BACKSPACE, DELETE):
            self.buffer.delete_at_cursor()
            return CHANGED

        if chord.is_printable:
            self.buffer.insert_at_cursor(chord.char)
            return CHANGED

        return IGNORED

    def insert_paste(self, text: str) -> DispatchResult:
        """Insert clipboard or bracketed-paste text at the cursor."""
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        if not text:
            return IGNORED
        self.buffer.insert_at_cursor(text)
        self.buffer.show_paste_indicator()
        return CHANGED

    def apply_completion(self, item: CompletionItem) -> DispatchResult:
        if item.type == "command":
            self.completions.hide()
            return self._submit(f"/{item.value}")
        value = self.buffer.value
        cursor = self.buffer.cursor_position
        at_index = value.rfind("@", 0, cursor)
        self.completions.hide()
        if at_index == -1:
            return IGNORED
        token_end = cursor
        while token_end < len(value) and not value[token_end].isspace():
            token_end += 1
        head = value[: at_index + 1] + item.value + " "
        tail = value[token_end:]
        if tail.startswith(" "):
            tail = tail[1:]
        self.buffer.set_value(head + tail)
        self.buffer.set_cursor(len(head))
        return CHANGED

    def _apply_selected(self) -> DispatchResult:
        item = self.completions.selected_item()
        if item is None:
            self.completions.hide()
            return IGNORED
        return self.apply_completion(item)

    def _enter(self) -> DispatchResult:
        value = self.buffer.value
        cursor = self.buffer.cursor_position
        if value[:cursor].endswith(CONTINUATION_MARKER):
            self.buffer.delete_at_cursor()
            self.buffer.insert_at_cursor("\n")
            return CHANGED
        if not value.strip():
            self.buffer.insert_at_cursor("\n")
            return CHANGED
        return self._submit()

    def _submit(self, value: Optional[str] = None) -> DispatchResult:
        text = self.buffer.value if value is None else value
        if not text.strip():
            return IGNORED
        self.buffer.reset()
        self.completions.hide()
        return DispatchResult(Intent.SUBMIT, value=text)
