from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Sequence

from prompt_toolkit.key_binding.key_processor import KeyPress
from prompt_toolkit.keys import Keys

RETURN = "return"
ESCAPE = "escape"
TAB = "tab"
UP = "up"
DOWN = "down"
LEFT = "left"
RIGHT = "right"
BACKSPACE = "backspace"
DELETE = "delete"


@dataclass(frozen=True)
class KeyChord:
    """One abstract key event, independent of the terminal library.

    ``key`` names a special key (see the module constants); ``char`` carries a
    printable character or the letter of a control chord; ``paste`` carries
    text delivered by a bracketed paste.
    """

    char: str = ""
    key: Optional[str] = None
    ctrl: bool = False
    meta: bool = False
    shift: bool = False
    paste: Optional[str] = None

    @property
    def is_return(self) -> bool:
        return self.key == RETURN

    @property
    def is_kill(self) -> bool:
        return self.ctrl and self.char == "c"

    @property
    def is_printable(self) -> bool:
        return (
            self.key is None
            and not self.ctrl
            and not self.meta
            and len(self.char) == 1
            and self.char.isprintable()
        )


_NAMED_KEYS = {
    Keys.ControlM: KeyChord(key=RETURN),
    Keys.ControlJ: KeyChord(key=RETURN, ctrl=True),
    Keys.Escape: KeyChord(key=ESCAPE),
    Keys.ControlI: KeyChord(key=TAB),
    Keys.BackTab: KeyChord(key=TAB, shift=True),
    Keys.Up: KeyChord(key=UP),
    Keys.Down: KeyChord(key=DOWN),
    Keys.Left: KeyChord(key=LEFT),
    Keys.Right: KeyChord(key=RIGHT),
    Keys.ControlH: KeyChord(key=BACKSPACE),
    Keys.Delete: KeyChord(key=DELETE),
}


def chord_from_key_presses(presses: Sequence[KeyPress]) -> KeyChord:
    """Translate a prompt_toolkit key sequence into a :class:`KeyChord`.

    ``Escape`` followed by another key is the terminal encoding of Alt/Meta;
    ``Escape, Enter`` therefore becomes a meta return.
    """
    if not presses:
        return KeyChord()
    if len(presses) > 1 and presses[0].key == Keys.Escape:
        return replace(chord_from_key_presses(presses[1:]), meta=True)
    press = presses[-1]
    key = press.key
    if key == Keys.BracketedPaste:
        return KeyChord(paste=press.data)
    if isinstance(key, Keys):
        named = _NAMED_KEYS.get(key)
        if named is not None:
            return named
        value = key.value
        if value.startswith("c-") and len(value) == 3:
            return KeyChord(char=value[2], ctrl=True)
        if key != Keys.Any:
            return KeyChord(key=value)
    return KeyChord(char=press.data or "")
