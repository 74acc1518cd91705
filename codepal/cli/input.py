from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Set, Tuple

from prompt_toolkit.application import Application
from prompt_toolkit.data_structures import Point
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import ConditionalContainer, HSplit, Layout, Window
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.styles import Style

from ..core.input_state import InputBuffer, InputState
from ..core.session_log import log_warn
from .clipboard import ClipboardError, ClipboardManager
from .completion import CompletionController, CompletionManager
from .dispatcher import DispatchResult, Intent, KeyboardDispatcher
from .keys import KeyChord, chord_from_key_presses

MAX_VISIBLE_COMPLETIONS = 8
INPUT_PREFIX = "> "
CONTINUATION_PREFIX = "  "
# How long a lone Escape waits for a following key (meta chords).
ESCAPE_TIMEOUT_SECONDS = 0.05

BOUND_KEYS = (
    "c-c",
    "c-m",
    "c-j",
    "escape",
    "tab",
    "s-tab",
    "up",
    "down",
    "left",
    "right",
    "c-h",
    "delete",
    "c-v",
    Keys.BracketedPaste,
    Keys.Any,
)

PROMPT_STYLE = Style.from_dict(
    {
        "prompt": "bold ansicyan",
        "prompt.busy": "bold ansiyellow",
        "input": "",
        "completion.title": "bold ansicyan",
        "completion": "ansiblue",
        "completion.selected": "bg:ansicyan ansiblack",
        "completion.description": "ansigray",
        "hint": "ansigray",
    }
)

Fragments = List[Tuple[str, str]]


def hint_text(state: InputState) -> str:
    if state.paste_indicator:
        return "📋 Content pasted successfully! • Enter to send • Esc to cancel"
    if state.is_multiline_mode:
        return "💡 Tip: Use @ for files, / for commands • Ctrl+V to paste • Ctrl+Enter to send • Esc to cancel"
    return "💡 Tip: Use @ for files, / for commands • Ctrl+V to paste • Enter to send (end a line with \\ for multi-line) • Esc to exit"


class PromptView:
    """Input box, completion dropdown and hint line driven by the keyboard dispatcher.

    Every key press is turned into a :class:`KeyChord` and handed to the
    dispatcher; intents come back out through the ``on_*`` callbacks.
    Clipboard reads and completion refreshes run as background tasks.
    """

    def __init__(
        self,
        clipboard: ClipboardManager,
        completion_manager: CompletionManager,
        *,
        on_submit: Callable[[str], None],
        on_exit: Callable[[], None],
        on_kill: Callable[[], None],
        on_interrupt: Optional[Callable[[], None]] = None,
        status_text: Optional[Callable[[], str]] = None,
        paste_indicator_seconds: float = 1.0,
    ) -> None:
        self.clipboard = clipboard
        self.completions = CompletionController(completion_manager)
        self.buffer = InputBuffer(
            paste_indicator_seconds=paste_indicator_seconds, on_change=self.invalidate
        )
        self.dispatcher = KeyboardDispatcher(self.buffer, self.completions.state)
        self.on_submit = on_submit
        self.on_exit = on_exit
        self.on_kill = on_kill
        self.on_interrupt = on_interrupt
        self.status_text = status_text
        self.app: Optional[Application] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def disabled(self) -> bool:
        return self.dispatcher.disabled

    def set_disabled(self, disabled: bool) -> None:
        self.dispatcher.disabled = disabled
        if disabled:
            self.completions.invalidate()
        self.invalidate()

    def invalidate(self) -> None:
        if self.app is not None and self.app.is_running:
            self.app.invalidate()

    def handle_chord(self, chord: KeyChord) -> DispatchResult:
        result = self.dispatcher.dispatch(chord)
        intent = result.intent
        if intent is Intent.KILL:
            self.on_kill()
        elif intent is Intent.INTERRUPT:
            if self.on_interrupt is not None:
                self.on_interrupt()
        elif intent is Intent.EXIT:
            self.on_exit()
        elif intent is Intent.PASTE:
            self._spawn(self.paste_from_clipboard())
        elif intent is Intent.SUBMIT and result.value is not None:
            self.completions.invalidate()
            self.on_submit(result.value)
        if result.buffer_changed:
            self.schedule_refresh()
        self.invalidate()
        return result

    async def paste_from_clipboard(self) -> bool:
        try:
            text = await self.clipboard.get_content()
        except ClipboardError as exc:
            log_warn("clipboard", "clipboard.read_failed", {"error": str(exc)})
            return False
        if self.disabled:
            return False
        result = self.dispatcher.insert_paste(text)
        if result.buffer_changed:
            self.schedule_refresh()
        return result.buffer_changed

    def schedule_refresh(self) -> asyncio.Task:
        return self._spawn(
            self.completions.refresh(self.buffer.value, self.buffer.cursor_position)
        )

    def build_application(self, *, erase_when_done: bool = True) -> Application:
        input_control = FormattedTextControl(
            self._input_fragments,
            focusable=True,
            show_cursor=True,
            get_cursor_position=self._cursor_point,
        )
        input_window = Window(input_control, dont_extend_height=True, wrap_lines=False)
        root = HSplit(
            [
                Window(FormattedTextControl(self._label_fragments), height=1),
                input_window,
                ConditionalContainer(
                    Window(
                        FormattedTextControl(self._completion_fragments),
                        dont_extend_height=True,
                    ),
                    filter=Condition(lambda: self.completions.state.is_visible),
                ),
                Window(FormattedTextControl(self._hint_fragments), height=1),
            ]
        )
        self.app = Application(
            layout=Layout(root, focused_element=input_window),
            key_bindings=self._key_bindings(),
            style=PROMPT_STYLE,
            full_screen=False,
            erase_when_done=erase_when_done,
            mouse_support=False,
        )
        self.app.ttimeoutlen = ESCAPE_TIMEOUT_SECONDS
        self.app.timeoutlen = ESCAPE_TIMEOUT_SECONDS
        return self.app

    def _key_bindings(self) -> KeyBindings:
        bindings = KeyBindings()

        def _handle(event) -> None:  # type: ignore[no-untyped-def]
            self.handle_chord(chord_from_key_presses(event.key_sequence))

        for key in BOUND_KEYS:
            bindings.add(key, eager=key not in ("escape", Keys.Any))(_handle)
        bindings.add("escape", "enter", eager=True)(_handle)
        bindings.add("escape", "v", eager=True)(_handle)
        return bindings

    def _spawn(self, coro) -> asyncio.Task:  # type: ignore[no-untyped-def]
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log_warn("input", "input.background_task_failed", {"error": str(task.exception())})
        self.invalidate()

    def _label_fragments(self) -> Fragments:
        if self.disabled:
            status = self.status_text() if self.status_text else "🤖 Processing..."
            return [("class:prompt.busy", status)]
        return [("class:prompt", "💬 Your message:")]

    def _input_fragments(self) -> Fragments:
        lines = self.buffer.value.split("\n")
        fragments: Fragments = []
        for index, line in enumerate(lines):
            prefix = INPUT_PREFIX if index == 0 else CONTINUATION_PREFIX
            fragments.append(("class:prompt", prefix))
            fragments.append(("class:input", line))
            if index < len(lines) - 1:
                fragments.append(("", "\n"))
        return fragments

    def _cursor_point(self) -> Point:
        before = self.buffer.value[: self.buffer.cursor_position]
        row = before.count("\n")
        col = len(before) - (before.rfind("\n") + 1)
        return Point(x=col + len(INPUT_PREFIX), y=row)

    def _completion_fragments(self) -> Fragments:
        state = self.completions.state
        if not state.is_visible:
            return []
        items = state.items
        title = "📁 File Completions:" if state.type == "file" else "⚡ Command Completions:"
        fragments: Fragments = [("class:completion.title", title)]
        start = max(
            0,
            min(state.selected_index - MAX_VISIBLE_COMPLETIONS // 2, len(items) - MAX_VISIBLE_COMPLETIONS),
        )
        for index, item in enumerate(items[start : start + MAX_VISIBLE_COMPLETIONS], start):
            selected = index == state.selected_index
            label = f"/{item.value}" if item.type == "command" else item.value
            style = "class:completion.selected" if selected else "class:completion"
            fragments.append(("", "\n"))
            fragments.append((style, f"  {'▶ ' if selected else '  '}{label}"))
            if item.description:
                fragments.append(("class:completion.description", f" - {item.description}"))
        if len(items) > MAX_VISIBLE_COMPLETIONS:
            fragments.append(("", "\n"))
            fragments.append(
                (
                    "class:hint",
                    f"  ... and {len(items) - MAX_VISIBLE_COMPLETIONS} more (↑/↓ to navigate)",
                )
            )
        return fragments

    def _hint_fragments(self) -> Fragments:
        if self.disabled:
            return [("class:hint", "Esc to interrupt • Ctrl+C to exit")]
        return [("class:hint", hint_text(self.buffer.state))]
