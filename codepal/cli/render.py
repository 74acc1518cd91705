from __future__ import annotations

from typing import Iterable

from rich.console import Console, Group
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from ..core.transcript import DisplayMessage

WELCOME_LINES = (
    "• Ask about the code or the project in plain language",
    "• Enter sends, end a line with \\ (or press Alt+Enter) to keep typing",
    "• @ starts a fuzzy file search, / lists commands, Tab/Enter to pick",
    "• Ctrl+V pastes from the clipboard",
    "• Esc interrupts a running request, /exit leaves, Ctrl+C quits anytime",
)

SHORTCUTS = (
    "- Enter: send (inserts a newline when the input is empty)",
    "- `\\` at the end of a line, then Enter: continue on a new line",
    "- Ctrl+Enter / Alt+Enter: send, or accept the highlighted completion",
    "- Ctrl+V: paste from the clipboard",
    "- Tab: accept the first completion",
    "- Up/Down: move through completions or between lines",
    "- Esc: close completions, interrupt a running request, or leave",
    "- Ctrl+C: exit immediately",
)

FILE_COMPLETION_HELP = (
    "- `@` shows workspace files; keep typing to fuzzy-filter",
    "- `@srcmp` matches `src/components/...`",
    "- `@pjs` matches `package.json` by initials",
)


def help_markdown(command_descriptions: Iterable[str]) -> str:
    commands = "\n".join(f"- {line}" for line in command_descriptions) or "- (none)"
    return "\n".join(
        [
            "# Codepal Help",
            "",
            "## Commands",
            commands,
            "- /q - Exit codepal",
            "",
            "## Shortcuts",
            *SHORTCUTS,
            "",
            "## File Completion",
            *FILE_COMPLETION_HELP,
            "",
            "## Example Questions",
            '- "Explain what this project does"',
            '- "Help me understand @src/main.py"',
        ]
    )


def welcome_panel(version: str, model: str | None, root: str) -> Panel:
    header = Text.assemble(
        ("💬 Welcome to codepal ", "bold cyan"), (f"v{version}", "cyan")
    )
    details = Text(f"Workspace: {root}\nModel: {model or '<not set>'}", style="dim")
    body = Group(header, Text(""), Text("\n".join(WELCOME_LINES)), Text(""), details)
    return Panel(body, border_style="cyan", padding=(1, 2))


class TranscriptRenderer:
    """Prints transcript entries to a rich console as they are appended."""

    def __init__(self, console: Console) -> None:
        self.console = console

    def render(self, message: DisplayMessage) -> None:
        self.console.print(self.renderable(message))

    def renderable(self, message: DisplayMessage):
        kind = message.kind
        if kind == "user":
            return Text.assemble(("> ", "bold blue"), (message.content, "bold"))
        if kind == "agent":
            return Panel(
                Markdown(message.content or "(empty reply)", code_theme="monokai"),
                title="🤖 Agent",
                border_style="green",
                title_align="left",
            )
        if kind == "system":
            return Panel(Markdown(message.content), title="ℹ️ System", border_style="cyan")
        if kind == "error":
            return Panel(Text(message.content), title="❌ Error", border_style="red")
        return self._tool_line(message)

    def _tool_line(self, message: DisplayMessage) -> Text:
        if message.success is None:
            return Text.assemble(("🔧 ", "magenta"), (message.content, "magenta"))
        style = "green" if message.success else "red"
        return Text(message.content, style=style)
