from __future__ import annotations

import itertools
import json
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..config.paths import CodepalPaths

LOG_LEVELS = ("error", "warn", "info", "debug")
LOG_TYPE_SESSION = "session"

_FALSY_TOKENS = {"", "none", "null", "off", "false", "0", "no", "n"}
_TRUTHY_TOKENS = {"true", "1", "yes", "y", "on", "all"}


@dataclass(frozen=True)
class LogSelection:
    types: frozenset[str] = frozenset()
    levels: frozenset[str] = frozenset()

    @property
    def enabled(self) -> bool:
        return bool(self.types or self.levels)


def _tokens(raw: Any) -> list[str]:
    if raw is True:
        return ["all"]
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, (list, tuple, set)):
        return []
    tokens = (item.strip().lower() for item in raw if isinstance(item, str))
    return [token for token in tokens if token not in _FALSY_TOKENS]


def resolve_debug_config(raw: Any) -> LogSelection:
    """Translate the ``debug`` setting into enabled log types and levels.

    Accepts ``True``/``False``, a single token or a list of tokens. Tokens are
    ``session``, ``all`` (or any truthy word) or a level name; a level enables
    itself and every more severe level.
    """
    types: set[str] = set()
    levels: set[str] = set()
    for token in _tokens(raw):
        if token in _TRUTHY_TOKENS:
            types.add(LOG_TYPE_SESSION)
            levels.update(LOG_LEVELS)
        elif token == LOG_TYPE_SESSION:
            types.add(LOG_TYPE_SESSION)
        elif token in LOG_LEVELS:
            levels.update(LOG_LEVELS[: LOG_LEVELS.index(token) + 1])
    return LogSelection(frozenset(types), frozenset(levels))


def _fenced(content: Any) -> str:
    if isinstance(content, (dict, list)):
        body = json.dumps(content, indent=2, ensure_ascii=False, default=str)
        return f"```json\n{body.rstrip()}\n```"
    body = "" if content is None else str(content)
    return f"```markdown\n{body.rstrip()}\n```"


class SessionLogger:
    """Markdown debug log for one codepal run, newest entry first.

    Nothing is written (and no file is created) unless the ``debug`` setting
    selects the session stream or a level. Any write failure turns the logger
    off instead of propagating.
    """

    def __init__(self, paths: CodepalPaths, debug_config: Any) -> None:
        self.paths = paths
        started = datetime.now(timezone.utc)
        self._stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self._header = (
            "# Codepal Session Log\n\n"
            f"- Session: {self._stamp}\n"
            f"- Started: {started.isoformat()}\n\n"
            "---\n\n"
        )
        self._path: Optional[Path] = None
        self._interactions = itertools.count(1)
        self._interaction: Optional[int] = None
        self._system_prompts: dict[str, str] = {}
        self._selection = LogSelection()
        self.enabled = False
        self.configure(debug_config)

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def configure(self, debug_config: Any) -> None:
        self._selection = resolve_debug_config(debug_config)
        self.enabled = self._selection.enabled

    def close(self) -> None:
        self.enabled = False

    # Session stream

    def start_interaction(self, source: str, *, summary: str | None = None) -> int | None:
        if not self._session_on():
            return None
        self._interaction = next(self._interactions)
        self._entry(source, "session.interaction.start", {"summary": summary})
        return self._interaction

    def end_interaction(self, source: str, *, status: str | None = None) -> None:
        if self._interaction is None:
            return
        if self._session_on():
            self._entry(source, "session.interaction.end", {"status": status})
        self._interaction = None

    def log_system_prompt(self, source: str, prompt: str) -> None:
        # Repeated identical prompts from one source are logged once.
        if not prompt or self._system_prompts.get(source) == prompt:
            return
        if self._session_on():
            self._system_prompts[source] = prompt
            self._entry(source, "prompt.system", prompt)

    def log_user_prompt(self, source: str, prompt: str) -> None:
        if prompt and self._session_on():
            self._entry(source, "prompt.user", prompt)

    def log_assistant_text(self, source: str, text: str) -> None:
        if text and self._session_on():
            self._entry(source, "assistant.text", text)

    def log_tool_use(self, source: str, *, name: str, input_data: Any) -> None:
        if self._session_on():
            self._entry(source, "tool.call", {"name": name, "input": input_data})

    def log_tool_result(self, source: str, *, name: str, content: Any, success: bool) -> None:
        if self._session_on():
            self._entry(
                source,
                "tool.result",
                {"name": name, "result": content, "success": bool(success)},
            )

    # Leveled stream

    def log_level(self, source: str, level: str, event: str, content: Any | None = None) -> None:
        if self.enabled and level in self._selection.levels:
            self._entry(source, event, content, kind=level)

    def log_exception(self, source: str, exc: BaseException) -> None:
        if not (self.enabled and "error" in self._selection.levels):
            return
        frames = traceback.extract_tb(exc.__traceback__) if exc.__traceback__ else []
        where = f"{frames[-1].filename}:{frames[-1].lineno} in {frames[-1].name}" if frames else None
        self.log_level(
            source,
            "error",
            "exception",
            {
                "type": type(exc).__name__,
                "message": str(exc),
                "location": where,
                "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            },
        )

    def _session_on(self) -> bool:
        return self.enabled and LOG_TYPE_SESSION in self._selection.types

    def _entry(self, source: str, event: str, content: Any, *, kind: str = LOG_TYPE_SESSION) -> None:
        title = f"## {datetime.now(timezone.utc).isoformat()} · {kind}/{source} · {event}"
        if self._interaction is not None:
            title += f" · interaction {self._interaction}"
        try:
            self._prepend(f"{title}\n{_fenced(content)}\n\n")
        except (OSError, ValueError):
            self.close()

    def _prepend(self, entry: str) -> None:
        if self._path is None:
            self.paths.logs_dir.mkdir(parents=True, exist_ok=True)
            self._path = self.paths.logs_dir / f"codepal_session_{self._stamp}.md"
            self._path.write_text(self._header, encoding="utf-8")
        existing = self._path.read_text(encoding="utf-8")
        body = existing[len(self._header) :] if existing.startswith(self._header) else existing
        self._path.write_text(self._header + entry + body, encoding="utf-8")


_ACTIVE_LOGGER: SessionLogger | None = None


def set_active_logger(logger: SessionLogger | None) -> None:
    global _ACTIVE_LOGGER
    _ACTIVE_LOGGER = logger


def get_active_logger() -> SessionLogger | None:
    return _ACTIVE_LOGGER


def _route(source: str, level: str, event: str, content: Any | None) -> None:
    if _ACTIVE_LOGGER is not None:
        _ACTIVE_LOGGER.log_level(source, level, event, content)


def log_exception(source: str, exc: BaseException) -> None:
    if _ACTIVE_LOGGER is not None:
        _ACTIVE_LOGGER.log_exception(source, exc)


def log_error(source: str, event: str, content: Any | None = None) -> None:
    _route(source, "error", event, content)


def log_warn(source: str, event: str, content: Any | None = None) -> None:
    _route(source, "warn", event, content)


def log_info(source: str, event: str, content: Any | None = None) -> None:
    _route(source, "info", event, content)


def log_debug(source: str, event: str, content: Any | None = None) -> None:
    _route(source, "debug", event, content)
