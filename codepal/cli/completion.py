from __future__ import annotations

import asyncio
import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Literal, Optional, Sequence, Tuple

from ..config.manager import SessionConfig
from ..core.file_listing import FileEntry, list_workspace_files
from ..core.fuzzy import FuzzyMatcher
from ..core.session_log import log_warn

CompletionType = Literal["file", "command"]

CODE_EXTENSIONS = frozenset(
    {
        ".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".cpp", ".c", ".h",
        ".css", ".scss", ".sass", ".html", ".vue", ".svelte", ".php",
        ".rb", ".go", ".rs", ".swift", ".kt", ".scala", ".cs", ".vb",
        ".json", ".xml", ".yaml", ".yml", ".toml", ".ini", ".cfg",
    }
)
DOC_EXTENSIONS = frozenset({".md", ".txt", ".rst", ".pdf", ".doc", ".docx"})
MAX_FILE_CANDIDATES = 100
DEFAULT_COMPLETION_LIMIT = 20


@dataclass(frozen=True)
class CompletionItem:
    value: str
    type: CompletionType
    description: Optional[str] = None


class CompletionProvider(ABC):
    """A completion strategy bound to one trigger context."""

    @abstractmethod
    def can_handle(self, text: str, cursor_position: int) -> bool:
        ...

    @abstractmethod
    def extract_partial(self, text: str, cursor_position: int) -> str:
        ...

    @abstractmethod
    async def get_completions(self, partial: str) -> List[CompletionItem]:
        ...

    @property
    @abstractmethod
    def type(self) -> CompletionType:
        ...


def _file_token_start(text: str, cursor_position: int) -> int:
    """Index of the ``@`` that opens the token under the cursor, or -1."""
    before = text[:cursor_position]
    at_index = before.rfind("@")
    if at_index == -1:
        return -1
    token = before[at_index + 1 :]
    if any(ch.isspace() for ch in token):
        return -1
    return at_index


class FileCompletionProvider(CompletionProvider):
    """Suggests workspace paths after an ``@`` trigger, ranked fuzzily."""

    def __init__(
        self,
        config: Callable[[], SessionConfig],
        *,
        limit: int = DEFAULT_COMPLETION_LIMIT,
        max_depth: int = 3,
        lister: Callable[..., List[FileEntry]] = list_workspace_files,
    ) -> None:
        self._config = config
        self.limit = limit
        self.max_depth = max_depth
        self._lister = lister

    @property
    def type(self) -> CompletionType:
        return "file"

    def can_handle(self, text: str, cursor_position: int) -> bool:
        return _file_token_start(text, cursor_position) != -1

    def extract_partial(self, text: str, cursor_position: int) -> str:
        at_index = _file_token_start(text, cursor_position)
        if at_index == -1:
            return ""
        return text[at_index + 1 : cursor_position]

    async def get_completions(self, partial: str) -> List[CompletionItem]:
        candidates = await self._candidates()
        matches = FuzzyMatcher.filter(candidates, partial, limit=self.limit)
        return [CompletionItem(value=path, type="file") for path in matches]

    async def _candidates(self) -> List[str]:
        config = self._config()
        loop = asyncio.get_running_loop()
        entries = await loop.run_in_executor(
            None,
            lambda: self._lister(
                config.working_directory,
                max_depth=self.max_depth,
                include_hidden=config.allow_hidden,
                blocked_paths=config.blocked_paths,
            ),
        )
        paths = sorted(
            f"{entry.path}/" if entry.is_dir else entry.path
            for entry in entries
            if self._is_relevant(entry, config)
        )
        return paths[:MAX_FILE_CANDIDATES]

    def _is_relevant(self, entry: FileEntry, config: SessionConfig) -> bool:
        if entry.hidden and not config.allow_hidden:
            return False
        if entry.is_dir:
            return True
        suffix = entry.suffix
        if config.allowed_extensions:
            return suffix in config.allowed_extensions or suffix == ""
        return suffix in CODE_EXTENSIONS or suffix in DOC_EXTENSIONS or suffix == ""


class CommandCompletionProvider(CompletionProvider):
    """Case-insensitive prefix filter over the slash-command table."""

    def __init__(self, commands: Callable[[], Iterable[Tuple[str, str]]]) -> None:
        self._commands = commands

    @property
    def type(self) -> CompletionType:
        return "command"

    def can_handle(self, text: str, cursor_position: int) -> bool:
        return text.startswith("/") and cursor_position > 0

    def extract_partial(self, text: str, cursor_position: int) -> str:
        if not self.can_handle(text, cursor_position):
            return ""
        return text[1:cursor_position]

    async def get_completions(self, partial: str) -> List[CompletionItem]:
        needle = partial.lower()
        return [
            CompletionItem(value=name, type="command", description=description or None)
            for name, description in self._commands()
            if name.lower().startswith(needle)
        ]


@dataclass
class CompletionState:
    items: List[CompletionItem] = field(default_factory=list)
    selected_index: int = 0
    is_visible: bool = False
    type: Optional[CompletionType] = None

    def show(self, items: Sequence[CompletionItem], completion_type: CompletionType) -> None:
        self.items = list(items)
        self.selected_index = 0
        self.is_visible = bool(self.items)
        self.type = completion_type if self.items else None

    def hide(self) -> None:
        self.items = []
        self.selected_index = 0
        self.is_visible = False
        self.type = None

    def select_next(self) -> None:
        if self.items:
            self.selected_index = min(len(self.items) - 1, self.selected_index + 1)

    def select_previous(self) -> None:
        self.selected_index = max(0, self.selected_index - 1)

    def select_first(self) -> None:
        self.selected_index = 0

    def selected_item(self) -> Optional[CompletionItem]:
        if not self.is_visible or not self.items:
            return None
        return self.items[min(self.selected_index, len(self.items) - 1)]


class CompletionManager:
    """Holds providers in registration order; the first that applies wins."""

    def __init__(self, providers: Iterable[CompletionProvider] = ()) -> None:
        self._providers: List[CompletionProvider] = list(providers)

    @property
    def providers(self) -> tuple[CompletionProvider, ...]:
        return tuple(self._providers)

    def add_provider(self, provider: CompletionProvider) -> None:
        self._providers.append(provider)

    def remove_provider(self, provider: CompletionProvider) -> None:
        if provider in self._providers:
            self._providers.remove(provider)

    def active_provider(self, text: str, cursor_position: int) -> Optional[CompletionProvider]:
        for provider in self._providers:
            if provider.can_handle(text, cursor_position):
                return provider
        return None

    async def get_completions(self, text: str, cursor_position: int) -> List[CompletionItem]:
        provider = self.active_provider(text, cursor_position)
        if provider is None:
            return []
        partial = provider.extract_partial(text, cursor_position)
        return await provider.get_completions(partial)


class CompletionController:
    """Per-prompt completion state, refreshed on every buffer change.

    Refreshes may overlap while the user types; each carries a request token
    and only the most recently issued one is allowed to update the state.
    """

    def __init__(self, manager: CompletionManager) -> None:
        self.manager = manager
        self.state = CompletionState()
        self._tokens = itertools.count(1)
        self._latest = 0

    @property
    def latest_token(self) -> int:
        return self._latest

    def invalidate(self) -> None:
        """Drop pending refreshes and hide the list."""
        self._latest = next(self._tokens)
        self.state.hide()

    async def refresh(self, text: str, cursor_position: int) -> bool:
        """Recompute completions; returns False when a newer refresh superseded this one."""
        token = next(self._tokens)
        self._latest = token
        provider = self.manager.active_provider(text, cursor_position)
        if provider is None:
            self.state.hide()
            return True
        try:
            partial = provider.extract_partial(text, cursor_position)
            items = await provider.get_completions(partial)
        except Exception as exc:  # noqa: BLE001
            log_warn(
                "completion",
                "completion.provider_failed",
                {"provider": type(provider).__name__, "error": str(exc)},
            )
            if token == self._latest:
                self.state.hide()
            return token == self._latest
        if token != self._latest:
            return False
        self.state.show(items, provider.type)
        return True
