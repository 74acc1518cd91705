from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List


@dataclass(frozen=True)
class FileEntry:
    path: str  # relative to the listing root, POSIX separators
    name: str
    is_dir: bool

    @property
    def hidden(self) -> bool:
        return self.name.startswith(".")

    @property
    def suffix(self) -> str:
        return Path(self.name).suffix.lower() if not self.is_dir else ""


def list_workspace_files(
    root: Path,
    *,
    max_depth: int = 3,
    include_hidden: bool = False,
    blocked_paths: Iterable[str] = (),
) -> List[FileEntry]:
    """Depth-limited recursive listing used for completion candidates.

    Hidden entries and blocked paths (matched by name or by relative path)
    are pruned together with everything below them. Unreadable directories
    are skipped.
    """
    blocked = {item.strip("/") for item in blocked_paths if item.strip("/")}
    results: List[FileEntry] = []
    if max_depth < 1 or not root.is_dir():
        return results

    def walk(directory: Path, prefix: str, depth: int) -> None:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError:
            return
        for entry in entries:
            rel = f"{prefix}{entry.name}"
            if entry.name in blocked or rel in blocked:
                continue
            if not include_hidden and entry.name.startswith("."):
                continue
            try:
                is_dir = entry.is_dir()
            except OSError:
                continue
            results.append(FileEntry(path=rel, name=entry.name, is_dir=is_dir))
            if is_dir and depth < max_depth and not entry.is_symlink():
                walk(Path(entry.path), f"{rel}/", depth + 1)

    walk(root, "", 1)
    return results
