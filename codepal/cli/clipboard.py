from __future__ import annotations

import asyncio
import functools
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from contextlib import suppress
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import pyperclip

from ..core.session_log import log_warn

CLIPBOARD_TIMEOUT_SECONDS = 5.0
WINDOWS_SET_CLIPBOARD = (
    "[Console]::InputEncoding = [System.Text.Encoding]::UTF8; "
    "Set-Clipboard -Value ([Console]::In.ReadToEnd())"
)


class ClipboardError(Exception):
    """A clipboard read or write failed."""


class ClipboardUnavailableError(ClipboardError):
    def __init__(self, message: str = "Clipboard not supported on this platform") -> None:
        super().__init__(message)


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _darwin_clipboard_cmd(name: str) -> str | None:
    path = Path("/usr/bin") / name
    if path.exists():
        return str(path)
    return shutil.which(name)


def _run(
    args: Sequence[str], data: Optional[str] = None, timeout: float = CLIPBOARD_TIMEOUT_SECONDS
) -> str:
    try:
        proc = subprocess.run(
            list(args),
            input=data.encode("utf-8") if data is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        raise ClipboardError(f"{args[0]} failed: {exc}") from exc
    return proc.stdout.decode("utf-8", errors="replace")


async def _run_async(
    args: Sequence[str], data: Optional[str] = None, timeout: float = CLIPBOARD_TIMEOUT_SECONDS
) -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(_run, args, data, timeout))


class ClipboardProvider(ABC):
    name = "clipboard"
    timeout: float = CLIPBOARD_TIMEOUT_SECONDS

    def __init__(self, timeout: Optional[float] = None) -> None:
        if timeout is not None:
            self.timeout = timeout

    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    async def get_content(self) -> str:
        ...

    @abstractmethod
    async def set_content(self, text: str) -> None:
        ...


class MacOSClipboardProvider(ClipboardProvider):
    name = "pbcopy"

    def is_available(self) -> bool:
        return bool(_darwin_clipboard_cmd("pbcopy")) and bool(
            _darwin_clipboard_cmd("pbpaste")
        )

    async def get_content(self) -> str:
        cmd = _darwin_clipboard_cmd("pbpaste")
        if not cmd:
            raise ClipboardUnavailableError("pbpaste not found")
        return await _run_async([cmd], timeout=self.timeout)

    async def set_content(self, text: str) -> None:
        cmd = _darwin_clipboard_cmd("pbcopy")
        if not cmd:
            raise ClipboardUnavailableError("pbcopy not found")
        await _run_async([cmd], text, timeout=self.timeout)


class LinuxClipboardProvider(ClipboardProvider):
    """Tries the X11 clipboard tool, then the selection tool, then Wayland."""

    name = "linux"
    READ_COMMANDS = (
        ("xclip", "-selection", "clipboard", "-o"),
        ("xsel", "--clipboard", "--output"),
        ("wl-paste", "--no-newline"),
    )
    WRITE_COMMANDS = (
        ("xclip", "-selection", "clipboard"),
        ("xsel", "--clipboard", "--input"),
        ("wl-copy",),
    )

    def is_available(self) -> bool:
        return any(shutil.which(cmd[0]) for cmd in self.READ_COMMANDS)

    async def get_content(self) -> str:
        return await self._first_success(self.READ_COMMANDS)

    async def set_content(self, text: str) -> None:
        await self._first_success(self.WRITE_COMMANDS, text)

    async def _first_success(
        self, commands: Iterable[Sequence[str]], data: Optional[str] = None
    ) -> str:
        errors: List[str] = []
        for cmd in commands:
            try:
                return await _run_async(cmd, data, timeout=self.timeout)
            except ClipboardError as exc:
                errors.append(str(exc))
        raise ClipboardError("; ".join(errors) or "no clipboard tool succeeded")


class WindowsClipboardProvider(ClipboardProvider):
    name = "powershell"

    def is_available(self) -> bool:
        return bool(shutil.which("powershell"))

    async def get_content(self) -> str:
        text = await _run_async(
            ["powershell", "-NoProfile", "-Command", "Get-Clipboard"], timeout=self.timeout
        )
        # Get-Clipboard terminates its output with one line break.
        if text.endswith("\r\n"):
            text = text[:-2]
        return text

    async def set_content(self, text: str) -> None:
        await _run_async(
            ["powershell", "-NoProfile", "-Command", WINDOWS_SET_CLIPBOARD],
            text,
            timeout=self.timeout,
        )


class PyperclipClipboardProvider(ClipboardProvider):
    name = "pyperclip"

    def is_available(self) -> bool:
        with suppress(Exception):
            copy, paste = pyperclip.determine_clipboard()
            return bool(copy) and bool(paste)
        return False

    async def get_content(self) -> str:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, pyperclip.paste)
        except pyperclip.PyperclipException as exc:
            raise ClipboardError(str(exc)) from exc

    async def set_content(self, text: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, pyperclip.copy, text)
        except pyperclip.PyperclipException as exc:
            raise ClipboardError(str(exc)) from exc


def default_providers(
    platform: Optional[str] = None, timeout: Optional[float] = None
) -> List[ClipboardProvider]:
    platform = platform or sys.platform
    providers: List[ClipboardProvider] = []
    if platform == "darwin":
        providers.append(MacOSClipboardProvider(timeout))
    elif platform.startswith("linux"):
        providers.append(LinuxClipboardProvider(timeout))
    elif platform.startswith("win"):
        providers.append(WindowsClipboardProvider(timeout))
    providers.append(PyperclipClipboardProvider(timeout))
    return providers


class ClipboardManager:
    """Proxies to the first provider that reported itself available.

    The provider is chosen once, at construction. With no provider every
    operation raises :class:`ClipboardUnavailableError` immediately.
    """

    def __init__(
        self,
        providers: Optional[Iterable[ClipboardProvider]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        if providers is None:
            providers = default_providers(timeout=timeout)
        candidates = list(providers)
        self.provider: Optional[ClipboardProvider] = None
        for provider in candidates:
            try:
                available = provider.is_available()
            except Exception as exc:  # noqa: BLE001
                log_warn("clipboard", "clipboard.availability_check_failed", {"provider": provider.name, "error": str(exc)})
                continue
            if available:
                self.provider = provider
                break

    def is_available(self) -> bool:
        return self.provider is not None

    async def get_content(self) -> str:
        if self.provider is None:
            raise ClipboardUnavailableError()
        return normalize_line_endings(await self.provider.get_content())

    async def set_content(self, text: str) -> None:
        if self.provider is None:
            raise ClipboardUnavailableError()
        await self.provider.set_content(text)
