from __future__ import annotations

import asyncio
import time
from contextlib import suppress
from typing import Callable, Optional

from rich.console import Console

SPINNER_FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")


class ProcessingIndicator:
    """Spinner with elapsed time shown while the agent works.

    With ``on_tick`` set the indicator only drives redraws (the prompt layout
    reads :meth:`status_text`); without it the indicator owns a rich status
    line on the console.
    """

    def __init__(
        self,
        console: Console,
        label: str = "Thinking",
        *,
        on_tick: Optional[Callable[[], None]] = None,
        interval: float = 0.1,
    ) -> None:
        self.console = console
        self.label = label
        self.on_tick = on_tick
        self.interval = interval
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._running = False
        self._started_at = 0.0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def elapsed(self) -> float:
        if not self._running:
            return 0.0
        return time.monotonic() - self._started_at

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._started_at = time.monotonic()
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if not self._running:
            return
        self._stop_event.set()
        if self._task:
            with suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        self._running = False
        if self.on_tick is not None:
            self.on_tick()

    def status_text(self) -> str:
        return self._format_status(self.elapsed)

    def _format_status(self, elapsed: float) -> str:
        frame = SPINNER_FRAMES[int(elapsed / self.interval) % len(SPINNER_FRAMES)]
        return f"{frame} {self.label} ({elapsed:.1f}s) • Esc to interrupt"

    async def _run(self) -> None:
        if self.on_tick is not None:
            while not self._stop_event.is_set():
                self.on_tick()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    continue
            return
        with self.console.status(self._plain_status(0.0), spinner="dots") as status:
            while not self._stop_event.is_set():
                status.update(self._plain_status(self.elapsed))
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=0.5)
                except asyncio.TimeoutError:
                    continue

    def _plain_status(self, elapsed: float) -> str:
        return f"{self.label} ({elapsed:.1f}s)"
