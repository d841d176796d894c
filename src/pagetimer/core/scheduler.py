"""Cooperative scheduling of one-shot and periodic callbacks."""

from __future__ import annotations

import asyncio
from typing import Callable, Protocol


class Handle(Protocol):
    """A cancellable scheduled callback."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Single-threaded timer source.

    Callbacks never run concurrently with one another; they only interleave.
    """

    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle: ...

    def call_every(self, interval: float, callback: Callable[[], None]) -> Handle: ...


class _Periodic:
    """Re-arms itself on the loop after every run until cancelled."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        interval: float,
        callback: Callable[[], None],
    ) -> None:
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._cancelled = False
        self._timer: asyncio.TimerHandle = loop.call_later(interval, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        self._timer = self._loop.call_later(self._interval, self._run)
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._timer.cancel()


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop.

    The loop defaults to the running one, so construct this from inside a
    coroutine or pass *loop* explicitly.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop if loop is not None else asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle:
        return self._loop.call_later(delay, callback)

    def call_every(self, interval: float, callback: Callable[[], None]) -> Handle:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        return _Periodic(self._loop, interval, callback)
