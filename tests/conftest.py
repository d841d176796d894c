"""Shared fixtures: a virtual clock/scheduler and recording collaborators."""

from __future__ import annotations

import heapq
import itertools
from pathlib import Path
from typing import Callable, Iterator
from unittest.mock import patch

import pytest

from pagetimer.config import Settings
from pagetimer.core.page import Page
from pagetimer.core.storage import MemoryStore

START_EPOCH = 1_700_000_000.0


class _Task:
    def __init__(self, due: float, callback: Callable[[], None], interval: float | None) -> None:
        self.due = due
        self.callback = callback
        self.interval = interval
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic scheduler over virtual time.

    It doubles as the ``time`` module seen by the countdown: ``time()``
    returns the virtual epoch in seconds, so advancing the scheduler moves
    the countdown's wall clock in lockstep.
    """

    def __init__(self, now: float = START_EPOCH) -> None:
        self.now = now
        self._queue: list[tuple[float, int, _Task]] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Task:
        return self._push(_Task(self.now + delay, callback, None))

    def call_every(self, interval: float, callback: Callable[[], None]) -> _Task:
        return self._push(_Task(self.now + interval, callback, interval))

    def pending(self) -> int:
        return sum(1 for _, _, task in self._queue if not task.cancelled)

    def advance(self, seconds: float) -> None:
        """Move time forward, running every callback that falls due."""
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, task = heapq.heappop(self._queue)
            if task.cancelled:
                continue
            self.now = due
            if task.interval is not None:
                task.due = due + task.interval
                self._push(task)
            task.callback()
        self.now = target

    def jump(self, seconds: float) -> None:
        """Move the wall clock without running anything (a suspended page)."""
        self.now += seconds
        for _, _, task in self._queue:
            if task.due < self.now:
                task.due = self.now
        self._queue = [(task.due, seq, task) for _, seq, task in self._queue]
        heapq.heapify(self._queue)

    def _push(self, task: _Task) -> _Task:
        heapq.heappush(self._queue, (task.due, next(self._seq), task))
        return task


class RecordingDisplay:
    def __init__(self) -> None:
        self.updates: list[tuple[int, bool]] = []
        self.waiting_shown = 0
        self.destroyed = 0

    @property
    def last(self) -> tuple[int, bool] | None:
        return self.updates[-1] if self.updates else None

    def update(self, remaining_ms: int, is_expired: bool) -> None:
        self.updates.append((remaining_ms, is_expired))

    def show_waiting(self) -> None:
        self.waiting_shown += 1

    def destroy(self) -> None:
        self.destroyed += 1


class RecordingDisabler:
    def __init__(self) -> None:
        self.disable_calls = 0
        self.restore_calls = 0
        self.refresh_calls = 0

    def disable_all(self) -> None:
        self.disable_calls += 1

    def restore_all(self) -> None:
        self.restore_calls += 1

    def refresh(self) -> None:
        self.refresh_calls += 1


@pytest.fixture()
def scheduler() -> Iterator[ManualScheduler]:
    """A virtual scheduler that also drives ``pagetimer.core.timer.time``."""
    clock = ManualScheduler()
    with patch("pagetimer.core.timer.time", new=clock):
        yield clock


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def page() -> Page:
    return Page("https://example.com/")


@pytest.fixture()
def display() -> RecordingDisplay:
    return RecordingDisplay()


@pytest.fixture()
def disabler() -> RecordingDisabler:
    return RecordingDisabler()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(state_dir=tmp_path)
