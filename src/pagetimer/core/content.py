"""Subscriptions to structural changes of the page's content.

Two interchangeable strategies deliver the same signal: native change
observation when the page supports it, fixed-interval re-scanning when it
does not.  :func:`select_content_watch` picks one at construction time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Protocol

from pagetimer.log import get_logger

if TYPE_CHECKING:
    from pagetimer.core.page import Page
    from pagetimer.core.scheduler import Handle, Scheduler

logger = get_logger(__name__)

SETTLE_DELAY = 0.1


class ContentWatch(Protocol):
    def subscribe(self, callback: Callable[[], None]) -> None: ...

    def unsubscribe(self) -> None: ...

    @property
    def active(self) -> bool: ...


class ObserverContentWatch:
    """Calls back shortly after a structural change that added form controls."""

    def __init__(self, page: Page, scheduler: Scheduler, settle_delay: float = SETTLE_DELAY) -> None:
        self._page = page
        self._scheduler = scheduler
        self._settle_delay = settle_delay
        self._callback: Callable[[], None] | None = None
        self._pending: Handle | None = None

    @property
    def active(self) -> bool:
        return self._callback is not None

    def subscribe(self, callback: Callable[[], None]) -> None:
        self.unsubscribe()
        self._callback = callback
        self._page.add_listener("contentchange", self._on_content_change)

    def unsubscribe(self) -> None:
        if self._callback is None:
            return
        self._page.remove_listener("contentchange", self._on_content_change)
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._callback = None

    def _on_content_change(self, added_controls: bool = True) -> None:
        if not added_controls or self._pending is not None:
            return
        # let the rest of the change land before re-scanning
        self._pending = self._scheduler.call_later(self._settle_delay, self._fire)

    def _fire(self) -> None:
        self._pending = None
        if self._callback is not None:
            self._callback()


class PollingContentWatch:
    """Calls back on a fixed interval regardless of what changed."""

    def __init__(self, scheduler: Scheduler, interval: float = 2.0) -> None:
        self._scheduler = scheduler
        self._interval = interval
        self._handle: Handle | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def subscribe(self, callback: Callable[[], None]) -> None:
        self.unsubscribe()
        self._handle = self._scheduler.call_every(self._interval, callback)

    def unsubscribe(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


def select_content_watch(page: Page, scheduler: Scheduler, interval: float = 2.0) -> ContentWatch:
    if page.supports_observation:
        return ObserverContentWatch(page, scheduler)
    logger.info("content.polling_fallback", interval=interval)
    return PollingContentWatch(scheduler, interval)
