"""Lifecycle coordinator: navigation events drive the countdown.

Every decision is derived from the current classification, the previous
classification and whether a timer record exists (in memory for this page
load, or persisted by an earlier one).  Nothing else carries over between
page loads, so a coordinator rebuilt on reload reaches the same state.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from pagetimer.log import get_logger

if TYPE_CHECKING:
    from pagetimer.core.content import ContentWatch
    from pagetimer.core.display import Display, ElementDisabler
    from pagetimer.core.navigation import NavigationWatcher
    from pagetimer.core.timer import PersistentCountdown, TimerRecord

logger = get_logger(__name__)


class CoordinatorState(Enum):
    DORMANT = "dormant"
    WAITING = "waiting"
    RUNNING = "running"
    EXPIRED = "expired"
    TORN_DOWN = "torn_down"


_VISIBLE_STATES = frozenset(
    {CoordinatorState.WAITING, CoordinatorState.RUNNING, CoordinatorState.EXPIRED}
)


class LifecycleCoordinator:
    """Owns one page session's countdown, display and control disabling."""

    def __init__(
        self,
        countdown: PersistentCountdown,
        watcher: NavigationWatcher,
        display: Display,
        disabler: ElementDisabler,
        content_watch: ContentWatch,
    ) -> None:
        self._countdown = countdown
        self._watcher = watcher
        self._display = display
        self._disabler = disabler
        self._content_watch = content_watch
        self._state = CoordinatorState.DORMANT
        self._started = False

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def countdown(self) -> PersistentCountdown:
        return self._countdown

    @property
    def watcher(self) -> NavigationWatcher:
        return self._watcher

    def start(self) -> None:
        """Wire callbacks and classify the current location.

        If classification raises, whatever was already attached is released
        before the error propagates.
        """
        if self._started:
            return
        self._started = True
        self._countdown.on_tick(self._handle_tick)
        self._countdown.on_expire(self._handle_expire)
        self._watcher.on_section_match(self._handle_section_match)
        self._watcher.on_start_match(self._handle_start_match)
        self._watcher.on_no_match(self._handle_no_match)
        try:
            self._watcher.start()
        except Exception:
            self.close()
            raise

    def close(self) -> None:
        """Release everything for page unload; the persisted record stays."""
        if not self._started:
            return
        self._started = False
        self._watcher.stop()
        self._countdown.on_tick(None)
        self._countdown.on_expire(None)
        self._countdown.release()
        self._content_watch.unsubscribe()
        self._display.destroy()
        self._transition(CoordinatorState.DORMANT, "closed")

    # -- navigation handlers -------------------------------------------------

    def _handle_section_match(self, is_start_point: bool, should_reset: bool) -> None:
        # The start point is handled by _handle_start_match, which fires next.
        if is_start_point:
            return
        if self._countdown.initialized or self._countdown.has_persisted_record():
            self._continue()
        elif self._state is not CoordinatorState.WAITING:
            self._display.show_waiting()
            self._transition(CoordinatorState.WAITING, "entered below start point")

    def _handle_start_match(self, should_reset: bool) -> None:
        if should_reset:
            logger.info("coordinator.reset", url=self._watcher.current_url)
            self._countdown.clear_stored()
            self._restart_fresh()
            return
        self._continue()

    def _handle_no_match(self) -> None:
        # Persisted state is cleared even when nothing was shown this page load.
        self._countdown.destroy()
        self._content_watch.unsubscribe()
        if self._state in _VISIBLE_STATES:
            self._display.destroy()
            self._disabler.restore_all()
            self._transition(CoordinatorState.TORN_DOWN, "left section")

    # -- countdown handlers --------------------------------------------------

    def _handle_tick(self, remaining: int, record: TimerRecord) -> None:
        self._display.update(remaining, record.is_expired)

    def _handle_expire(self) -> None:
        self._apply_expiry()

    # -- private helpers -----------------------------------------------------

    def _continue(self) -> None:
        """Recover or keep the existing countdown without restarting it."""
        if not self._countdown.initialized:
            self._countdown.initialize()
        if not self._countdown.is_expired() and not self._countdown.is_running():
            self._countdown.start()
        if self._countdown.is_expired():
            self._apply_expiry()
            return
        self._display.update(self._countdown.remaining_time, False)
        self._transition(CoordinatorState.RUNNING, "continuing countdown")

    def _restart_fresh(self) -> None:
        self._content_watch.unsubscribe()
        if self._state is CoordinatorState.EXPIRED:
            self._disabler.restore_all()
        # Storage may still hold the old record if clearing it failed.
        self._countdown.start_fresh()
        self._transition(CoordinatorState.RUNNING, "fresh countdown")
        self._display.update(self._countdown.remaining_time, False)
        self._countdown.start()

    def _apply_expiry(self) -> None:
        if self._state is CoordinatorState.EXPIRED:
            return
        self._transition(CoordinatorState.EXPIRED, "countdown finished")
        self._display.update(0, True)
        self._disabler.disable_all()
        # Controls rendered after expiry must be caught as well.
        self._content_watch.subscribe(self._disabler.refresh)

    def _transition(self, new_state: CoordinatorState, reason: str) -> None:
        if new_state is self._state:
            return
        logger.info(
            "coordinator.transition",
            previous=self._state.value,
            current=new_state.value,
            reason=reason,
        )
        self._state = new_state
