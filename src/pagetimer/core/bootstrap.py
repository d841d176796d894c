"""Construct the coordinator once the page is interactive, with bounded retries."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from pagetimer.core.errors import ConstructionError
from pagetimer.core.page import READY_LOADING
from pagetimer.log import get_logger

if TYPE_CHECKING:
    from pagetimer.core.coordinator import LifecycleCoordinator
    from pagetimer.core.page import Page
    from pagetimer.core.scheduler import Scheduler

logger = get_logger(__name__)

CoordinatorFactory = Callable[[], "LifecycleCoordinator"]


class BootstrapRetry:
    """Builds and starts a :class:`LifecycleCoordinator` exactly once.

    A failed attempt is retried after ``base_delay * 2**(n - 1)`` seconds,
    capped at *max_delay*, until *max_attempts* attempts have failed.
    """

    def __init__(
        self,
        page: Page,
        scheduler: Scheduler,
        factory: CoordinatorFactory,
        *,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 5.0,
    ) -> None:
        self._page = page
        self._scheduler = scheduler
        self._factory = factory
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._attempts = 0
        self._started = False
        self._coordinator: LifecycleCoordinator | None = None
        self.failed = False

    @property
    def coordinator(self) -> LifecycleCoordinator | None:
        return self._coordinator

    @property
    def attempts(self) -> int:
        return self._attempts

    def is_ready(self) -> bool:
        return self._coordinator is not None

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        if self._page.ready_state == READY_LOADING:
            self._page.add_listener("DOMContentLoaded", self._on_ready)
        else:
            self._attempt()

    def next_delay(self) -> float:
        """Delay before the retry following the current failed attempt."""
        return min(self._base_delay * 2 ** (self._attempts - 1), self._max_delay)

    def _on_ready(self) -> None:
        self._page.remove_listener("DOMContentLoaded", self._on_ready)
        self._attempt()

    def _attempt(self) -> None:
        coordinator: LifecycleCoordinator | None = None
        try:
            if not self._page.body_ready:
                raise ConstructionError("page body is not available yet")
            coordinator = self._factory()
            coordinator.start()
        except Exception as exc:  # noqa: BLE001
            if coordinator is not None:
                coordinator.close()
            logger.warning("bootstrap.attempt_failed", attempt=self._attempts + 1, error=str(exc))
            self._retry()
            return
        self._coordinator = coordinator
        logger.info("bootstrap.ready", url=self._page.url, state=coordinator.state.value)

    def _retry(self) -> None:
        self._attempts += 1
        if self._attempts >= self._max_attempts:
            self.failed = True
            logger.error("bootstrap.gave_up", attempts=self._attempts)
            return
        delay = self.next_delay()
        logger.info("bootstrap.retry", attempt=self._attempts, delay=delay)
        self._scheduler.call_later(delay, self._attempt)
