"""Navigation classification for a long-lived single-page session.

The watcher keeps exactly two URL slots, current and previous.  Every
detected change shifts them in one synchronous step before classifying,
so :meth:`NavigationWatcher.should_reset` always sees a consistent pair.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Protocol, Sequence
from urllib.parse import urlsplit

from pagetimer.log import get_logger

if TYPE_CHECKING:
    from pagetimer.core.page import Page
    from pagetimer.core.scheduler import Handle, Scheduler

logger = get_logger(__name__)

DEFAULT_SECTION_PATTERN = r"/task/\d+(?:/|$|\?)"
DEFAULT_START_PATTERN = r"/task/1(?:/|$|\?)"

ChangeCallback = Callable[[], None]
SectionCallback = Callable[[bool, bool], None]
StartCallback = Callable[[bool], None]
NoMatchCallback = Callable[[], None]


def path_of(url: str) -> str:
    """Return the path plus query string of *url*, fragment excluded."""
    parts = urlsplit(url)
    path = parts.path or "/"
    return f"{path}?{parts.query}" if parts.query else path


@dataclass(frozen=True)
class Classification:
    is_tracked_section: bool
    is_start_point: bool


NOT_TRACKED = Classification(False, False)


@dataclass(frozen=True)
class PathPatterns:
    """The broad *section* pattern and the narrow *start* pattern."""

    section: re.Pattern[str]
    start: re.Pattern[str]

    @classmethod
    def compile(
        cls,
        section: str = DEFAULT_SECTION_PATTERN,
        start: str = DEFAULT_START_PATTERN,
    ) -> PathPatterns:
        return cls(re.compile(section, re.IGNORECASE), re.compile(start, re.IGNORECASE))

    def classify(self, url: str | None) -> Classification:
        if not url:
            return NOT_TRACKED
        path = path_of(url)
        return Classification(
            is_tracked_section=self.section.search(path) is not None,
            is_start_point=self.start.search(path) is not None,
        )


# -- navigation sources ------------------------------------------------------


class NavigationSource(Protocol):
    """One mechanism by which a location change can be detected."""

    def attach(self, on_change: ChangeCallback) -> None: ...

    def detach(self) -> None: ...


class HistoryTransitionSource:
    """Observes programmatic ``push_state`` / ``replace_state`` calls."""

    def __init__(self, page: Page) -> None:
        self._page = page
        self._on_change: ChangeCallback | None = None

    def attach(self, on_change: ChangeCallback) -> None:
        self._on_change = on_change
        self._page.history.add_hook(self._hook)

    def detach(self) -> None:
        self._page.history.remove_hook(self._hook)
        self._on_change = None

    def _hook(self, method: str, url: str) -> None:
        if self._on_change is not None:
            self._on_change()


class PageEventSource:
    """Observes a named page event such as ``popstate`` or ``hashchange``."""

    def __init__(self, page: Page, event: str) -> None:
        self._page = page
        self._event = event
        self._on_change: ChangeCallback | None = None

    def attach(self, on_change: ChangeCallback) -> None:
        self._on_change = on_change
        self._page.add_listener(self._event, self._listener)

    def detach(self) -> None:
        self._page.remove_listener(self._event, self._listener)
        self._on_change = None

    def _listener(self, *args: object) -> None:
        if self._on_change is not None:
            self._on_change()


class PollingSource:
    """Fallback for navigation that bypasses history and page events."""

    def __init__(self, scheduler: Scheduler, interval: float = 1.0) -> None:
        self._scheduler = scheduler
        self._interval = interval
        self._handle: Handle | None = None

    def attach(self, on_change: ChangeCallback) -> None:
        self.detach()
        self._handle = self._scheduler.call_every(self._interval, on_change)

    def detach(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


def default_sources(page: Page, scheduler: Scheduler, poll_interval: float = 1.0) -> list[NavigationSource]:
    return [
        HistoryTransitionSource(page),
        PageEventSource(page, "popstate"),
        PageEventSource(page, "hashchange"),
        PollingSource(scheduler, poll_interval),
    ]


# -- watcher -----------------------------------------------------------------


class NavigationWatcher:
    """Classifies location changes and emits section/start/no-match events.

    ``on_section_match`` and ``on_start_match`` are not mutually exclusive:
    arriving at the start point fires both, section first.
    """

    def __init__(
        self,
        page: Page,
        patterns: PathPatterns,
        sources: Sequence[NavigationSource],
    ) -> None:
        self._page = page
        self._patterns = patterns
        self._sources = list(sources)
        self._current_url: str = page.url
        self._previous_url: str | None = None
        self._monitoring = False
        self._on_section_match: SectionCallback | None = None
        self._on_start_match: StartCallback | None = None
        self._on_no_match: NoMatchCallback | None = None

    @property
    def current_url(self) -> str:
        return self._current_url

    @property
    def previous_url(self) -> str | None:
        return self._previous_url

    @property
    def patterns(self) -> PathPatterns:
        return self._patterns

    def on_section_match(self, callback: SectionCallback | None) -> None:
        self._on_section_match = callback

    def on_start_match(self, callback: StartCallback | None) -> None:
        self._on_start_match = callback

    def on_no_match(self, callback: NoMatchCallback | None) -> None:
        self._on_no_match = callback

    def classify(self) -> Classification:
        return self._patterns.classify(self._current_url)

    def previous_classification(self) -> Classification:
        return self._patterns.classify(self._previous_url)

    def should_reset(self) -> bool:
        """True when the start point was reached from outside the section."""
        if self._previous_url is None:
            return False
        return self.classify().is_start_point and not self.previous_classification().is_tracked_section

    def is_monitoring(self) -> bool:
        return self._monitoring

    def start(self) -> None:
        """Attach every source and classify the initial location."""
        if self._monitoring:
            return
        for source in self._sources:
            source.attach(self._detect_change)
        self._monitoring = True
        logger.debug("navigation.monitoring_started", url=self._current_url)
        self.handle_change(force=True)

    def stop(self) -> None:
        if not self._monitoring:
            return
        for source in self._sources:
            source.detach()
        self._monitoring = False
        logger.debug("navigation.monitoring_stopped")

    def handle_change(self, force: bool = False) -> None:
        """Shift the URL slots if the location moved, then fire callbacks.

        An unchanged location is ignored unless *force* is set, so several
        sources reporting the same navigation produce a single event.
        """
        new_url = self._page.url
        if new_url != self._current_url:
            logger.info("navigation.changed", previous=self._current_url, current=new_url)
            self._previous_url = self._current_url
            self._current_url = new_url
        elif not force:
            return

        classification = self.classify()
        should_reset = self.should_reset()

        if classification.is_tracked_section:
            if self._on_section_match is not None:
                self._on_section_match(classification.is_start_point, should_reset)
        elif self._on_no_match is not None:
            self._on_no_match()

        if classification.is_start_point and self._on_start_match is not None:
            self._on_start_match(should_reset)

    def _detect_change(self) -> None:
        self.handle_change()
