"""Wiring: assemble one page session's countdown from settings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pagetimer.core.bootstrap import BootstrapRetry
from pagetimer.core.content import select_content_watch
from pagetimer.core.coordinator import LifecycleCoordinator
from pagetimer.core.navigation import NavigationWatcher, default_sources
from pagetimer.core.storage import JsonFileStore
from pagetimer.core.timer import PersistentCountdown

if TYPE_CHECKING:
    from pagetimer.config import Settings
    from pagetimer.core.display import Display, ElementDisabler
    from pagetimer.core.page import Page
    from pagetimer.core.scheduler import Scheduler
    from pagetimer.core.storage import RecordStore


def build_countdown(
    settings: Settings,
    scheduler: Scheduler | None,
    page: Page | None = None,
    store: RecordStore | None = None,
) -> PersistentCountdown:
    return PersistentCountdown(
        store if store is not None else JsonFileStore(settings.state_dir),
        scheduler,
        page,
        duration=settings.duration_ms,
        storage_key=settings.storage_key,
        tick_interval=settings.tick_interval,
        sync_interval=settings.sync_interval,
    )


def build_coordinator(
    page: Page,
    scheduler: Scheduler,
    settings: Settings,
    display: Display,
    disabler: ElementDisabler,
    store: RecordStore | None = None,
) -> LifecycleCoordinator:
    watcher = NavigationWatcher(
        page,
        settings.patterns(),
        default_sources(page, scheduler, settings.poll_interval),
    )
    return LifecycleCoordinator(
        build_countdown(settings, scheduler, page, store),
        watcher,
        display,
        disabler,
        select_content_watch(page, scheduler, settings.refresh_interval),
    )


def launch(
    page: Page,
    scheduler: Scheduler,
    settings: Settings,
    display: Display,
    disabler: ElementDisabler,
    store: RecordStore | None = None,
) -> BootstrapRetry:
    """Start bootstrapping a coordinator for *page* and return the bootstrapper."""
    bootstrap = BootstrapRetry(
        page,
        scheduler,
        lambda: build_coordinator(page, scheduler, settings, display, disabler, store),
    )
    bootstrap.start()
    return bootstrap
