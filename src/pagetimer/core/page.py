"""Headless model of the page hosting the countdown.

A browser driver, a test or the CLI mutates this object; the countdown and
the navigation watcher only ever observe it through events.

Events dispatched on :class:`Page`:

``popstate``            back/forward traversal
``hashchange``          fragment-only change
``visibilitychange``    :attr:`Page.hidden` flipped
``DOMContentLoaded``    the page became interactive
``contentchange``       structural change; receives ``added_controls: bool``
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable
from urllib.parse import urldefrag, urljoin

Listener = Callable[..., None]
HistoryHook = Callable[[str, str], None]

READY_LOADING = "loading"
READY_INTERACTIVE = "interactive"
READY_COMPLETE = "complete"


class History:
    """Session history stack with composable transition hooks.

    Hooks are called as ``hook(method, url)`` after ``push_state`` and
    ``replace_state`` have updated the location.
    """

    def __init__(self, page: Page) -> None:
        self._page = page
        self._entries: list[str] = [page.url]
        self._index = 0
        self._hooks: list[HistoryHook] = []

    def add_hook(self, hook: HistoryHook) -> None:
        self._hooks.append(hook)

    def remove_hook(self, hook: HistoryHook) -> None:
        if hook in self._hooks:
            self._hooks.remove(hook)

    def push_state(self, url: str) -> None:
        resolved = urljoin(self._page.url, url)
        del self._entries[self._index + 1 :]
        self._entries.append(resolved)
        self._index += 1
        self._page._set_url(resolved)
        self._notify("push_state", resolved)

    def replace_state(self, url: str) -> None:
        resolved = urljoin(self._page.url, url)
        self._entries[self._index] = resolved
        self._page._set_url(resolved)
        self._notify("replace_state", resolved)

    def back(self) -> None:
        self.go(-1)

    def forward(self) -> None:
        self.go(1)

    def go(self, delta: int) -> None:
        target = self._index + delta
        if delta == 0 or not 0 <= target < len(self._entries):
            return
        self._index = target
        self._page._set_url(self._entries[target])
        self._page.dispatch("popstate")

    def _record_load(self, url: str) -> None:
        del self._entries[self._index + 1 :]
        self._entries.append(url)
        self._index += 1

    def _notify(self, method: str, url: str) -> None:
        for hook in list(self._hooks):
            hook(method, url)


class Page:
    """The hosting page: location, history, visibility and readiness."""

    def __init__(
        self,
        url: str = "about:blank",
        *,
        ready_state: str = READY_COMPLETE,
        supports_observation: bool = True,
    ) -> None:
        self._url = url
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self.hidden = False
        self.ready_state = ready_state
        self.body_ready = ready_state != READY_LOADING
        self.supports_observation = supports_observation
        self.history = History(self)

    @property
    def url(self) -> str:
        return self._url

    # -- events --------------------------------------------------------------

    def add_listener(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def remove_listener(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def dispatch(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            listener(*args)

    # -- driver operations ---------------------------------------------------

    def assign(self, url: str) -> None:
        """Change the location without any event, as a framework router that
        bypasses the history API would.  Only polling can observe this."""
        resolved = urljoin(self._url, url)
        self._set_url(resolved)
        self.history._record_load(resolved)

    def set_fragment(self, fragment: str) -> None:
        base, _ = urldefrag(self._url)
        fragment = fragment.lstrip("#")
        new_url = f"{base}#{fragment}" if fragment else base
        if new_url == self._url:
            return
        self._set_url(new_url)
        self.history._record_load(new_url)
        self.dispatch("hashchange")

    def set_hidden(self, hidden: bool) -> None:
        if hidden == self.hidden:
            return
        self.hidden = hidden
        self.dispatch("visibilitychange")

    def finish_loading(self) -> None:
        """Mark the document interactive and fire ``DOMContentLoaded``."""
        if self.ready_state != READY_LOADING:
            return
        self.ready_state = READY_INTERACTIVE
        self.body_ready = True
        self.dispatch("DOMContentLoaded")

    def add_content(self, added_controls: bool = True) -> None:
        """Signal a structural change, e.g. a form rendered after expiry."""
        self.dispatch("contentchange", added_controls)

    def _set_url(self, url: str) -> None:
        self._url = url
