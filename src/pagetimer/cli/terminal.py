"""Terminal renditions of the display and element-disabling collaborators."""

from __future__ import annotations

import click

from pagetimer.core.display import format_remaining, is_urgent

EXPIRED_MESSAGE = "Time Expired - Form Disabled"
WAITING_MESSAGE = "Navigate to the start page to begin the countdown"


class TerminalDisplay:
    """Echoes a line whenever the rendered text would change."""

    def __init__(self) -> None:
        self._last: str | None = None

    @property
    def last_line(self) -> str | None:
        return self._last

    def update(self, remaining_ms: int, is_expired: bool) -> None:
        if is_expired:
            self._emit(EXPIRED_MESSAGE, fg="red", bold=True)
            return
        line = format_remaining(remaining_ms)
        self._emit(line, fg="red" if is_urgent(remaining_ms) else None)

    def show_waiting(self) -> None:
        self._emit(WAITING_MESSAGE, fg="yellow")

    def destroy(self) -> None:
        if self._last is not None:
            click.echo("(timer hidden)")
        self._last = None

    def _emit(self, line: str, **style: object) -> None:
        if line == self._last:
            return
        self._last = line
        click.secho(line, **style)


class TerminalDisabler:
    """Reports control disabling instead of touching a real form."""

    def __init__(self) -> None:
        self.disabled = False
        self.refreshes = 0

    def disable_all(self) -> None:
        if self.disabled:
            return
        self.disabled = True
        click.echo("Form controls disabled")

    def restore_all(self) -> None:
        if not self.disabled:
            return
        self.disabled = False
        click.echo("Form controls restored")

    def refresh(self) -> None:
        if self.disabled:
            self.refreshes += 1
