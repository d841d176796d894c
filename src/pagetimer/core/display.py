"""Interfaces of the countdown's visual and form-control collaborators."""

from __future__ import annotations

import math
from typing import Protocol

URGENT_THRESHOLD_MS = 60 * 1000


class Display(Protocol):
    """Renders the countdown overlay.

    ``update`` may be called at any time after construction; implementations
    create whatever they render lazily.
    """

    def update(self, remaining_ms: int, is_expired: bool) -> None: ...

    def show_waiting(self) -> None: ...

    def destroy(self) -> None: ...


class ElementDisabler(Protocol):
    """Disables and restores the page's interactive form controls."""

    def disable_all(self) -> None: ...

    def restore_all(self) -> None: ...

    def refresh(self) -> None: ...


def format_remaining(remaining_ms: float) -> str:
    """Format *remaining_ms* as ``MM:SS``, rounding partial seconds up."""
    total = max(0, math.ceil(remaining_ms / 1000))
    return f"{total // 60:02d}:{total % 60:02d}"


def is_urgent(remaining_ms: float) -> bool:
    return 0 < remaining_ms <= URGENT_THRESHOLD_MS
