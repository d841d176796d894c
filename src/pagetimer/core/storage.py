"""Key-value record stores backing the countdown's persistent mirror."""

from __future__ import annotations

import fcntl
import re
from pathlib import Path
from typing import Protocol

from pagetimer.core.errors import StorageUnavailableError

_DEFAULT_STATE_DIR = Path.home() / ".config" / "pagetimer"
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class RecordStore(Protocol):
    """String key-value store with ``localStorage`` semantics.

    Implementations raise :class:`StorageUnavailableError` on I/O failure.
    """

    def read(self, key: str) -> str | None: ...

    def write(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """In-process store; the degraded mode when nothing durable is available."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def read(self, key: str) -> str | None:
        return self._items.get(key)

    def write(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._items


class JsonFileStore:
    """One JSON file per key under *state_dir*, guarded by ``flock``.

    Writes take an exclusive lock and reads a shared one, so a concurrent
    reader never sees a half-written record.  There is no read-modify-write
    transaction: the last writer wins.
    """

    def __init__(self, state_dir: Path | None = None) -> None:
        self._state_dir: Path = state_dir if state_dir is not None else _DEFAULT_STATE_DIR

    def path_for(self, key: str) -> Path:
        """Return the file backing *key*."""
        return self._state_dir / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def read(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            with open(path) as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                return f.read()
        except OSError as exc:
            raise StorageUnavailableError(f"cannot read {path}: {exc}") from exc

    def write(self, key: str, value: str) -> None:
        path = self.path_for(key)
        try:
            self._state_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "a+") as f:
                fcntl.flock(f, fcntl.LOCK_EX)
                f.seek(0)
                f.truncate()
                f.write(value)
        except OSError as exc:
            raise StorageUnavailableError(f"cannot write {path}: {exc}") from exc

    def remove(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageUnavailableError(f"cannot remove {path}: {exc}") from exc
