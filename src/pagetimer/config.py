"""Settings with layered precedence: defaults < config.yaml < explicit overrides."""

from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from pagetimer.core.navigation import (
    DEFAULT_SECTION_PATTERN,
    DEFAULT_START_PATTERN,
    PathPatterns,
)
from pagetimer.core.timer import (
    DEFAULT_DURATION_MS,
    DEFAULT_STORAGE_KEY,
    MAX_DURATION_MS,
    MIN_DURATION_MS,
)

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "pagetimer"
CONFIG_FILE = "config.yaml"


@dataclass(frozen=True)
class Settings:
    """Runtime settings.  Intervals are in seconds, durations in ms."""

    duration_ms: int = DEFAULT_DURATION_MS
    section_pattern: str = DEFAULT_SECTION_PATTERN
    start_pattern: str = DEFAULT_START_PATTERN
    storage_key: str = DEFAULT_STORAGE_KEY
    tick_interval: float = 1.0
    sync_interval: float = 30.0
    poll_interval: float = 1.0
    refresh_interval: float = 2.0
    state_dir: Path = DEFAULT_CONFIG_DIR

    def patterns(self) -> PathPatterns:
        return PathPatterns.compile(self.section_pattern, self.start_pattern)


_FIELD_TYPES = {
    "duration_ms": int,
    "section_pattern": str,
    "start_pattern": str,
    "storage_key": str,
    "tick_interval": float,
    "sync_interval": float,
    "poll_interval": float,
    "refresh_interval": float,
    "state_dir": Path,
}


def read_config_file(config_dir: Path) -> dict[str, Any]:
    """Return the mapping in ``<config_dir>/config.yaml``, or ``{}`` if absent."""
    path = config_dir / CONFIG_FILE
    if not path.exists():
        return {}
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValueError(f"{path}: invalid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping, got {type(data).__name__}")
    return data


def load_settings(
    config_dir: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Build :class:`Settings` from defaults, the config file and *overrides*.

    ``state_dir`` defaults to *config_dir* so one directory holds both.
    Raises ``ValueError`` for unknown keys, bad types or out-of-range values.
    """
    config_dir = config_dir if config_dir is not None else DEFAULT_CONFIG_DIR
    merged: dict[str, Any] = {"state_dir": config_dir}
    merged.update(read_config_file(config_dir))
    if overrides:
        merged.update({key: value for key, value in overrides.items() if value is not None})

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(merged) - known)
    if unknown:
        raise ValueError(f"unknown setting(s): {', '.join(unknown)}")

    settings = replace(Settings(), **{key: _coerce(key, value) for key, value in merged.items()})
    _validate(settings)
    return settings


def _coerce(key: str, value: Any) -> Any:
    target = _FIELD_TYPES[key]
    if target is int and (isinstance(value, bool) or not isinstance(value, int)):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if target is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} must be a number, got {value!r}")
        return float(value)
    if target is str and not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    if target is Path:
        return Path(value).expanduser()
    return value


def _validate(settings: Settings) -> None:
    if not MIN_DURATION_MS <= settings.duration_ms <= MAX_DURATION_MS:
        raise ValueError(
            f"duration_ms must be between {MIN_DURATION_MS} and {MAX_DURATION_MS}, "
            f"got {settings.duration_ms}"
        )
    for name in ("tick_interval", "sync_interval", "poll_interval", "refresh_interval"):
        if getattr(settings, name) <= 0:
            raise ValueError(f"{name} must be positive")
    for name in ("section_pattern", "start_pattern"):
        try:
            re.compile(getattr(settings, name))
        except re.error as exc:
            raise ValueError(f"{name} is not a valid regular expression: {exc}") from exc
