"""Persistent countdown: a wall-clock state machine mirrored to a record store.

Remaining time is always re-derived from the absolute ``start_time`` rather
than decremented, so ticks, drift checks and visibility handlers may run in
any order (or be skipped entirely while a page is suspended) without the
countdown drifting.
"""

from __future__ import annotations

import dataclasses
import json
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from pagetimer.core.errors import (
    CorruptRecordError,
    InvalidStateError,
    StorageUnavailableError,
)
from pagetimer.log import get_logger

if TYPE_CHECKING:
    from pagetimer.core.page import Page
    from pagetimer.core.scheduler import Handle, Scheduler
    from pagetimer.core.storage import RecordStore

logger = get_logger(__name__)

SCHEMA_VERSION = "1.0"
DEFAULT_STORAGE_KEY = "page-countdown-timer-state"

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

DEFAULT_DURATION_MS = 10 * MINUTE_MS
MIN_DURATION_MS = MINUTE_MS
MAX_DURATION_MS = 24 * HOUR_MS

MAX_RECORD_AGE_MS = 24 * HOUR_MS
CLOCK_SKEW_TOLERANCE_MS = 5 * MINUTE_MS
STALE_SAVE_MS = HOUR_MS
SLEEP_BUFFER_MS = HOUR_MS
MAX_DRIFT_MS = 5000

TickCallback = Callable[[int, "TimerRecord"], None]
ExpireCallback = Callable[[], None]


def _now_ms() -> int:
    return int(round(time.time() * 1000))


@dataclass
class TimerRecord:
    """The persisted unit of countdown state (all times in milliseconds)."""

    start_time: int
    duration: int
    is_active: bool = True
    is_expired: bool = False
    remaining_time: int = 0
    saved_at: int | None = None
    schema_version: str = SCHEMA_VERSION

    @classmethod
    def fresh(cls, now: int, duration: int) -> TimerRecord:
        return cls(start_time=now, duration=duration, remaining_time=duration)

    def to_dict(self) -> dict[str, Any]:
        return {
            "startTime": self.start_time,
            "duration": self.duration,
            "isActive": self.is_active,
            "isExpired": self.is_expired,
            "remainingTime": self.remaining_time,
            "savedAt": self.saved_at,
            "version": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimerRecord:
        """Build a record from its wire form.  Assumes *data* passed validation."""
        remaining = data.get("remainingTime")
        saved_at = data.get("savedAt")
        return cls(
            start_time=int(data["startTime"]),
            duration=int(data["duration"]),
            is_active=data["isActive"],
            is_expired=data["isExpired"],
            remaining_time=int(remaining) if _is_number(remaining) else 0,
            saved_at=int(saved_at) if _is_number(saved_at) else None,
            schema_version=str(data.get("version", SCHEMA_VERSION)),
        )


@dataclass(frozen=True)
class RecordCheck:
    """Outcome of validating a stored record.

    ``overdue`` marks a record that is structurally sound but whose
    countdown should have finished while nobody was watching (system sleep
    or a forward clock jump); recovery forces it to expire.
    """

    valid: bool
    reason: str | None = None
    overdue: bool = False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_record(data: Any, now: int) -> RecordCheck:
    """Decide whether *data* (a decoded wire record) may be recovered at *now*."""
    if not isinstance(data, dict):
        return RecordCheck(False, "record is not a mapping")
    for field in ("startTime", "duration"):
        if not _is_number(data.get(field)) or data[field] <= 0:
            return RecordCheck(False, f"{field} missing or not a positive number")
    for field in ("isActive", "isExpired"):
        if not isinstance(data.get(field), bool):
            return RecordCheck(False, f"{field} missing or not a boolean")

    start_time = data["startTime"]
    duration = data["duration"]
    if start_time < now - MAX_RECORD_AGE_MS:
        return RecordCheck(False, "record is too old")
    if start_time > now + CLOCK_SKEW_TOLERANCE_MS:
        return RecordCheck(False, "record starts in the future")
    if not MIN_DURATION_MS <= duration <= MAX_DURATION_MS:
        return RecordCheck(False, "duration out of range")

    overdue = False
    saved_at = data.get("savedAt")
    if _is_number(saved_at) and saved_at < start_time - CLOCK_SKEW_TOLERANCE_MS:
        return RecordCheck(False, "record saved before it started")
    if _is_number(saved_at) and now - saved_at > STALE_SAVE_MS:
        expected_remaining = max(0, duration - (now - start_time))
        overdue = expected_remaining == 0 and not data["isExpired"]
    return RecordCheck(True, overdue=overdue)


class PersistentCountdown:
    """Countdown whose state survives page loads via a :class:`RecordStore`.

    Storage is a mirror, not a source of truth: read failures fall back to a
    fresh record, write failures leave memory authoritative until the next
    tick retries the write.
    """

    def __init__(
        self,
        store: RecordStore,
        scheduler: Scheduler | None = None,
        page: Page | None = None,
        *,
        duration: int = DEFAULT_DURATION_MS,
        storage_key: str = DEFAULT_STORAGE_KEY,
        tick_interval: float = 1.0,
        sync_interval: float = 30.0,
    ) -> None:
        if not isinstance(duration, int) or isinstance(duration, bool):
            raise TypeError(f"duration must be an integer, got {type(duration).__name__}")
        if not MIN_DURATION_MS <= duration <= MAX_DURATION_MS:
            raise ValueError(
                f"duration must be between {MIN_DURATION_MS} and {MAX_DURATION_MS} ms, "
                f"got {duration}"
            )
        self._store = store
        self._scheduler = scheduler
        self._page = page
        self._default_duration = duration
        self._storage_key = storage_key
        self._tick_interval = tick_interval
        self._sync_interval = sync_interval

        self._record: TimerRecord = TimerRecord.fresh(_now_ms(), duration)
        self._initialized = False
        self._tick_handle: Handle | None = None
        self._sync_handle: Handle | None = None
        self._visibility_attached = False
        self._on_tick: TickCallback | None = None
        self._on_expire: ExpireCallback | None = None

    # -- public interface ----------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def remaining_time(self) -> int:
        return self._record.remaining_time

    def on_tick(self, callback: TickCallback | None) -> None:
        self._on_tick = callback

    def on_expire(self, callback: ExpireCallback | None) -> None:
        self._on_expire = callback

    def initialize(self) -> None:
        """Recover the persisted record, or start a fresh full-duration one."""
        data = self.load_record()
        check = validate_record(data, _now_ms()) if data is not None else None
        if check is not None and check.valid:
            self._recover(data, check)
        else:
            if check is not None:
                logger.warning("timer.record_rejected", reason=check.reason)
            self._create_fresh()
        self._attach_visibility()
        self._initialized = True

    def start(self) -> None:
        """Begin ticking.  No-op for an expired or inactive record."""
        if self._record.is_expired or not self._record.is_active:
            return
        if self._scheduler is None:
            raise InvalidStateError("start() requires a scheduler")
        self.stop()
        self._tick_handle = self._scheduler.call_every(self._tick_interval, self.tick)
        self._sync_handle = self._scheduler.call_every(self._sync_interval, self._periodic_sync)
        self.tick()

    def stop(self) -> None:
        """Cancel periodic work; the record is left as is."""
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        if self._sync_handle is not None:
            self._sync_handle.cancel()
            self._sync_handle = None

    def is_running(self) -> bool:
        return self._tick_handle is not None

    def tick(self) -> None:
        self.calculate_remaining()
        self._save()
        if self._on_tick is not None:
            self._on_tick(self._record.remaining_time, self.get_state())
        if self._record.remaining_time <= 0:
            self.expire()

    def expire(self) -> None:
        """Mark the countdown finished.  Only the first call has any effect."""
        if self._record.is_expired:
            return
        self._record.is_expired = True
        self._record.is_active = False
        self._record.remaining_time = 0
        self._save()
        self.stop()
        logger.info("timer.expired", start_time=self._record.start_time)
        if self._on_expire is not None:
            self._on_expire()

    def reset(self) -> None:
        """Discard the current record in favour of a fresh full-duration one."""
        self.stop()
        self._create_fresh()

    def start_fresh(self) -> None:
        """Like :meth:`initialize`, but never recovers what the store holds."""
        self.reset()
        self._attach_visibility()
        self._initialized = True

    def release(self) -> None:
        """Stop and detach page listeners; the persisted record is kept."""
        self.stop()
        self._detach_visibility()
        self._initialized = False

    def destroy(self) -> None:
        """Release the countdown and forget the persisted record."""
        self.release()
        self.clear_stored()

    def get_state(self) -> TimerRecord:
        """Return a copy of the current record."""
        return dataclasses.replace(self._record)

    def is_active(self) -> bool:
        return self._record.is_active and not self._record.is_expired

    def is_expired(self) -> bool:
        return self._record.is_expired

    def calculate_remaining(self) -> int:
        """Re-derive remaining time from ``start_time`` and return it.

        A backward clock jump restarts the countdown at full duration; an
        absence long enough to cover the whole duration expires it.
        """
        record = self._record
        if record.is_expired:
            record.remaining_time = 0
            return 0

        now = _now_ms()
        elapsed = now - record.start_time

        if elapsed < 0:
            logger.warning("timer.clock_backward", elapsed=elapsed)
            record.start_time = now
            record.remaining_time = record.duration
            self._save()
            return record.remaining_time

        if elapsed > record.duration + SLEEP_BUFFER_MS:
            logger.warning("timer.clock_jump", elapsed=elapsed, duration=record.duration)
            record.remaining_time = 0
            self.expire()
            return 0

        record.remaining_time = max(0, record.duration - elapsed)
        if record.remaining_time == 0:
            self.expire()
        return record.remaining_time

    def check_drift(self) -> bool:
        """Correct the cached remaining time if it has drifted over 5 s.

        Returns True when a correction was made.
        """
        record = self._record
        expected = max(0, record.duration - (_now_ms() - record.start_time))
        discrepancy = abs(record.remaining_time - expected)
        if discrepancy <= MAX_DRIFT_MS:
            return False
        logger.warning("timer.drift_corrected", discrepancy=discrepancy)
        self.calculate_remaining()
        self._save()
        return True

    # -- persistence ---------------------------------------------------------

    def load_record(self) -> dict[str, Any] | None:
        """Return the decoded stored record, or None if absent or unreadable.

        Corrupt data is cleared from the store.
        """
        try:
            raw = self._store.read(self._storage_key)
        except StorageUnavailableError as exc:
            logger.warning("storage.read_failed", key=self._storage_key, error=str(exc))
            return None
        if raw is None:
            return None
        try:
            data = self._decode(raw)
        except CorruptRecordError as exc:
            logger.warning("storage.corrupt_record", key=self._storage_key, error=str(exc))
            self.clear_stored()
            return None
        return data

    def has_persisted_record(self) -> bool:
        """Whether storage holds a record that would be recovered now."""
        data = self.load_record()
        return data is not None and validate_record(data, _now_ms()).valid

    def peek(self) -> TimerRecord | None:
        """Return the stored record with remaining time brought up to date.

        Nothing is written, not even to clear a corrupt record, and no
        callbacks fire.
        """
        try:
            raw = self._store.read(self._storage_key)
            if raw is None:
                return None
            data = self._decode(raw)
        except (StorageUnavailableError, CorruptRecordError) as exc:
            logger.debug("timer.peek_failed", key=self._storage_key, error=str(exc))
            return None
        now = _now_ms()
        check = validate_record(data, now)
        if not check.valid:
            return None
        record = TimerRecord.from_dict(data)
        if record.is_expired:
            record.remaining_time = 0
            return record
        elapsed = max(0, now - record.start_time)
        record.remaining_time = max(0, record.duration - elapsed)
        if record.remaining_time == 0 or check.overdue:
            record.remaining_time = 0
            record.is_expired = True
            record.is_active = False
        return record

    def clear_stored(self) -> None:
        try:
            self._store.remove(self._storage_key)
        except StorageUnavailableError as exc:
            logger.warning("storage.remove_failed", key=self._storage_key, error=str(exc))

    # -- private helpers -----------------------------------------------------

    @staticmethod
    def _decode(raw: str) -> dict[str, Any]:
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise CorruptRecordError(f"invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise CorruptRecordError(f"expected an object, got {type(data).__name__}")
        return data

    def _save(self) -> None:
        """Mirror the record to the store.  Failure is logged, not raised."""
        self._record.saved_at = _now_ms()
        try:
            self._store.write(self._storage_key, json.dumps(self._record.to_dict()))
        except StorageUnavailableError as exc:
            logger.warning("storage.write_failed", key=self._storage_key, error=str(exc))

    def _create_fresh(self) -> None:
        self._record = TimerRecord.fresh(_now_ms(), self._default_duration)
        logger.info("timer.created", duration=self._default_duration)
        self._save()

    def _recover(self, data: dict[str, Any], check: RecordCheck) -> None:
        try:
            self._record = TimerRecord.from_dict(data)
            if self._record.is_expired:
                self._record.is_active = False
            self.calculate_remaining()

            elapsed = _now_ms() - self._record.start_time
            if self._record.is_active and not self._record.is_expired and (
                elapsed >= self._record.duration or check.overdue
            ):
                logger.info("timer.expired_during_absence", elapsed=elapsed)
                self.expire()

            self._save()
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("timer.recovery_failed", error=str(exc))
            self._create_fresh()
            return
        logger.info(
            "timer.recovered",
            active=self._record.is_active,
            expired=self._record.is_expired,
            remaining=self._record.remaining_time,
        )

    def _periodic_sync(self) -> None:
        if self.is_active():
            self.check_drift()

    def _attach_visibility(self) -> None:
        if self._visibility_attached:
            return
        if self._page is None:
            logger.debug("timer.visibility_unavailable")
            return
        self._page.add_listener("visibilitychange", self._handle_visibility_change)
        self._visibility_attached = True

    def _detach_visibility(self) -> None:
        if self._visibility_attached and self._page is not None:
            self._page.remove_listener("visibilitychange", self._handle_visibility_change)
        self._visibility_attached = False

    def _handle_visibility_change(self) -> None:
        # Timers in a hidden page are throttled or frozen; resync on return.
        if self._page is None or self._page.hidden or not self.is_active():
            return
        if self.check_drift() and self._on_tick is not None:
            self._on_tick(self._record.remaining_time, self.get_state())
