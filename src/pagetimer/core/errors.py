"""Error taxonomy.

Clock anomalies are deliberately absent: they are resolved inline by the
remaining-time computation and never surface as exceptions.
"""


class PageTimerError(Exception):
    """Base class for all pagetimer errors."""


class StorageUnavailableError(PageTimerError):
    """Raised when the persistent store is missing or failing."""


class CorruptRecordError(PageTimerError):
    """Raised when a stored record cannot be parsed."""


class InvalidStateError(PageTimerError):
    """Raised when an operation is not valid in the countdown's current state."""


class ConstructionError(PageTimerError):
    """Raised when the hosting page is not ready to accept the coordinator."""
