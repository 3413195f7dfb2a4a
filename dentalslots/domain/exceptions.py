"""
Domain-specific exception hierarchy for the scheduling core.
"""

from __future__ import annotations

from typing import List, Sequence


class SchedulingError(Exception):
    """Base class for all application-level errors."""


class SchedulingConflictError(SchedulingError):
    """
    Raised when a requested interval is no longer free at write time.

    The caller should re-fetch availability instead of resubmitting blindly.
    """

    def __init__(self, message: str, conflicts: Sequence[object] = ()) -> None:
        super().__init__(message)
        self.conflicts: List[object] = list(conflicts)


class NonWorkingDayError(SchedulingError):
    """Raised when strict working-day enforcement was requested and the date is off."""


class InvalidBookingError(SchedulingError, ValueError):
    """Raised when a booking request cannot be parsed or is inconsistent."""


class RecordNotFoundError(SchedulingError, LookupError):
    """Raised when a dentist, service or appointment does not exist in the store."""


class RecordStoreError(SchedulingError):
    """Raised when the record store fails for reasons other than a booking conflict."""
