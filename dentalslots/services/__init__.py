"""
Service layer helpers that orchestrate record stores and domain logic.
"""

from .booking import (
    AvailabilityResult,
    BookingRequest,
    BookingResult,
    BookingService,
    DayAvailability,
    RecordStoreProtocol,
)

__all__ = [
    "AvailabilityResult",
    "BookingRequest",
    "BookingResult",
    "BookingService",
    "DayAvailability",
    "RecordStoreProtocol",
]
