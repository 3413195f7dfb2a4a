"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .clock import format_minutes, parse_clock_time, parse_duration
from .exceptions import (
    InvalidBookingError,
    NonWorkingDayError,
    RecordNotFoundError,
    RecordStoreError,
    SchedulingConflictError,
    SchedulingError,
)
from .models import (
    AppointmentDraft,
    AppointmentRecord,
    BlockedPeriod,
    CandidateSlot,
    ClockInterval,
    DaySnapshot,
    OccupiedInterval,
    WorkSchedule,
)
from .slot_calculator import SlotCalculator, filter_available, generate_slots, is_working_day, overlaps

__all__ = [
    "AppointmentDraft",
    "AppointmentRecord",
    "BlockedPeriod",
    "CandidateSlot",
    "ClockInterval",
    "DaySnapshot",
    "InvalidBookingError",
    "NonWorkingDayError",
    "OccupiedInterval",
    "RecordNotFoundError",
    "RecordStoreError",
    "SchedulingConflictError",
    "SchedulingError",
    "SlotCalculator",
    "WorkSchedule",
    "filter_available",
    "format_minutes",
    "generate_slots",
    "is_working_day",
    "overlaps",
    "parse_clock_time",
    "parse_duration",
]
