"""
Domain models for clock intervals, work schedules and appointment records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple, Union

from .clock import MINUTES_PER_DAY, format_minutes, parse_clock_time

WEEKDAYS = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

WHOLE_DAY_START = "00:00"
WHOLE_DAY_END = "23:59"

Identifier = Union[int, str]


def weekday_index(name: object) -> int | None:
    """
    Resolve a weekday name to its Monday-first index (Monday=0, Sunday=6).

    Matching is case-insensitive and accepts three-letter abbreviations.
    Returns None for anything that is not a weekday name.
    """
    if not isinstance(name, str):
        return None

    key = name.strip().lower()
    if len(key) < 3:
        return None

    for index, weekday in enumerate(WEEKDAYS):
        if weekday.lower() == key or weekday.lower()[:3] == key:
            return index
    return None


@dataclass(frozen=True)
class ClockInterval:
    """
    Half-open interval ``[start, end)`` in minutes since midnight.

    Invariant: start must be before end. ``end`` may pass 1440 when the
    interval runs past midnight.
    """
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0:
            raise ValueError(f"Start minute {self.start} must not be negative")
        if self.start >= self.end:
            raise ValueError(f"Start minute {self.start} must be before end minute {self.end}")

    @classmethod
    def from_strings(cls, time_from: object, time_to: object) -> "ClockInterval | None":
        """
        Build an interval from two clock strings.

        An end earlier than the start is read as the next day. Returns None
        when either bound is unparseable or both bounds are equal.
        """
        start = parse_clock_time(time_from)
        end = parse_clock_time(time_to)

        if start is None or end is None or start == end:
            return None

        if end < start:
            end += MINUTES_PER_DAY

        return cls(start=start, end=end)

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return self.end - self.start

    def overlaps(self, other: "ClockInterval") -> bool:
        """Check if this interval overlaps with another (adjacent is not overlapping)."""
        return self.start < other.end and self.end > other.start

    def on_day_clock(self) -> "ClockInterval":
        """Return the same interval with its start folded into the first 24 hours."""
        if self.start < MINUTES_PER_DAY:
            return ClockInterval(start=self.start, end=self.end)

        shift = (self.start // MINUTES_PER_DAY) * MINUTES_PER_DAY
        return ClockInterval(start=self.start - shift, end=self.end - shift)

    def day_clock_pieces(self) -> List[Tuple[int, int]]:
        """
        Split the interval into half-open ranges inside ``[0, 1440)``.

        A part running past midnight continues at 00:00; an interval of a
        full day or longer covers the whole clock.
        """
        if self.duration_minutes() >= MINUTES_PER_DAY:
            return [(0, MINUTES_PER_DAY)]

        folded = self.on_day_clock()
        if folded.end <= MINUTES_PER_DAY:
            return [(folded.start, folded.end)]

        return [(folded.start, MINUTES_PER_DAY), (0, folded.end - MINUTES_PER_DAY)]

    def overlaps_on_day_clock(self, other: "ClockInterval") -> bool:
        """Overlap modulo 24 hours: 23:30 - 00:30 overlaps 00:00 - 01:00."""
        return any(
            start < other_end and end > other_start
            for start, end in self.day_clock_pieces()
            for other_start, other_end in other.day_clock_pieces()
        )

    @property
    def time_from(self) -> str:
        return format_minutes(self.start)

    @property
    def time_to(self) -> str:
        return format_minutes(self.end)

    def __str__(self) -> str:
        return f"{self.time_from} - {self.time_to}"


@dataclass(frozen=True)
class CandidateSlot(ClockInterval):
    """One fixed-duration bookable interval generated from a working-hour window."""

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: HH:MM – HH:MM (N min)
        """
        return f"{self.time_from} – {self.time_to} ({self.duration_minutes()} min)"


@dataclass(frozen=True)
class OccupiedInterval(ClockInterval):
    """A time range already claimed by an appointment or an explicit block."""
    source: str = "appointment"
    reference: Optional[Identifier] = None


@dataclass(frozen=True)
class WorkSchedule:
    """
    Recurring weekly availability window of one dentist.

    Values are kept as stored on the dentist profile; parsing happens in the
    slot calculator.
    """
    work_day_from: Optional[str]
    work_day_to: Optional[str]
    time_from: Optional[str]
    time_to: Optional[str]
    default_duration: Union[int, str, None] = None

    def has_day_range(self) -> bool:
        """Whether both ends of the working-day range are filled in."""
        return bool(self.work_day_from) and bool(self.work_day_to)


@dataclass
class AppointmentRecord:
    """An appointment as read from the record store."""
    appointment_id: Identifier
    dentist_id: Identifier
    date: date
    time_from: str
    time_to: str
    status: str = "confirmed"
    patient_id: Optional[Identifier] = None
    temp_patient_id: Optional[Identifier] = None
    service_id: Optional[Identifier] = None
    note: Optional[str] = None

    def interval(self) -> ClockInterval | None:
        """Parsed interval, or None when the stored times are unusable."""
        return ClockInterval.from_strings(self.time_from, self.time_to)


@dataclass
class BlockedPeriod:
    """
    An explicit block on a dentist's calendar.

    A block without a complete time range covers the whole day.
    """
    dentist_id: Identifier
    date: date
    time_from: Optional[str] = None
    time_to: Optional[str] = None
    reason: Optional[str] = None
    block_id: Optional[Identifier] = None

    @property
    def is_whole_day(self) -> bool:
        return not (self.time_from and self.time_to)

    def interval(self) -> ClockInterval | None:
        if self.is_whole_day:
            return ClockInterval.from_strings(WHOLE_DAY_START, WHOLE_DAY_END)
        return ClockInterval.from_strings(self.time_from, self.time_to)


@dataclass
class DaySnapshot:
    """Appointments and blocked periods read for one dentist and date."""
    dentist_id: Identifier
    date: date
    appointments: List[AppointmentRecord] = field(default_factory=list)
    blocked_periods: List[BlockedPeriod] = field(default_factory=list)


@dataclass(frozen=True)
class AppointmentDraft:
    """A parsed, not yet persisted appointment."""
    dentist_id: Identifier
    date: date
    interval: ClockInterval
    status: str
    patient_id: Optional[Identifier] = None
    temp_patient_id: Optional[Identifier] = None
    service_id: Optional[Identifier] = None
    note: Optional[str] = None

    @property
    def time_from(self) -> str:
        return self.interval.time_from

    @property
    def time_to(self) -> str:
        return self.interval.time_to
