"""
Core business logic for calculating bookable appointment slots.

This is the heart of the application - pure domain logic without any
external dependencies (no database, no I/O). Callers fetch the work schedule
and the day's appointments and blocks, then hand them in as values.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List, Sequence

from .clock import DEFAULT_DURATION_MINUTES, MINUTES_PER_DAY, parse_clock_time, parse_duration
from .exceptions import SchedulingConflictError
from .models import (
    WEEKDAYS,
    CandidateSlot,
    ClockInterval,
    DaySnapshot,
    OccupiedInterval,
    WorkSchedule,
    weekday_index,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_SLOTS = 50
DEFAULT_OCCUPYING_STATUSES = ("pending", "confirmed", "checkedin", "completed")


def overlaps(first: ClockInterval, second: ClockInterval) -> bool:
    """Half-open overlap: ``[s1, e1)`` and ``[s2, e2)`` overlap iff s1 < e2 and e1 > s2."""
    return first.start < second.end and first.end > second.start


class SlotCalculator:
    """
    Calculates bookable slots for one dentist on one date.

    Algorithm:
    1. Parse the working-hour window into minutes (wrapping past midnight)
    2. Step through the window in service-duration increments
    3. Merge appointments and blocked periods into occupied intervals
    4. Drop every candidate that overlaps an occupied interval
    """

    def __init__(
        self,
        *,
        default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
        max_slots: int = DEFAULT_MAX_SLOTS,
        fail_open_on_unknown_weekday: bool = True,
        occupying_statuses: Iterable[str] = DEFAULT_OCCUPYING_STATUSES,
    ):
        self.default_duration_minutes = default_duration_minutes
        self.max_slots = max_slots
        self.fail_open_on_unknown_weekday = fail_open_on_unknown_weekday
        self.occupying_statuses = frozenset(status.lower() for status in occupying_statuses)

    def resolve_duration(self, *values: object) -> int:
        """
        Pick the first usable duration among ``values``.

        ``None`` and unparseable values are skipped; if nothing is usable the
        configured default applies.
        """
        for value in values:
            if value is None:
                continue
            minutes = parse_duration(value, default=0)
            if minutes > 0:
                return minutes
        return self.default_duration_minutes

    def generate_slots(
        self,
        time_from: object,
        time_to: object,
        duration: object,
    ) -> List[CandidateSlot]:
        """
        Generate every fixed-duration slot inside a working-hour window.

        Args:
            time_from: Start of the window (free-form clock string)
            time_to: End of the window; ``end <= start`` spans into the next day
            duration: Slot length in minutes, or a descriptive string like "1 hour"

        Returns:
            Ordered list of CandidateSlot objects. Empty when a boundary cannot
            be parsed or the duration is not positive. Never raises.
        """
        start = parse_clock_time(time_from)
        end = parse_clock_time(time_to)

        if start is None or end is None:
            logger.debug("Cannot parse working hours %r - %r", time_from, time_to)
            return []

        duration_minutes = parse_duration(duration, default=self.default_duration_minutes)
        if duration_minutes <= 0:
            logger.warning("Ignoring non-positive slot duration %r", duration)
            return []

        if end <= start:
            end += MINUTES_PER_DAY

        slots: List[CandidateSlot] = []
        current = start

        while current + duration_minutes <= end:
            if len(slots) >= self.max_slots:
                logger.warning(
                    "Slot limit of %d reached for %r - %r, remaining window dropped",
                    self.max_slots,
                    time_from,
                    time_to,
                )
                break

            slots.append(CandidateSlot(start=current, end=current + duration_minutes))
            current += duration_minutes

        return slots

    def is_working_day(self, on_date: date, schedule: WorkSchedule) -> bool:
        """
        Check whether ``on_date`` falls inside the dentist's working-day range.

        The range is inclusive and may wrap across the week boundary
        (e.g. Saturday to Monday). Unknown weekday names resolve to the
        configured fail-open/fail-closed policy and are logged.
        """
        if not schedule.has_day_range():
            logger.warning("Work schedule has no working-day range: %r", schedule)
            return False

        from_index = weekday_index(schedule.work_day_from)
        to_index = weekday_index(schedule.work_day_to)
        target_index = on_date.weekday()

        if from_index is None or to_index is None:
            logger.warning(
                "Unknown weekday name in working days %r - %r; treating %s as %s",
                schedule.work_day_from,
                schedule.work_day_to,
                WEEKDAYS[target_index],
                "working" if self.fail_open_on_unknown_weekday else "non-working",
            )
            return self.fail_open_on_unknown_weekday

        if from_index <= to_index:
            return from_index <= target_index <= to_index

        return target_index >= from_index or target_index <= to_index

    def build_occupied_intervals(self, snapshot: DaySnapshot) -> List[OccupiedInterval]:
        """
        Merge a day's appointments and blocked periods into occupied intervals.

        Appointments whose status does not occupy time (e.g. cancelled) are
        left out. Appointments with unusable times are skipped and logged.
        """
        occupied: List[OccupiedInterval] = []

        for appointment in snapshot.appointments:
            if (appointment.status or "").lower() not in self.occupying_statuses:
                continue

            interval = appointment.interval()
            if interval is None:
                logger.warning(
                    "Skipping appointment %s with unusable times %r - %r",
                    appointment.appointment_id,
                    appointment.time_from,
                    appointment.time_to,
                )
                continue

            occupied.append(
                OccupiedInterval(
                    start=interval.start,
                    end=interval.end,
                    source="appointment",
                    reference=appointment.appointment_id,
                )
            )

        for block in snapshot.blocked_periods:
            interval = block.interval()
            if interval is None:
                logger.warning(
                    "Skipping blocked period %s with unusable times %r - %r",
                    block.block_id,
                    block.time_from,
                    block.time_to,
                )
                continue

            occupied.append(
                OccupiedInterval(
                    start=interval.start,
                    end=interval.end,
                    source="block",
                    reference=block.block_id,
                )
            )

        return occupied

    def find_conflicts(
        self,
        interval: ClockInterval,
        occupied: Sequence[OccupiedInterval],
    ) -> List[OccupiedInterval]:
        """
        Return every occupied interval that overlaps ``interval`` on the day clock.

        Both sides are compared modulo 24 hours, so the tail of an
        appointment running past midnight blocks the early-morning slots.
        """
        return [busy for busy in occupied if interval.overlaps_on_day_clock(busy)]

    def filter_available(
        self,
        candidates: Sequence[CandidateSlot],
        occupied: Sequence[OccupiedInterval],
    ) -> List[CandidateSlot]:
        """
        Keep only the candidates that overlap no occupied interval.

        O(candidates x occupied); both are bounded by a single day.
        """
        return [slot for slot in candidates if not self.find_conflicts(slot, occupied)]

    def available_slots(
        self,
        schedule: WorkSchedule,
        duration: object,
        snapshot: DaySnapshot,
    ) -> List[CandidateSlot]:
        """Generate the schedule's slots and drop those taken in ``snapshot``."""
        candidates = self.generate_slots(schedule.time_from, schedule.time_to, duration)
        return self.filter_available(candidates, self.build_occupied_intervals(snapshot))

    def validate_booking(
        self,
        requested: ClockInterval,
        snapshot: DaySnapshot,
        *,
        schedule: WorkSchedule | None = None,
        duration: object = None,
        enforce_slot_grid: bool = False,
    ) -> None:
        """
        Verify that ``requested`` is still free against a fresh snapshot.

        With ``enforce_slot_grid`` the exact interval must be one of the
        generated and filtered slots; otherwise only the overlap predicate
        decides.

        Raises:
            SchedulingConflictError: If the interval is not free
        """
        occupied = self.build_occupied_intervals(snapshot)
        conflicts = self.find_conflicts(requested, occupied)

        if conflicts:
            logger.info(
                "Requested %s on %s conflicts with %d occupied interval(s)",
                requested,
                snapshot.date,
                len(conflicts),
            )
            raise SchedulingConflictError(
                f"{snapshot.date} {requested} is no longer available",
                conflicts=conflicts,
            )

        if not enforce_slot_grid:
            return

        if schedule is None:
            raise ValueError("A work schedule is required to enforce the slot grid")

        requested_key = _day_clock_key(requested)
        candidates = self.generate_slots(schedule.time_from, schedule.time_to, duration)
        free = self.filter_available(candidates, occupied)

        if not any(_day_clock_key(slot) == requested_key for slot in free):
            raise SchedulingConflictError(
                f"{snapshot.date} {requested} is not a bookable slot"
            )


def _day_clock_key(interval: ClockInterval) -> tuple[int, int]:
    folded = interval.on_day_clock()
    return folded.start, folded.end


_default_calculator = SlotCalculator()


def generate_slots(time_from: object, time_to: object, duration: object) -> List[CandidateSlot]:
    """Generate slots with default settings. See ``SlotCalculator.generate_slots``."""
    return _default_calculator.generate_slots(time_from, time_to, duration)


def filter_available(
    candidates: Sequence[CandidateSlot],
    occupied: Sequence[OccupiedInterval],
) -> List[CandidateSlot]:
    """Filter slots with default settings. See ``SlotCalculator.filter_available``."""
    return _default_calculator.filter_available(candidates, occupied)


def is_working_day(on_date: date, schedule: WorkSchedule) -> bool:
    """Working-day check with the default fail-open policy."""
    return _default_calculator.is_working_day(on_date, schedule)
