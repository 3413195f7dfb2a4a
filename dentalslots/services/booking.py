"""
Application services for querying availability and booking appointments.

The service coordinates reads and writes through a record store adapter and
delegates the slot arithmetic to the domain-level ``SlotCalculator``. Writes
never trust a previously displayed slot list: the store runs the service's
validator against a fresh snapshot inside the same transaction as the insert.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, List, Optional, Protocol

from ..config import AppConfig
from ..domain.clock import parse_clock_time
from ..domain.exceptions import InvalidBookingError, NonWorkingDayError
from ..domain.models import (
    WEEKDAYS,
    AppointmentDraft,
    AppointmentRecord,
    CandidateSlot,
    ClockInterval,
    DaySnapshot,
    Identifier,
    WorkSchedule,
)
from ..domain.slot_calculator import SlotCalculator

logger = logging.getLogger(__name__)

SnapshotValidator = Callable[[DaySnapshot], None]

CANCELLED = "cancelled"


class RecordStoreProtocol(Protocol):
    """Protocol describing the record store behaviour needed by the service."""

    def get_work_schedule(self, dentist_id: Identifier) -> WorkSchedule:
        """Return the dentist's weekly working-day and daily working-hour range."""

    def get_service_duration(self, service_id: Identifier) -> int | str | None:
        """Return the raw duration stored on a service."""

    def get_appointment(self, appointment_id: Identifier) -> AppointmentRecord:
        """Return one appointment."""

    def get_day_snapshot(
        self,
        dentist_id: Identifier,
        on_date: date,
        *,
        exclude_appointment_id: Identifier | None = None,
    ) -> DaySnapshot:
        """Return the appointments and blocked periods of a dentist on a date."""

    def create_appointment(
        self,
        draft: AppointmentDraft,
        validator: SnapshotValidator,
    ) -> AppointmentRecord:
        """Validate against a fresh snapshot and insert, as one atomic unit."""

    def move_appointment(
        self,
        appointment_id: Identifier,
        on_date: date,
        interval: ClockInterval,
        validator: SnapshotValidator,
    ) -> AppointmentRecord:
        """Validate against a fresh snapshot (without the moved appointment) and update."""

    def set_status(self, appointment_id: Identifier, status: str) -> AppointmentRecord:
        """Change the status of one appointment."""


@dataclass
class BookingRequest:
    """A booking as submitted by a caller, times still as raw strings."""
    dentist_id: Identifier
    date: date
    time_from: str
    time_to: str
    patient_id: Optional[Identifier] = None
    temp_patient_id: Optional[Identifier] = None
    service_id: Optional[Identifier] = None
    note: Optional[str] = None
    status: Optional[str] = None
    require_working_day: bool = False


@dataclass
class AvailabilityResult:
    """Slots of one dentist on one date."""
    dentist_id: Identifier
    date: date
    duration_minutes: int
    is_working_day: bool
    candidates: List[CandidateSlot] = field(default_factory=list)
    available: List[CandidateSlot] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class DayAvailability:
    """Free-slot count of one date in a calendar view."""
    date: date
    is_working_day: bool
    open_slots_count: int

    @property
    def has_slots(self) -> bool:
        return self.open_slots_count > 0


@dataclass
class BookingResult:
    """A persisted appointment plus any soft warnings raised on the way."""
    appointment: AppointmentRecord
    warnings: List[str] = field(default_factory=list)


class BookingService:
    """
    Orchestrates record-store access and slot calculation.

    Works against any ``RecordStoreProtocol``: ``SqlRecordStore`` in
    production, ``InMemoryRecordStore`` in tests and mock mode.
    """

    def __init__(
        self,
        store: RecordStoreProtocol,
        calculator: SlotCalculator | None = None,
        *,
        enforce_slot_grid: bool = False,
        calendar_horizon_days: int = 60,
    ) -> None:
        self._store = store
        self._calculator = calculator or SlotCalculator()
        self._enforce_slot_grid = enforce_slot_grid
        self._calendar_horizon_days = calendar_horizon_days

    @classmethod
    def from_config(cls, store: RecordStoreProtocol, config: AppConfig) -> "BookingService":
        """Build a service whose calculator and policies follow ``config``."""
        scheduling = config.scheduling
        return cls(
            store,
            scheduling.build_calculator(),
            enforce_slot_grid=scheduling.enforce_slot_grid,
            calendar_horizon_days=scheduling.calendar_horizon_days,
        )

    @property
    def calculator(self) -> SlotCalculator:
        return self._calculator

    def resolve_duration(
        self,
        schedule: WorkSchedule,
        *,
        service_id: Identifier | None = None,
        duration: object = None,
    ) -> int:
        """
        Resolve the slot length for a query.

        Order: explicit duration, the service's duration, the dentist's
        default appointment duration, then the configured default.
        """
        service_duration = None
        if service_id is not None:
            service_duration = self._store.get_service_duration(service_id)

        return self._calculator.resolve_duration(
            duration,
            service_duration,
            schedule.default_duration,
        )

    def get_available_slots(
        self,
        dentist_id: Identifier,
        on_date: date,
        *,
        service_id: Identifier | None = None,
        duration: object = None,
    ) -> AvailabilityResult:
        """
        Compute the bookable slots of a dentist on a date.

        The result is a snapshot for display only; booking re-checks it.
        """
        schedule = self._store.get_work_schedule(dentist_id)
        duration_minutes = self.resolve_duration(schedule, service_id=service_id, duration=duration)

        warnings: List[str] = []
        working = self._check_working_day(on_date, schedule, warnings)

        candidates = self._calculator.generate_slots(
            schedule.time_from,
            schedule.time_to,
            duration_minutes,
        )
        if not candidates:
            warnings.append(
                f"No slots fit working hours {schedule.time_from!r} - {schedule.time_to!r} "
                f"with {duration_minutes} minute appointments"
            )

        snapshot = self._store.get_day_snapshot(dentist_id, on_date)
        occupied = self._calculator.build_occupied_intervals(snapshot)
        available = self._calculator.filter_available(candidates, occupied)

        return AvailabilityResult(
            dentist_id=dentist_id,
            date=on_date,
            duration_minutes=duration_minutes,
            is_working_day=working,
            candidates=candidates,
            available=available,
            warnings=warnings,
        )

    def find_open_days(
        self,
        dentist_id: Identifier,
        start_date: date,
        end_date: date,
        *,
        service_id: Identifier | None = None,
        duration: object = None,
    ) -> List[DayAvailability]:
        """
        Count free slots per date over a range.

        The range is inclusive and capped at the configured horizon.
        """
        horizon_end = start_date + timedelta(days=self._calendar_horizon_days)
        end_date = min(max(end_date, start_date), horizon_end)

        schedule = self._store.get_work_schedule(dentist_id)
        duration_minutes = self.resolve_duration(schedule, service_id=service_id, duration=duration)
        candidates = self._calculator.generate_slots(
            schedule.time_from,
            schedule.time_to,
            duration_minutes,
        )

        days: List[DayAvailability] = []
        current = start_date

        while current <= end_date:
            working = self._calculator.is_working_day(current, schedule)
            count = 0

            if working and candidates:
                snapshot = self._store.get_day_snapshot(dentist_id, current)
                occupied = self._calculator.build_occupied_intervals(snapshot)
                count = len(self._calculator.filter_available(candidates, occupied))

            days.append(DayAvailability(date=current, is_working_day=working, open_slots_count=count))
            current += timedelta(days=1)

        return days

    def book_appointment(self, request: BookingRequest) -> BookingResult:
        """
        Book an appointment after an authoritative check at write time.

        Raises:
            InvalidBookingError: If the request is malformed
            NonWorkingDayError: If ``require_working_day`` is set and the date is off
            SchedulingConflictError: If the interval is no longer free
        """
        interval = self._parse_interval(request.time_from, request.time_to)
        status = self._resolve_status(request)

        schedule = self._store.get_work_schedule(request.dentist_id)
        duration_minutes = self.resolve_duration(schedule, service_id=request.service_id)

        warnings: List[str] = []
        self._check_working_day(
            request.date,
            schedule,
            warnings,
            strict=request.require_working_day,
        )

        draft = AppointmentDraft(
            dentist_id=request.dentist_id,
            date=request.date,
            interval=interval,
            status=status,
            patient_id=request.patient_id,
            temp_patient_id=request.temp_patient_id,
            service_id=request.service_id,
            note=request.note,
        )

        record = self._store.create_appointment(
            draft,
            self._build_validator(interval, schedule, duration_minutes),
        )

        logger.info(
            "Booked appointment %s for dentist %s on %s %s",
            record.appointment_id,
            record.dentist_id,
            record.date,
            interval,
        )
        return BookingResult(appointment=record, warnings=warnings)

    def reschedule_appointment(
        self,
        appointment_id: Identifier,
        on_date: date,
        time_from: str,
        time_to: str,
        *,
        require_working_day: bool = False,
    ) -> BookingResult:
        """
        Move an existing appointment, re-checking the new interval at write time.

        The appointment being moved never conflicts with itself.
        """
        interval = self._parse_interval(time_from, time_to)
        current = self._store.get_appointment(appointment_id)

        if (current.status or "").lower() == CANCELLED:
            raise InvalidBookingError(f"Appointment {appointment_id} is cancelled and cannot be rescheduled")

        schedule = self._store.get_work_schedule(current.dentist_id)
        duration_minutes = self.resolve_duration(schedule, service_id=current.service_id)

        warnings: List[str] = []
        self._check_working_day(on_date, schedule, warnings, strict=require_working_day)

        record = self._store.move_appointment(
            appointment_id,
            on_date,
            interval,
            self._build_validator(interval, schedule, duration_minutes),
        )

        logger.info(
            "Rescheduled appointment %s to %s %s",
            record.appointment_id,
            record.date,
            interval,
        )
        return BookingResult(appointment=record, warnings=warnings)

    def cancel_appointment(self, appointment_id: Identifier) -> AppointmentRecord:
        """Cancel an appointment, freeing its interval."""
        record = self._store.set_status(appointment_id, CANCELLED)
        logger.info("Cancelled appointment %s", appointment_id)
        return record

    def _build_validator(
        self,
        interval: ClockInterval,
        schedule: WorkSchedule,
        duration_minutes: int,
    ) -> SnapshotValidator:
        def validate(snapshot: DaySnapshot) -> None:
            self._calculator.validate_booking(
                interval,
                snapshot,
                schedule=schedule,
                duration=duration_minutes,
                enforce_slot_grid=self._enforce_slot_grid,
            )

        return validate

    def _check_working_day(
        self,
        on_date: date,
        schedule: WorkSchedule,
        warnings: List[str],
        *,
        strict: bool = False,
    ) -> bool:
        if self._calculator.is_working_day(on_date, schedule):
            return True

        message = (
            f"{on_date.isoformat()} ({WEEKDAYS[on_date.weekday()]}) is outside working days "
            f"{schedule.work_day_from or '?'} - {schedule.work_day_to or '?'}"
        )
        if strict:
            raise NonWorkingDayError(message)

        logger.warning(message)
        warnings.append(message)
        return False

    def _resolve_status(self, request: BookingRequest) -> str:
        """Check the patient reference and pick the initial status."""
        if request.patient_id and request.temp_patient_id:
            raise InvalidBookingError("Cannot specify both patient_id and temp_patient_id")
        if not request.patient_id and not request.temp_patient_id:
            raise InvalidBookingError("Either patient_id or temp_patient_id is required")

        if request.status is None:
            return "pending" if request.temp_patient_id else "confirmed"

        status = request.status.strip().lower()
        if status not in self._calculator.occupying_statuses:
            raise InvalidBookingError(f"Cannot create an appointment with status {request.status!r}")
        return status

    @staticmethod
    def _parse_interval(time_from: str, time_to: str) -> ClockInterval:
        """Parse the requested times once, at the boundary."""
        if parse_clock_time(time_from) is None or parse_clock_time(time_to) is None:
            raise InvalidBookingError(f"Cannot parse requested time {time_from!r} - {time_to!r}")

        interval = ClockInterval.from_strings(time_from, time_to)
        if interval is None:
            raise InvalidBookingError(f"Requested time {time_from!r} - {time_to!r} has no length")
        return interval
