"""
In-memory record store for tests and mock mode.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..domain.exceptions import RecordNotFoundError
from ..domain.models import (
    AppointmentDraft,
    AppointmentRecord,
    BlockedPeriod,
    ClockInterval,
    DaySnapshot,
    Identifier,
    WorkSchedule,
)
from .fixtures import (
    appointment_from_record,
    blocked_period_from_record,
    load_fixture,
    schedule_from_record,
)

logger = logging.getLogger(__name__)

MOCK_DATA_FILE = Path(__file__).parent / "mock_clinic_data.json"


class InMemoryRecordStore:
    """
    Record store that keeps dentists, services, appointments and blocks in memory.

    Check-and-insert runs under a per-dentist lock, so concurrent bookings for
    the same dentist are serialized the same way the SQL store serializes them
    with row locks.
    """

    def __init__(
        self,
        schedules: Optional[Dict[Identifier, WorkSchedule]] = None,
        service_durations: Optional[Dict[Identifier, Any]] = None,
        appointments: Iterable[AppointmentRecord] = (),
        blocked_periods: Iterable[BlockedPeriod] = (),
    ):
        self._schedules = {str(key): value for key, value in (schedules or {}).items()}
        self._service_durations = {str(key): value for key, value in (service_durations or {}).items()}
        self._appointments: Dict[str, AppointmentRecord] = {
            str(record.appointment_id): record for record in appointments
        }
        self._blocked_periods: List[BlockedPeriod] = list(blocked_periods)

        self._registry_lock = threading.Lock()
        self._dentist_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._next_id = 1 + max(
            (int(key) for key in self._appointments if key.isdigit()),
            default=0,
        )

    @classmethod
    def from_fixture(cls, data: Dict[str, list]) -> "InMemoryRecordStore":
        """Build a store from fixture sections (see ``fixtures.load_fixture``)."""
        return cls(
            schedules={
                record["dentist_id"]: schedule_from_record(record)
                for record in data.get("dentists", [])
            },
            service_durations={
                record["service_id"]: record.get("duration")
                for record in data.get("services", [])
            },
            appointments=[appointment_from_record(record) for record in data.get("appointments", [])],
            blocked_periods=[blocked_period_from_record(record) for record in data.get("blocked_dates", [])],
        )

    @classmethod
    def from_json_file(cls, path: Path | None = None) -> "InMemoryRecordStore":
        """Load mock clinic data from a JSON fixture (the bundled one by default)."""
        return cls.from_fixture(load_fixture(path or MOCK_DATA_FILE))

    def get_work_schedule(self, dentist_id: Identifier) -> WorkSchedule:
        try:
            return self._schedules[str(dentist_id)]
        except KeyError:
            raise RecordNotFoundError(f"Dentist {dentist_id} not found") from None

    def get_service_duration(self, service_id: Identifier) -> int | str | None:
        try:
            return self._service_durations[str(service_id)]
        except KeyError:
            raise RecordNotFoundError(f"Service {service_id} not found") from None

    def get_appointment(self, appointment_id: Identifier) -> AppointmentRecord:
        try:
            return self._appointments[str(appointment_id)]
        except KeyError:
            raise RecordNotFoundError(f"Appointment {appointment_id} not found") from None

    def get_day_snapshot(
        self,
        dentist_id: Identifier,
        on_date: date,
        *,
        exclude_appointment_id: Identifier | None = None,
    ) -> DaySnapshot:
        excluded = None if exclude_appointment_id is None else str(exclude_appointment_id)

        # Other dentists' bookings may insert while we read.
        with self._registry_lock:
            all_appointments = list(self._appointments.items())
            all_blocks = list(self._blocked_periods)

        appointments = [
            record
            for key, record in all_appointments
            if str(record.dentist_id) == str(dentist_id)
            and record.date == on_date
            and key != excluded
        ]
        blocked = [
            block
            for block in all_blocks
            if str(block.dentist_id) == str(dentist_id) and block.date == on_date
        ]

        return DaySnapshot(
            dentist_id=dentist_id,
            date=on_date,
            appointments=appointments,
            blocked_periods=blocked,
        )

    def create_appointment(self, draft: AppointmentDraft, validator) -> AppointmentRecord:
        self.get_work_schedule(draft.dentist_id)

        with self._lock_for(draft.dentist_id):
            validator(self.get_day_snapshot(draft.dentist_id, draft.date))

            record = AppointmentRecord(
                appointment_id=self._allocate_id(),
                dentist_id=draft.dentist_id,
                date=draft.date,
                time_from=draft.time_from,
                time_to=draft.time_to,
                status=draft.status,
                patient_id=draft.patient_id,
                temp_patient_id=draft.temp_patient_id,
                service_id=draft.service_id,
                note=draft.note,
            )
            self._put(record)

        return record

    def move_appointment(
        self,
        appointment_id: Identifier,
        on_date: date,
        interval: ClockInterval,
        validator,
    ) -> AppointmentRecord:
        current = self.get_appointment(appointment_id)

        with self._lock_for(current.dentist_id):
            validator(
                self.get_day_snapshot(
                    current.dentist_id,
                    on_date,
                    exclude_appointment_id=appointment_id,
                )
            )

            record = replace(
                self._appointments[str(appointment_id)],
                date=on_date,
                time_from=interval.time_from,
                time_to=interval.time_to,
            )
            self._put(record)

        return record

    def set_status(self, appointment_id: Identifier, status: str) -> AppointmentRecord:
        current = self.get_appointment(appointment_id)

        with self._lock_for(current.dentist_id):
            record = replace(self._appointments[str(appointment_id)], status=status)
            self._put(record)

        return record

    def add_blocked_period(self, block: BlockedPeriod) -> None:
        with self._registry_lock:
            self._blocked_periods.append(block)

    def _put(self, record: AppointmentRecord) -> None:
        with self._registry_lock:
            self._appointments[str(record.appointment_id)] = record

    def _lock_for(self, dentist_id: Identifier) -> threading.Lock:
        with self._registry_lock:
            return self._dentist_locks[str(dentist_id)]

    def _allocate_id(self) -> int:
        with self._registry_lock:
            allocated = self._next_id
            self._next_id += 1
        return allocated
