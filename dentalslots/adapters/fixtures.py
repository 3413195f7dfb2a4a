"""
Loading of clinic records from JSON fixtures.

Fixtures use the clinic database's field names::

    {
        "dentists": [{"dentist_id": "D1", "work_days_from": "Monday", ...}],
        "services": [{"service_id": 1, "service_name": "Cleaning", "duration": "45 minutes"}],
        "appointments": [{"appointment_id": 1, "dentist_id": "D1", "date": "2025-06-20", ...}],
        "blocked_dates": [{"dentist_id": "D1", "date": "2025-06-21"}]
    }
"""

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict

import pendulum

from ..domain.models import AppointmentRecord, BlockedPeriod, WorkSchedule

FIXTURE_SECTIONS = ("dentists", "services", "appointments", "blocked_dates")


def load_fixture(path: Path) -> Dict[str, list]:
    """
    Read a fixture file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not a JSON object of record lists
    """
    if not path.exists():
        raise FileNotFoundError(f"Fixture file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError("Fixture file must contain an object at the root level.")

    fixture: Dict[str, list] = {}
    for section in FIXTURE_SECTIONS:
        records = data.get(section, [])
        if not isinstance(records, list):
            raise ValueError(f"Fixture section '{section}' must be a list")
        fixture[section] = records
    return fixture


def parse_date(value: Any) -> date:
    """Parse a stored date (``date``, ``datetime`` or ISO 8601 string) to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        parsed = pendulum.parse(value)
        if isinstance(parsed, datetime):
            return parsed.date()
        if isinstance(parsed, date):
            return parsed
    raise ValueError(f"Could not parse date: {value!r}")


def schedule_from_record(record: Dict[str, Any]) -> WorkSchedule:
    return WorkSchedule(
        work_day_from=record.get("work_days_from"),
        work_day_to=record.get("work_days_to"),
        time_from=record.get("work_time_from"),
        time_to=record.get("work_time_to"),
        default_duration=record.get("appointment_duration"),
    )


def appointment_from_record(record: Dict[str, Any]) -> AppointmentRecord:
    return AppointmentRecord(
        appointment_id=record["appointment_id"],
        dentist_id=record["dentist_id"],
        date=parse_date(record["date"]),
        time_from=record.get("time_from") or "",
        time_to=record.get("time_to") or "",
        status=record.get("status") or "confirmed",
        patient_id=record.get("patient_id"),
        temp_patient_id=record.get("temp_patient_id"),
        service_id=record.get("service_id", record.get("invoice_service")),
        note=record.get("note"),
    )


def blocked_period_from_record(record: Dict[str, Any]) -> BlockedPeriod:
    return BlockedPeriod(
        dentist_id=record["dentist_id"],
        date=parse_date(record["date"]),
        time_from=record.get("time_from"),
        time_to=record.get("time_to"),
        reason=record.get("reason"),
        block_id=record.get("blocked_date_id", record.get("id")),
    )
