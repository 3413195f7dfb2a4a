"""
SQL record store backed by SQLAlchemy.

Bookings are written with a check-and-insert inside one transaction:

1. Lock the dentist row (``SELECT ... FOR UPDATE``; ``BEGIN IMMEDIATE`` on SQLite)
2. Read the day's appointments and blocked periods
3. Run the caller's validator against that fresh snapshot
4. Insert / update and commit

A partial unique index on active (dentist, date, start minute) backs this up
at the database level.
"""

import logging
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, Iterator

from sqlalchemy import Column, Date, ForeignKey, Index, Integer, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..domain.exceptions import RecordNotFoundError, RecordStoreError, SchedulingConflictError
from ..domain.models import (
    AppointmentDraft,
    AppointmentRecord,
    BlockedPeriod,
    ClockInterval,
    DaySnapshot,
    Identifier,
    WorkSchedule,
)
from .fixtures import appointment_from_record, blocked_period_from_record

logger = logging.getLogger(__name__)

Base = declarative_base()
metadata = Base.metadata


class Dentists(Base):
    __tablename__ = 'dentists'

    dentist_id = Column(Text, primary_key=True)
    name = Column(Text)
    work_days_from = Column(Text)
    work_days_to = Column(Text)
    work_time_from = Column(Text)
    work_time_to = Column(Text)
    appointment_duration = Column(Text)

    def to_schedule(self) -> WorkSchedule:
        return WorkSchedule(
            work_day_from=self.work_days_from,
            work_day_to=self.work_days_to,
            time_from=self.work_time_from,
            time_to=self.work_time_to,
            default_duration=self.appointment_duration,
        )


class Services(Base):
    __tablename__ = 'services'

    service_id = Column(Integer, primary_key=True)
    service_name = Column(Text, nullable=False)
    duration = Column(Text)


class Appointments(Base):
    __tablename__ = 'appointments'
    __table_args__ = (
        Index(
            'uq_appointments_active_start',
            'dentist_id', 'date', 'start_minute',
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
        Index('ix_appointments_dentist_date', 'dentist_id', 'date'),
    )

    appointment_id = Column(Integer, primary_key=True)
    dentist_id = Column(ForeignKey('dentists.dentist_id', ondelete='CASCADE'), nullable=False)
    patient_id = Column(Text)
    temp_patient_id = Column(Text)
    service_id = Column(ForeignKey('services.service_id', ondelete='SET NULL'))
    date = Column(Date, nullable=False)
    time_from = Column(Text, nullable=False)
    time_to = Column(Text, nullable=False)
    start_minute = Column(Integer, nullable=False)  # day-clock start, for the unique index
    status = Column(Text, nullable=False, server_default=text("'confirmed'"))
    note = Column(Text)

    def to_record(self) -> AppointmentRecord:
        return AppointmentRecord(
            appointment_id=self.appointment_id,
            dentist_id=self.dentist_id,
            date=self.date,
            time_from=self.time_from,
            time_to=self.time_to,
            status=self.status,
            patient_id=self.patient_id,
            temp_patient_id=self.temp_patient_id,
            service_id=self.service_id,
            note=self.note,
        )


class BlockedDates(Base):
    __tablename__ = 'blocked_dates'
    __table_args__ = (
        Index('ix_blocked_dates_dentist_date', 'dentist_id', 'date'),
    )

    blocked_date_id = Column(Integer, primary_key=True)
    dentist_id = Column(ForeignKey('dentists.dentist_id', ondelete='CASCADE'), nullable=False)
    date = Column(Date, nullable=False)
    time_from = Column(Text)
    time_to = Column(Text)
    reason = Column(Text)

    def to_period(self) -> BlockedPeriod:
        return BlockedPeriod(
            dentist_id=self.dentist_id,
            date=self.date,
            time_from=self.time_from,
            time_to=self.time_to,
            reason=self.reason,
            block_id=self.blocked_date_id,
        )


def create_store_engine(database_url: str) -> Engine:
    """
    Create an engine suited for booking transactions.

    SQLite connections start every transaction with ``BEGIN IMMEDIATE`` so
    the snapshot read and the insert hold the write lock together.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    # check_same_thread=False is needed once sessions cross threads
    options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool

    engine = create_engine(database_url, **options)

    @event.listens_for(engine, "connect")
    def configure_sqlite(dbapi_connection, _):
        # let SQLAlchemy's "begin" event issue BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def begin_immediate(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class SqlRecordStore:
    """
    Record store over a relational database.

    Each public call uses its own session; write calls run in one transaction.
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(cls, database_url: str) -> "SqlRecordStore":
        return cls(create_store_engine(database_url))

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_schema(self) -> None:
        """Create all tables and indexes that do not exist yet."""
        metadata.create_all(self._engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            raise RecordStoreError(f"Record store failure: {exc}") from exc
        finally:
            session.close()

    def get_work_schedule(self, dentist_id: Identifier) -> WorkSchedule:
        with self._session() as session:
            dentist = session.get(Dentists, str(dentist_id))
            if dentist is None:
                raise RecordNotFoundError(f"Dentist {dentist_id} not found")
            return dentist.to_schedule()

    def get_service_duration(self, service_id: Identifier) -> int | str | None:
        with self._session() as session:
            service = session.get(Services, int(service_id))
            if service is None:
                raise RecordNotFoundError(f"Service {service_id} not found")
            return service.duration

    def get_appointment(self, appointment_id: Identifier) -> AppointmentRecord:
        with self._session() as session:
            return self._get_appointment_row(session, appointment_id).to_record()

    def get_day_snapshot(
        self,
        dentist_id: Identifier,
        on_date: date,
        *,
        exclude_appointment_id: Identifier | None = None,
    ) -> DaySnapshot:
        with self._session() as session:
            return self._read_snapshot(session, dentist_id, on_date, exclude_appointment_id)

    def create_appointment(self, draft: AppointmentDraft, validator) -> AppointmentRecord:
        try:
            with self._session() as session, session.begin():
                self._lock_dentist(session, draft.dentist_id)
                validator(self._read_snapshot(session, draft.dentist_id, draft.date))

                row = Appointments(
                    dentist_id=str(draft.dentist_id),
                    patient_id=_optional_text(draft.patient_id),
                    temp_patient_id=_optional_text(draft.temp_patient_id),
                    service_id=None if draft.service_id is None else int(draft.service_id),
                    date=draft.date,
                    time_from=draft.time_from,
                    time_to=draft.time_to,
                    start_minute=draft.interval.on_day_clock().start,
                    status=draft.status,
                    note=draft.note,
                )
                session.add(row)
                session.flush()
                return row.to_record()
        except RecordStoreError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise SchedulingConflictError(
                    f"{draft.date} {draft.interval} was booked concurrently"
                ) from exc.__cause__
            raise

    def move_appointment(
        self,
        appointment_id: Identifier,
        on_date: date,
        interval: ClockInterval,
        validator,
    ) -> AppointmentRecord:
        try:
            with self._session() as session, session.begin():
                row = self._get_appointment_row(session, appointment_id)
                self._lock_dentist(session, row.dentist_id)
                validator(
                    self._read_snapshot(
                        session,
                        row.dentist_id,
                        on_date,
                        exclude_appointment_id=row.appointment_id,
                    )
                )

                row.date = on_date
                row.time_from = interval.time_from
                row.time_to = interval.time_to
                row.start_minute = interval.on_day_clock().start
                session.flush()
                return row.to_record()
        except RecordStoreError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise SchedulingConflictError(
                    f"{on_date} {interval} was booked concurrently"
                ) from exc.__cause__
            raise

    def set_status(self, appointment_id: Identifier, status: str) -> AppointmentRecord:
        with self._session() as session, session.begin():
            row = self._get_appointment_row(session, appointment_id)
            row.status = status
            session.flush()
            return row.to_record()

    def seed(self, fixture: Dict[str, list]) -> None:
        """Insert fixture records (see ``fixtures.load_fixture``) in one transaction."""
        with self._session() as session, session.begin():
            for record in fixture.get("dentists", []):
                session.merge(
                    Dentists(
                        dentist_id=str(record["dentist_id"]),
                        name=record.get("name"),
                        work_days_from=record.get("work_days_from"),
                        work_days_to=record.get("work_days_to"),
                        work_time_from=record.get("work_time_from"),
                        work_time_to=record.get("work_time_to"),
                        appointment_duration=_optional_text(record.get("appointment_duration")),
                    )
                )

            for record in fixture.get("services", []):
                session.merge(
                    Services(
                        service_id=int(record["service_id"]),
                        service_name=record.get("service_name") or f"Service {record['service_id']}",
                        duration=_optional_text(record.get("duration")),
                    )
                )
            session.flush()

            for record in fixture.get("appointments", []):
                appointment = appointment_from_record(record)
                interval = appointment.interval()
                session.merge(
                    Appointments(
                        appointment_id=int(appointment.appointment_id),
                        dentist_id=str(appointment.dentist_id),
                        patient_id=_optional_text(appointment.patient_id),
                        temp_patient_id=_optional_text(appointment.temp_patient_id),
                        service_id=None if appointment.service_id is None else int(appointment.service_id),
                        date=appointment.date,
                        time_from=appointment.time_from,
                        time_to=appointment.time_to,
                        start_minute=interval.on_day_clock().start if interval else 0,
                        status=appointment.status,
                        note=appointment.note,
                    )
                )

            for record in fixture.get("blocked_dates", []):
                block = blocked_period_from_record(record)
                session.merge(
                    BlockedDates(
                        blocked_date_id=None if block.block_id is None else int(block.block_id),
                        dentist_id=str(block.dentist_id),
                        date=block.date,
                        time_from=block.time_from,
                        time_to=block.time_to,
                        reason=block.reason,
                    )
                )

        logger.info(
            "Seeded %d dentist(s), %d service(s), %d appointment(s), %d blocked date(s)",
            len(fixture.get("dentists", [])),
            len(fixture.get("services", [])),
            len(fixture.get("appointments", [])),
            len(fixture.get("blocked_dates", [])),
        )

    def add_blocked_period(self, block: BlockedPeriod) -> None:
        with self._session() as session, session.begin():
            session.add(
                BlockedDates(
                    dentist_id=str(block.dentist_id),
                    date=block.date,
                    time_from=block.time_from,
                    time_to=block.time_to,
                    reason=block.reason,
                )
            )

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _lock_dentist(session: Session, dentist_id: Identifier) -> Dentists:
        dentist = session.execute(
            select(Dentists)
            .where(Dentists.dentist_id == str(dentist_id))
            .with_for_update()
        ).scalar_one_or_none()

        if dentist is None:
            raise RecordNotFoundError(f"Dentist {dentist_id} not found")
        return dentist

    @staticmethod
    def _get_appointment_row(session: Session, appointment_id: Identifier) -> Appointments:
        row = session.get(Appointments, int(appointment_id))
        if row is None:
            raise RecordNotFoundError(f"Appointment {appointment_id} not found")
        return row

    @staticmethod
    def _read_snapshot(
        session: Session,
        dentist_id: Identifier,
        on_date: date,
        exclude_appointment_id: Identifier | None = None,
    ) -> DaySnapshot:
        query = select(Appointments).where(
            Appointments.dentist_id == str(dentist_id),
            Appointments.date == on_date,
        )
        if exclude_appointment_id is not None:
            query = query.where(Appointments.appointment_id != int(exclude_appointment_id))

        appointments = session.execute(query.order_by(Appointments.start_minute)).scalars().all()
        blocked = session.execute(
            select(BlockedDates).where(
                BlockedDates.dentist_id == str(dentist_id),
                BlockedDates.date == on_date,
            )
        ).scalars().all()

        return DaySnapshot(
            dentist_id=dentist_id,
            date=on_date,
            appointments=[row.to_record() for row in appointments],
            blocked_periods=[row.to_period() for row in blocked],
        )


def _optional_text(value: Any) -> str | None:
    return None if value is None else str(value)
