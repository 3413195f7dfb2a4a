"""
Main CLI application using Typer.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Iterator, Optional, Annotated

import pendulum
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..adapters.fixtures import load_fixture
from ..adapters.memory_store import MOCK_DATA_FILE, InMemoryRecordStore
from ..adapters.sql_store import SqlRecordStore
from ..config import AppConfig
from ..domain.exceptions import SchedulingConflictError, SchedulingError
from ..domain.models import WEEKDAYS, AppointmentRecord
from ..logging_setup import configure_logging
from ..services.booking import BookingRequest, BookingService, RecordStoreProtocol

app = typer.Typer(
    name="dentalslots",
    help="Find free appointment slots and book dentist appointments",
    add_completion=False
)

console = Console()

EXIT_ERROR = 1
EXIT_CONFLICT = 2


@dataclass
class CliState:
    config: AppConfig
    mock: bool = False
    fixture: Optional[Path] = None
    store: Optional[RecordStoreProtocol] = None

    def get_store(self) -> RecordStoreProtocol:
        """Open the record store once per invocation."""
        if self.store is None:
            if self.mock:
                self.store = InMemoryRecordStore.from_json_file(self.fixture)
            else:
                self.store = SqlRecordStore.from_url(self.config.database_url)
        return self.store

    def get_service(self) -> BookingService:
        return BookingService.from_config(self.get_store(), self.config)


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use in-memory mock clinic data instead of the database. Changes are not saved.")] = False,
    fixture: Annotated[Optional[Path], typer.Option("--fixture", help="JSON fixture for --mock (bundled sample data by default)")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
):
    """
    Dentist appointment slots - query availability and book safely.
    """
    try:
        config = AppConfig.load_or_default(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(EXIT_ERROR)

    configure_logging("DEBUG" if verbose else config.log_level)
    ctx.obj = CliState(config=config, mock=mock or fixture is not None, fixture=fixture)


@contextmanager
def _reported_errors() -> Iterator[None]:
    """Translate application errors into messages and exit codes."""
    try:
        yield
    except SchedulingConflictError as e:
        console.print(f"[bold red]✗ Conflict:[/bold red] {e}")
        for conflict in e.conflicts:
            console.print(f"   overlaps {conflict}")
        console.print("[yellow]Re-fetch availability and choose another slot.[/yellow]")
        raise typer.Exit(EXIT_CONFLICT)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(EXIT_ERROR)


def _parse_date(value: Optional[str], *, default: Optional[date] = None) -> date:
    """Parse a YYYY-MM-DD option; today when omitted and no default is given."""
    if not value:
        return default or pendulum.today().date()

    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except ValueError as e:
        console.print(f"[red]Could not parse date {value!r} (expected YYYY-MM-DD): {e}[/red]")
        raise typer.Exit(EXIT_ERROR)


def _describe_day(on_date: date) -> str:
    return f"{on_date.isoformat()} ({WEEKDAYS[on_date.weekday()]})"


def _print_warnings(warnings) -> None:
    for warning in warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")


def _print_appointment(title: str, appointment: AppointmentRecord) -> None:
    patient = appointment.patient_id or f"{appointment.temp_patient_id} (temporary)"
    console.print(Panel.fit(
        f"[bold]Appointment:[/bold] {appointment.appointment_id}\n"
        f"[bold]Dentist:[/bold] {appointment.dentist_id}\n"
        f"[bold]Date:[/bold] {_describe_day(appointment.date)}\n"
        f"[bold]Time:[/bold] {appointment.time_from} - {appointment.time_to}\n"
        f"[bold]Patient:[/bold] {patient}\n"
        f"[bold]Status:[/bold] {appointment.status}",
        title=title
    ))


@app.command()
def slots(
    ctx: typer.Context,
    dentist_id: Annotated[str, typer.Argument(help="Dentist identifier")],
    on_date: Annotated[Optional[str], typer.Option("--date", help="Date (YYYY-MM-DD). Defaults to today")] = None,
    service_id: Annotated[Optional[int], typer.Option("--service", "-s", help="Service whose duration sets the slot length")] = None,
    duration: Annotated[Optional[str], typer.Option("--duration", "-d", help="Slot length, e.g. '45' or '1 hour'")] = None,
    show_all: Annotated[bool, typer.Option("--all", help="Also list occupied slots")] = False,
):
    """
    Show free slots of a dentist on one day.

    Examples:

        dentalslots --mock slots D001 --date 2025-06-20

        dentalslots slots D001 --date 2025-06-20 --service 3
    """
    state: CliState = ctx.obj
    day = _parse_date(on_date)

    with _reported_errors():
        result = state.get_service().get_available_slots(
            dentist_id,
            day,
            service_id=service_id,
            duration=duration,
        )

    console.print(f"\n[bold cyan]Dentist {dentist_id}[/bold cyan] on {_describe_day(day)}")
    console.print(f"   Slot length: {result.duration_minutes} minutes\n")
    _print_warnings(result.warnings)

    if show_all:
        free = set((slot.start, slot.end) for slot in result.available)
        for slot in result.candidates:
            marker = "[green]free[/green]" if (slot.start, slot.end) in free else "[red]taken[/red]"
            console.print(f"  {slot.format_display()}  {marker}")
    elif not result.available:
        console.print("[yellow]⚠ No free slots on this day.[/yellow]")
    else:
        console.print(f"[bold green]✓ {len(result.available)} free slot(s):[/bold green]\n")
        for slot in result.available:
            console.print(f"  {slot.format_display()}")

    console.print()


@app.command()
def calendar(
    ctx: typer.Context,
    dentist_id: Annotated[str, typer.Argument(help="Dentist identifier")],
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD). Defaults to today")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End date (YYYY-MM-DD). Defaults to start + 13 days")] = None,
    service_id: Annotated[Optional[int], typer.Option("--service", "-s", help="Service whose duration sets the slot length")] = None,
    duration: Annotated[Optional[str], typer.Option("--duration", "-d", help="Slot length, e.g. '45' or '1 hour'")] = None,
):
    """
    Show the number of free slots per day over a date range.
    """
    state: CliState = ctx.obj
    start_date = _parse_date(start)
    end_date = _parse_date(end, default=start_date + timedelta(days=13))

    with _reported_errors():
        days = state.get_service().find_open_days(
            dentist_id,
            start_date,
            end_date,
            service_id=service_id,
            duration=duration,
        )

    table = Table(
        title=f"Open days for dentist {dentist_id}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Date", style="bold yellow")
    table.add_column("Weekday")
    table.add_column("Free slots", justify="right")

    for day in days:
        if not day.is_working_day:
            count = "[dim]off[/dim]"
        elif day.has_slots:
            count = f"[green]{day.open_slots_count}[/green]"
        else:
            count = "[red]0[/red]"
        table.add_row(day.date.isoformat(), WEEKDAYS[day.date.weekday()], count)

    console.print()
    console.print(table)
    console.print()


@app.command()
def book(
    ctx: typer.Context,
    dentist_id: Annotated[str, typer.Argument(help="Dentist identifier")],
    on_date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    time_from: Annotated[str, typer.Argument(help="Start time, e.g. 10:00 or '2 PM'")],
    time_to: Annotated[str, typer.Argument(help="End time")],
    patient_id: Annotated[Optional[str], typer.Option("--patient", "-p", help="Registered patient identifier")] = None,
    temp_patient_id: Annotated[Optional[str], typer.Option("--temp-patient", help="Temporary patient identifier")] = None,
    service_id: Annotated[Optional[int], typer.Option("--service", "-s", help="Service being booked")] = None,
    note: Annotated[Optional[str], typer.Option("--note", help="Free-text note")] = None,
    status: Annotated[Optional[str], typer.Option("--status", help="Initial status (pending, confirmed, ...)")] = None,
    strict: Annotated[bool, typer.Option("--strict", help="Refuse dates outside the dentist's working days")] = False,
):
    """
    Book an appointment. Exits with code 2 if the time is no longer free.

    Examples:

        dentalslots book D001 2025-06-20 11:00 11:30 --patient P010
    """
    state: CliState = ctx.obj
    day = _parse_date(on_date)

    request = BookingRequest(
        dentist_id=dentist_id,
        date=day,
        time_from=time_from,
        time_to=time_to,
        patient_id=patient_id,
        temp_patient_id=temp_patient_id,
        service_id=service_id,
        note=note,
        status=status,
        require_working_day=strict,
    )

    with _reported_errors():
        result = state.get_service().book_appointment(request)

    console.print()
    _print_warnings(result.warnings)
    _print_appointment("✓ Booked", result.appointment)
    console.print()


@app.command()
def reschedule(
    ctx: typer.Context,
    appointment_id: Annotated[int, typer.Argument(help="Appointment identifier")],
    on_date: Annotated[str, typer.Argument(help="New date (YYYY-MM-DD)")],
    time_from: Annotated[str, typer.Argument(help="New start time")],
    time_to: Annotated[str, typer.Argument(help="New end time")],
    strict: Annotated[bool, typer.Option("--strict", help="Refuse dates outside the dentist's working days")] = False,
):
    """
    Move an appointment to another time. Exits with code 2 on a conflict.
    """
    state: CliState = ctx.obj
    day = _parse_date(on_date)

    with _reported_errors():
        result = state.get_service().reschedule_appointment(
            appointment_id,
            day,
            time_from,
            time_to,
            require_working_day=strict,
        )

    console.print()
    _print_warnings(result.warnings)
    _print_appointment("✓ Rescheduled", result.appointment)
    console.print()


@app.command()
def cancel(
    ctx: typer.Context,
    appointment_id: Annotated[int, typer.Argument(help="Appointment identifier")],
):
    """
    Cancel an appointment and free its time.
    """
    state: CliState = ctx.obj

    with _reported_errors():
        appointment = state.get_service().cancel_appointment(appointment_id)

    console.print(f"\n[green]✓ Appointment {appointment.appointment_id} cancelled.[/green]\n")


@app.command("init-db")
def init_db(ctx: typer.Context):
    """
    Create the database tables.
    """
    state: CliState = ctx.obj

    with _reported_errors():
        store = SqlRecordStore.from_url(state.config.database_url)
        store.create_schema()

    console.print(f"\n[green]✓ Database ready:[/green] {state.config.database_url}\n")


@app.command()
def seed(
    ctx: typer.Context,
    fixture_file: Annotated[Optional[Path], typer.Argument(help="JSON fixture (bundled sample data by default)")] = None,
):
    """
    Load dentists, services, appointments and blocked dates into the database.
    """
    state: CliState = ctx.obj
    path = fixture_file or MOCK_DATA_FILE

    with _reported_errors():
        data = load_fixture(path)
        store = SqlRecordStore.from_url(state.config.database_url)
        store.create_schema()
        store.seed(data)

    console.print(f"\n[green]✓ Seeded database from[/green] {path}\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]dentalslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
