"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
from pendulum import DateTime
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..adapters.memory_store import InMemoryRecordStore
from ..adapters.rest_store import RestRecordStore
from ..adapters.service_catalog import RecordStoreServiceCatalog
from ..config import AppConfig, get_default_config_path
from ..domain.calendar import BusinessCalendar
from ..domain.exceptions import SchedulingError
from ..domain.models import Weekday
from ..services.presentation import PresentationAdapter
from ..services.schedule_mutator import MutationResult, ScheduleMutator

app = typer.Typer(
    name="barberschedule",
    help="Book appointments and block time on a barbershop schedule",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
MockOption = Annotated[bool, typer.Option("--mock", help="Use an in-memory record store instead of the hosted one. Changes are not saved.")]
DataOption = Annotated[Optional[Path], typer.Option("--data", help="JSON file seeding the in-memory store (implies --mock)")]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log scheduling decisions to stderr")] = False,
):
    """
    Barbershop scheduling from the command line.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class Session:
    """Everything a command needs: config, mutator and service lookup."""

    def __init__(self, config: AppConfig, mutator: ScheduleMutator, catalog: RecordStoreServiceCatalog):
        self.config = config
        self.mutator = mutator
        self.catalog = catalog

    @property
    def tz(self) -> str:
        return self.config.timezone


def _load_config(config_file: Optional[Path], in_memory: bool) -> AppConfig:
    config_path = config_file or get_default_config_path()
    if in_memory and config_file is None and not config_path.exists():
        return AppConfig()
    return AppConfig.load_from_yaml(config_path)


async def _open_session(config_file: Optional[Path], mock: bool, data_file: Optional[Path]) -> Session:
    in_memory = mock or data_file is not None
    config = _load_config(config_file, in_memory)

    if in_memory:
        record_store = InMemoryRecordStore(data_file=data_file)
    else:
        if not config.store.url:
            raise ValueError("store.url is not configured. Set it in the config file or use --mock.")
        record_store = RestRecordStore(
            base_url=config.store.url,
            api_key=config.store.api_key,
            timeout=config.store.timeout_seconds,
        )

    catalog = RecordStoreServiceCatalog(
        record_store,
        read_retries=config.store.read_retries,
        retry_delay=config.store.retry_delay_seconds,
    )
    mutator = ScheduleMutator(
        record_store,
        catalog,
        BusinessCalendar(config.business_hours.to_domain(), timezone=config.timezone),
        minimum_lead_time=config.policy.minimum_lead_time(),
        prevent_client_double_booking=config.policy.prevent_client_double_booking,
        read_retries=config.store.read_retries,
        retry_delay=config.store.retry_delay_seconds,
    )
    await mutator.load_business_hours()
    return Session(config, mutator, catalog)


def _parse_day(value: Optional[str], tz: str) -> DateTime:
    if not value:
        return pendulum.now(tz).start_of("day")
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz)
    except ValueError as e:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD: {e}") from e


def _parse_instant(value: str, tz: str) -> DateTime:
    try:
        parsed = pendulum.parse(value, tz=tz)
    except ValueError as e:
        raise ValueError(f"Invalid date/time '{value}': {e}") from e
    if not isinstance(parsed, DateTime):
        raise ValueError(f"Invalid date/time '{value}', expected YYYY-MM-DDTHH:MM")
    return parsed


def _run(coroutine) -> None:
    """Run a command body, turning expected failures into exit code 1."""
    try:
        asyncio.run(coroutine)
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _report(result: MutationResult, tz: str, what: str) -> None:
    if not result.accepted:
        console.print(f"[yellow]✗ {what} rejected ({result.rejection.reason.value}):[/yellow] {result.rejection.message}")
        raise typer.Exit(1)

    interval = result.interval
    start = interval.start.in_timezone(tz)
    end = interval.end.in_timezone(tz)
    console.print(
        f"[green]✓ {what} saved[/green] {start.format('DD.MM.YYYY HH:mm')} - {end.format('DD.MM.YYYY HH:mm')}"
        f" [dim](id {interval.id})[/dim]"
    )


@app.command()
def hours(
    day: Annotated[Optional[str], typer.Option("--date", "-d", help="Show the slot grid of this date (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    data_file: DataOption = None,
):
    """
    Show business hours, holidays and the slot grid of a day.
    """
    async def body():
        session = await _open_session(config_file, mock, data_file)
        calendar = session.mutator.calendar
        business_hours = calendar.hours
        target = _parse_day(day, session.tz).date()

        weekdays = ", ".join(d.value.capitalize() for d in sorted(business_hours.active_weekdays, key=list(Weekday).index))
        console.print(Panel.fit(
            f"[bold]Open:[/bold] {business_hours.opening_time:%H:%M} - {business_hours.closing_time:%H:%M}\n"
            f"[bold]Slots:[/bold] {business_hours.slot_duration_minutes} minutes\n"
            f"[bold]Days:[/bold] {weekdays}\n"
            f"[bold]Timezone:[/bold] {session.tz}",
            title="Business hours"
        ))

        if business_hours.holidays:
            table = Table(title="Holidays", show_header=True, header_style="bold cyan")
            table.add_column("Date", style="bold yellow")
            table.add_column("Name")
            for holiday in business_hours.holidays:
                table.add_row(holiday.date.isoformat(), holiday.name)
            console.print(table)

        boundaries = calendar.slot_boundaries(target)
        if not boundaries:
            reason = calendar.holiday_name(target) or "closed"
            console.print(f"\n[yellow]{target.isoformat()}: {reason}[/yellow]\n")
            return

        console.print(f"\n[bold]{target.isoformat()}[/bold]: " + " ".join(b.format("HH:mm") for b in boundaries) + "\n")

    _run(body())


@app.command()
def slots(
    professional: Annotated[str, typer.Argument(help="Professional id or configured name")],
    service: Annotated[str, typer.Option("--service", "-s", help="Service id")],
    day: Annotated[Optional[str], typer.Option("--date", "-d", help="Date (YYYY-MM-DD), defaults to today")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    data_file: DataOption = None,
):
    """
    List free slots of a professional for a service.
    """
    async def body():
        session = await _open_session(config_file, mock, data_file)
        professional_id = session.config.resolve_professional(professional)
        target = _parse_day(day, session.tz)
        duration = await session.catalog.get_duration(service)

        await session.mutator.load(target, target.add(days=1), professional_id)
        found = session.mutator.slots.available_slots(professional_id, target.date(), duration)

        if not found:
            console.print(
                "[yellow]⚠ No free slots found.[/yellow]\n"
                "Try another day or another professional."
            )
            return

        console.print(f"[bold green]✓ {len(found)} free slot(s):[/bold green]\n")
        for slot in found:
            console.print(f"  {slot}")
        console.print()

    _run(body())


@app.command()
def book(
    professional: Annotated[str, typer.Argument(help="Professional id or configured name")],
    client: Annotated[str, typer.Argument(help="Client id")],
    service: Annotated[str, typer.Argument(help="Service id")],
    start: Annotated[str, typer.Argument(help="Start, e.g. 2024-06-10T09:00")],
    notes: Annotated[Optional[str], typer.Option("--notes", help="Free-text notes")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    data_file: DataOption = None,
):
    """
    Book an appointment. Exits with 1 when the booking is rejected.
    """
    async def body():
        session = await _open_session(config_file, mock, data_file)
        professional_id = session.config.resolve_professional(professional)
        start_at = _parse_instant(start, session.tz)

        day = start_at.start_of("day")
        await session.mutator.load(day, day.add(days=1))

        result = await session.mutator.create_appointment(
            professional_id, client, service, start_at, notes=notes
        )
        _report(result, session.tz, "Appointment")

    _run(body())


@app.command()
def block(
    professional: Annotated[str, typer.Argument(help="Professional id or configured name")],
    start: Annotated[str, typer.Argument(help="Start, e.g. 2024-06-10T12:00 or 2024-06-10 with --all-day")],
    end: Annotated[str, typer.Argument(help="End, e.g. 2024-06-10T13:00")],
    all_day: Annotated[bool, typer.Option("--all-day", help="Block every day touched by the range")] = False,
    title: Annotated[str, typer.Option("--title", help="Label shown on the calendar")] = "Blocked",
    config_file: ConfigOption = None,
    mock: MockOption = False,
    data_file: DataOption = None,
):
    """
    Block time in a professional's schedule.
    """
    async def body():
        session = await _open_session(config_file, mock, data_file)
        professional_id = session.config.resolve_professional(professional)
        start_at = _parse_instant(start, session.tz)
        end_at = _parse_instant(end, session.tz)

        window_end = max(start_at, end_at).add(days=1)
        await session.mutator.load(start_at.start_of("day"), window_end, professional_id)

        result = await session.mutator.create_blocked_time(
            professional_id, start_at, end_at, is_all_day=all_day, title=title
        )
        _report(result, session.tz, "Blocked time")

    _run(body())


@app.command()
def agenda(
    day: Annotated[Optional[str], typer.Option("--date", "-d", help="Date (YYYY-MM-DD), defaults to today")] = None,
    professionals: Annotated[Optional[List[str]], typer.Option("--professional", "-p", help="Limit to these professionals")] = None,
    include_cancelled: Annotated[bool, typer.Option("--include-cancelled", help="Show cancelled appointments")] = False,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    data_file: DataOption = None,
):
    """
    Show the day's appointments and blocked time.
    """
    async def body():
        session = await _open_session(config_file, mock, data_file)
        target = _parse_day(day, session.tz)
        lanes = [session.config.resolve_professional(p) for p in professionals] if professionals else None

        await session.mutator.load(target, target.add(days=1))
        service_names = await session.catalog.service_names()

        adapter = PresentationAdapter(
            professional_ids=[p.id for p in session.config.professionals],
            service_names=service_names,
        )
        events = adapter.render_range(
            session.mutator.intervals,
            target,
            target.add(days=1),
            professional_ids=lanes,
            include_cancelled=include_cancelled,
        )

        if not events:
            console.print(f"[yellow]Nothing scheduled on {target.format('DD.MM.YYYY')}.[/yellow]")
            return

        names = session.config.professional_names()
        table = Table(
            title=f"Agenda {target.format('DD.MM.YYYY')}",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Time", style="bold")
        table.add_column("Professional", style="bold yellow")
        table.add_column("Entry")
        table.add_column("Status", style="dim")

        for event in events:
            when = "all day" if event.all_day else (
                f"{event.start.in_timezone(session.tz).format('HH:mm')} - "
                f"{event.end.in_timezone(session.tz).format('HH:mm')}"
            )
            table.add_row(
                when,
                names.get(event.lane, event.lane),
                f"[{event.color}]{event.label}[/]",
                event.status_label or "Blocked",
            )

        console.print()
        console.print(table)
        console.print()

    _run(body())


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]barberschedule[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
