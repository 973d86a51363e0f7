"""
Main CLI application using Typer.
"""

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Annotated, List, NoReturn, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.json_store import JsonStore, parse_date
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import ClinicBookError
from ..domain.merger import MergeProposal
from ..domain.models import Booking
from ..domain.repository import BookingRepository, ProviderRepository, SearchField
from ..domain.slot_key import weekday_label
from ..services.booking import BookingRequest, BookingService
from ..services.providers import ProviderService
from ..services.schedule import ScheduleService, SlotChange, SlotOutcome

app = typer.Typer(
    name="clinicbook",
    help="Book clinic appointments and manage provider schedules",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")
]
YesOption = Annotated[
    bool,
    typer.Option("--yes", "-y", help="Merge overlapping slots without asking.")
]


@dataclass
class _Session:
    """Collections loaded for one command, plus the services working on them."""
    config: AppConfig
    store: JsonStore
    providers: ProviderRepository
    bookings: BookingRepository

    def booking_service(self) -> BookingService:
        return BookingService(
            self.providers,
            self.bookings,
            booking_window_days=self.config.booking_window_days,
        )

    def schedule_service(self) -> ScheduleService:
        return ScheduleService(
            self.providers,
            self.bookings,
            default_capacity=self.config.default_slot_capacity,
        )

    def provider_service(self) -> ProviderService:
        return ProviderService(self.providers, self.bookings)

    def save(self) -> None:
        self.store.save_providers(self.providers)
        self.store.save_bookings(self.bookings)


def _load_config(config_file: Optional[Path]) -> AppConfig:
    if config_file:
        return AppConfig.load_from_yaml(config_file)

    config_path = get_default_config_path()
    if config_path.exists():
        return AppConfig.load_from_yaml(config_path)
    return AppConfig()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _open_session(config_file: Optional[Path]) -> _Session:
    config = _load_config(config_file)
    _configure_logging(config.log_level)

    store = JsonStore(config.providers_path(), config.bookings_path())
    return _Session(
        config=config,
        store=store,
        providers=store.load_providers(),
        bookings=store.load_bookings(),
    )


def _parse_day(value: str) -> date:
    try:
        return parse_date(value)
    except ValueError as e:
        console.print(f"[red]Could not parse date '{value}' (expected YYYY-MM-DD): {e}[/red]")
        raise typer.Exit(1)


def _fail(error: Exception) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


def _format_day(day: Optional[date]) -> str:
    if day is None:
        return "-"
    return f"{day.isoformat()} {weekday_label(day)}"


def _print_booking(booking: Booking, title: str) -> None:
    position = str(booking.queue_position) if booking.queue_position else "unassigned"
    console.print(Panel.fit(
        f"[bold]Patient:[/bold] {booking.patient_name}\n"
        f"[bold]Provider:[/bold] {booking.provider_name} ({booking.provider_subject})\n"
        f"[bold]Date:[/bold] {_format_day(booking.date)}\n"
        f"[bold]Slot:[/bold] {booking.slot_key or '-'}\n"
        f"[bold]Queue number:[/bold] {position}\n"
        f"[dim]Booking id: {booking.id}[/dim]",
        title=title
    ))


def _print_slot_change(change: SlotChange) -> None:
    if change.outcome is SlotOutcome.DECLINED:
        console.print("[yellow]Merge declined, nothing was changed.[/yellow]")
        return

    if change.outcome is SlotOutcome.MERGED and change.merge is not None:
        console.print(
            f"[green]✓ Merged into {change.slot} (capacity {change.capacity}), "
            f"{change.merge.rewritten_bookings} booking(s) updated[/green]"
        )
        return

    console.print(f"[green]✓ Added {change.slot} (capacity {change.capacity})[/green]")


def _confirm_merge(assume_yes: bool):
    def confirm(proposal: MergeProposal) -> bool:
        console.print("[yellow]⚠ The new slot overlaps existing slots:[/yellow]")
        for slot in proposal.overlaps:
            console.print(f"   {slot}")
        console.print(
            f"   Merge result: [bold]{proposal.merged_slot}[/bold] "
            f"(capacity {proposal.merged_capacity})"
        )
        if assume_yes:
            return True
        return typer.confirm("→ Merge them?", default=False)

    return confirm


@app.command()
def providers(
    department: Annotated[Optional[str], typer.Option("--department", "-d", help="Only list this department")] = None,
    config_file: ConfigOption = None,
):
    """
    List providers with their slots.
    """
    try:
        session = _open_session(config_file)
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    selected = session.providers.by_subject(department) if department else list(session.providers)
    if not selected:
        console.print("[yellow]No providers found.[/yellow]")
        departments = session.providers.subjects()
        if department and departments:
            console.print(f"Departments: {', '.join(departments)}")
        return

    table = Table(title="Providers", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold yellow")
    table.add_column("Department")
    table.add_column("Title")
    table.add_column("Slots")

    for provider in selected:
        slots = "\n".join(
            f"{slot} (capacity {provider.capacity_of(slot)})" for slot in provider.recurring_slots
        )
        table.add_row(provider.id, provider.name, provider.subject, provider.title, slots or "-")

    console.print()
    console.print(table)
    console.print()


@app.command()
def add_provider(
    provider_id: Annotated[str, typer.Argument(help="Unique provider id")],
    name: Annotated[str, typer.Argument(help="Provider name")],
    department: Annotated[str, typer.Option("--department", "-d", help="Department")] = "",
    title: Annotated[str, typer.Option("--title", help="Professional title")] = "",
    gender: Annotated[str, typer.Option("--gender", help="Gender")] = "",
    age: Annotated[int, typer.Option("--age", help="Age (0-150)")] = 0,
    config_file: ConfigOption = None,
):
    """
    Register a new provider without slots.
    """
    try:
        session = _open_session(config_file)
        created = session.provider_service().add_provider(
            provider_id, name, subject=department, title=title, gender=gender, age=age
        )
        session.save()
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]✓ Added {created.name} ({created.id})[/green]")


@app.command()
def edit_provider(
    provider: Annotated[str, typer.Argument(help="Provider id or name")],
    name: Annotated[Optional[str], typer.Option("--name", help="New name")] = None,
    department: Annotated[Optional[str], typer.Option("--department", "-d", help="New department")] = None,
    title: Annotated[Optional[str], typer.Option("--title", help="New title")] = None,
    gender: Annotated[Optional[str], typer.Option("--gender", help="New gender")] = None,
    age: Annotated[Optional[int], typer.Option("--age", help="New age (0-150)")] = None,
    config_file: ConfigOption = None,
):
    """
    Change provider details; a new name is carried over to their bookings.
    """
    try:
        session = _open_session(config_file)
        selected = session.providers.resolve(provider)
        updated = session.provider_service().update_provider(
            selected.id, name=name, subject=department, title=title, gender=gender, age=age
        )
        session.save()
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]✓ Updated {updated.name} ({updated.id})[/green]")


@app.command()
def remove_provider(
    provider: Annotated[str, typer.Argument(help="Provider id or name")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")] = False,
    config_file: ConfigOption = None,
):
    """
    Delete a provider that has no bookings.
    """
    try:
        session = _open_session(config_file)
        selected = session.providers.resolve(provider)
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not yes and not typer.confirm(f"→ Delete {selected.name} ({selected.id})?", default=False):
        console.print("[yellow]Nothing was deleted.[/yellow]")
        return

    try:
        session.provider_service().remove_provider(selected.id)
        session.save()
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]✓ Removed {selected.name}[/green]")


@app.command()
def slots(
    provider: Annotated[str, typer.Argument(help="Provider id or name")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
):
    """
    Show the bookable slots of a provider on a date.
    """
    target = _parse_day(day)
    try:
        session = _open_session(config_file)
        selected = session.providers.resolve(provider)
        board = session.booking_service().slot_board(selected.name, target)
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not board:
        console.print(f"[yellow]⚠ {selected.name} has no slots on {_format_day(target)}.[/yellow]")
        return

    table = Table(title=f"{selected.name} - {_format_day(target)}", header_style="bold cyan")
    table.add_column("Slot", style="bold")
    table.add_column("Booked", justify="right")
    table.add_column("Capacity", justify="right")
    table.add_column("Status")

    for entry in board:
        status = "[red]full[/red]" if entry.is_full else f"[green]{entry.remaining} left[/green]"
        table.add_row(str(entry.slot), str(entry.booked), str(entry.capacity), status)

    console.print(table)


@app.command()
def calendar(
    provider: Annotated[str, typer.Argument(help="Provider id or name")],
    start: Annotated[Optional[str], typer.Option("--start", help="First date (YYYY-MM-DD), defaults to today")] = None,
    days: Annotated[int, typer.Option("--days", "-d", help="Number of days to show")] = 14,
    config_file: ConfigOption = None,
):
    """
    Show which dates a provider works on.
    """
    first = _parse_day(start) if start else pendulum.now().date()
    try:
        session = _open_session(config_file)
        selected = session.providers.resolve(provider)
        entries = session.schedule_service().calendar(selected.id, first, days)
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    styles = {
        "closed": "red",
        "special": "green",
        "regular": "cyan",
        "unavailable": "dim",
    }
    table = Table(title=f"{selected.name} - schedule", header_style="bold cyan")
    table.add_column("Date")
    table.add_column("Status")
    for entry in entries:
        style = styles[entry.status.value]
        table.add_row(_format_day(entry.day), f"[{style}]{entry.status.value}[/{style}]")

    console.print(table)


@app.command()
def book(
    provider: Annotated[str, typer.Argument(help="Provider id or name")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    slot: Annotated[str, typer.Argument(help="Slot, e.g. '周三：09:00-10:00'")],
    patient: Annotated[str, typer.Option("--patient", "-p", help="Patient name")],
    national_id: Annotated[str, typer.Option("--national-id", help="18-character national id")],
    phone: Annotated[str, typer.Option("--phone", help="Phone number")],
    description: Annotated[str, typer.Option("--description", help="Symptoms")] = "",
    config_file: ConfigOption = None,
):
    """
    Book a slot for a patient.

    Examples:

        clinicbook book "Dr. Li" 2024-05-08 "周三：09:00-10:00" -p 张三 --national-id 11010519491231002X --phone 13812345678
    """
    target = _parse_day(day)
    try:
        session = _open_session(config_file)
        selected = session.providers.resolve(provider)
        booking = session.booking_service().create(BookingRequest(
            patient_name=patient,
            national_id=national_id,
            phone=phone,
            provider_name=selected.name,
            slot_key=slot,
            date=target,
            description=description,
        ))
        session.save()
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    _print_booking(booking, title="✓ Booked")


@app.command()
def cancel(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    config_file: ConfigOption = None,
):
    """
    Cancel a booking.
    """
    try:
        session = _open_session(config_file)
        booking = session.booking_service().cancel(booking_id)
        session.save()
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]✓ Cancelled booking of {booking.patient_name}[/green]")


@app.command()
def reschedule(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    day: Annotated[Optional[str], typer.Option("--date", help="New date (YYYY-MM-DD)")] = None,
    slot: Annotated[Optional[str], typer.Option("--slot", help="New slot")] = None,
    config_file: ConfigOption = None,
):
    """
    Move a booking to another date and/or slot.
    """
    if day is None and slot is None:
        console.print("[red]Error: give --date and/or --slot.[/red]")
        raise typer.Exit(1)

    target = _parse_day(day) if day else None
    try:
        session = _open_session(config_file)
        booking = session.booking_service().reschedule(booking_id, day=target, slot=slot)
        session.save()
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if booking.slot_key is None:
        console.print("[yellow]⚠ The slot is not offered on the new date and was cleared.[/yellow]")
    _print_booking(booking, title="✓ Rescheduled")


@app.command()
def change_provider(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    provider: Annotated[str, typer.Argument(help="New provider id or name")],
    config_file: ConfigOption = None,
):
    """
    Give a booking to another provider (date and slot must be chosen again).
    """
    try:
        session = _open_session(config_file)
        selected = session.providers.resolve(provider)
        booking = session.booking_service().change_provider(booking_id, selected.name)
        session.save()
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    _print_booking(booking, title="✓ Provider changed")


@app.command()
def add_slot(
    provider: Annotated[str, typer.Argument(help="Provider id or name")],
    slot: Annotated[str, typer.Argument(help="Weekly slot, e.g. '周一：09:00-12:00'")],
    capacity: Annotated[Optional[int], typer.Option("--capacity", help="Capacity of the slot")] = None,
    yes: YesOption = False,
    config_file: ConfigOption = None,
):
    """
    Add a weekly slot; overlapping slots on the same weekday can be merged.
    """
    try:
        session = _open_session(config_file)
        selected = session.providers.resolve(provider)
        change = session.schedule_service().add_weekly_slot(
            selected.id, slot, capacity=capacity, confirm=_confirm_merge(yes)
        )
        if change.outcome is not SlotOutcome.DECLINED:
            session.save()
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    _print_slot_change(change)


@app.command()
def open_date(
    provider: Annotated[str, typer.Argument(help="Provider id or name")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    time_range: Annotated[str, typer.Argument(help="Time range, e.g. 09:00-12:00")],
    capacity: Annotated[Optional[int], typer.Option("--capacity", help="Capacity of the slot")] = None,
    yes: YesOption = False,
    config_file: ConfigOption = None,
):
    """
    Open a provider on a specific date with a slot for that date only.
    """
    target = _parse_day(day)
    try:
        session = _open_session(config_file)
        selected = session.providers.resolve(provider)
        change = session.schedule_service().open_date(
            selected.id, target, time_range, capacity=capacity, confirm=_confirm_merge(yes)
        )
        if change.outcome is not SlotOutcome.DECLINED:
            session.save()
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    _print_slot_change(change)


@app.command()
def close_date(
    provider: Annotated[str, typer.Argument(help="Provider id or name")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
):
    """
    Close a provider on a specific date.
    """
    target = _parse_day(day)
    try:
        session = _open_session(config_file)
        selected = session.providers.resolve(provider)
        session.schedule_service().close_date(selected.id, target)
        session.save()
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]✓ {selected.name} is closed on {_format_day(target)}[/green]")


@app.command()
def reset_date(
    provider: Annotated[str, typer.Argument(help="Provider id or name")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
):
    """
    Remove an open/closed override so the weekly schedule applies again.
    """
    target = _parse_day(day)
    try:
        session = _open_session(config_file)
        selected = session.providers.resolve(provider)
        session.schedule_service().reset_date(selected.id, target)
        session.save()
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]✓ {_format_day(target)} follows the weekly schedule again[/green]")


@app.command()
def set_capacity(
    provider: Annotated[str, typer.Argument(help="Provider id or name")],
    slot: Annotated[str, typer.Argument(help="Slot")],
    capacity: Annotated[int, typer.Argument(help="New capacity")],
    config_file: ConfigOption = None,
):
    """
    Change the capacity of a slot.
    """
    try:
        session = _open_session(config_file)
        selected = session.providers.resolve(provider)
        session.schedule_service().set_capacity(selected.id, slot, capacity)
        session.save()
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]✓ Capacity of {slot} set to {capacity}[/green]")


@app.command()
def remove_slot(
    provider: Annotated[str, typer.Argument(help="Provider id or name")],
    slot: Annotated[str, typer.Argument(help="Slot")],
    config_file: ConfigOption = None,
):
    """
    Delete a slot that has no bookings.
    """
    try:
        session = _open_session(config_file)
        selected = session.providers.resolve(provider)
        session.schedule_service().remove_slot(selected.id, slot)
        session.save()
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]✓ Removed {slot}[/green]")


@app.command()
def search(
    keyword: Annotated[str, typer.Argument(help="Text to look for; empty lists everything")] = "",
    by: Annotated[SearchField, typer.Option("--by", help="Field to search")] = SearchField.PATIENT,
    config_file: ConfigOption = None,
):
    """
    Search bookings by patient, provider or phone.
    """
    try:
        session = _open_session(config_file)
        results: List[Booking] = session.booking_service().search(keyword, by)
    except (ClinicBookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not results:
        console.print("[yellow]No bookings found.[/yellow]")
        return

    table = Table(title=f"{len(results)} booking(s)", header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Patient", style="bold")
    table.add_column("Phone")
    table.add_column("Provider")
    table.add_column("Date")
    table.add_column("Slot")
    table.add_column("#", justify="right")

    for booking in results:
        table.add_row(
            booking.id,
            booking.patient_name,
            booking.phone,
            booking.provider_name,
            _format_day(booking.date),
            str(booking.slot_key or "-"),
            str(booking.queue_position or "-"),
        )

    console.print(table)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]clinicbook[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
