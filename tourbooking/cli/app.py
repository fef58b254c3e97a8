"""
Operator CLI using Typer.
"""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..api import TourBookingAPI
from ..config import AppConfig, get_default_config_path
from ..domain.models import BOOKING_DURATION_MINUTES, Contact
from ..logging_config import configure_logging

app = typer.Typer(
    name="tourbooking",
    help="List free school tour slots and book tours",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
MockOption = Annotated[
    bool,
    typer.Option("--mock", help="Read calendars from the mock calendar file instead of Google/Outlook."),
]
LogLevelOption = Annotated[
    str,
    typer.Option("--log-level", help="Log level for engine messages"),
]


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    return AppConfig.load_from_yaml(config_path)


def _format_local(iso_string: str, tz: str) -> str:
    return pendulum.parse(iso_string).in_timezone(tz).format("HH:mm")


@app.command()
def slots(
    school_id: Annotated[str, typer.Argument(help="School id as configured")],
    date: Annotated[Optional[str], typer.Option("--date", "-d", help="Day to list (YYYY-MM-DD). Defaults to today.")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    log_level: LogLevelOption = "WARNING",
):
    """
    List the free tour slots of a school for one day.

    Examples:

        tourbooking slots school-1
        tourbooking slots school-1 --date 2025-03-03 --mock
    """
    try:
        configure_logging(log_level)
        config = _load_config(config_file)
        tz = config.business_hours_for(school_id).timezone
        day = date or pendulum.now(tz).to_date_string()

        if mock:
            console.print("[yellow]⚠  MOCK MODE: using mock calendar data[/yellow]\n")

        api = TourBookingAPI.from_config(config, mock=mock)
        result = asyncio.run(api.get_free_slots(school_id, day))

        if "error" in result:
            console.print(f"[bold red]Error ({result['error']}):[/bold red] {result['reason']}")
            raise typer.Exit(1)

        free_slots = result["freeSlots"]
        if not free_slots:
            console.print(f"[yellow]⚠ No free slots on {result['date']}.[/yellow]")
            return

        table = Table(
            title=f"Free tour slots {result['date']} ({tz})",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Start", style="bold yellow")
        table.add_column("End")
        table.add_column("UTC", style="dim")

        for slot in free_slots:
            table.add_row(
                _format_local(slot["start"], tz),
                _format_local(slot["end"], tz),
                slot["start"],
            )

        console.print()
        console.print(table)
        console.print(f"\n[bold green]✓ {len(free_slots)} free slot(s)[/bold green]\n")

    except FileNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def book(
    school_id: Annotated[str, typer.Argument(help="School id as configured")],
    start: Annotated[str, typer.Argument(help="Slot start (ISO-8601, e.g. 2025-03-03T10:00:00Z)")],
    end: Annotated[Optional[str], typer.Option("--end", help="Slot end. Defaults to start plus one slot.")] = None,
    name: Annotated[str, typer.Option("--name", help="Parent name")] = "",
    phone: Annotated[str, typer.Option("--phone", help="Phone number")] = "",
    email: Annotated[str, typer.Option("--email", help="Email address")] = "",
    reason: Annotated[str, typer.Option("--reason", help="Reason for the tour")] = "",
    config_file: ConfigOption = None,
    mock: MockOption = False,
    log_level: LogLevelOption = "WARNING",
):
    """
    Book a tour slot for a school.
    """
    try:
        configure_logging(log_level)
        config = _load_config(config_file)

        slot_start = pendulum.parse(start, tz=config.business_hours_for(school_id).timezone)
        slot_end = pendulum.parse(end, tz=slot_start.timezone) if end else slot_start.add(
            minutes=BOOKING_DURATION_MINUTES
        )
        contact = Contact(name=name, phone=phone, email=email, reason=reason)

        api = TourBookingAPI.from_config(config, mock=mock)
        result = asyncio.run(api.book_slot(school_id, slot_start, slot_end, contact))

        if "error" in result:
            console.print(f"\n[bold red]✗ Not booked ({result['error']}):[/bold red] {result['reason']}\n")
            raise typer.Exit(1)

        booking = result["booking"]
        calendar = booking["calendarProvider"] or "none (local only)"
        console.print(Panel.fit(
            f"[bold green]✓ Tour booked![/bold green]\n\n"
            f"[bold]Booking:[/bold] #{booking['id']}\n"
            f"[bold]When:[/bold] {booking['scheduledAt']}\n"
            f"[bold]Parent:[/bold] {booking['parentName'] or 'N/A'}\n"
            f"[bold]Calendar:[/bold] {calendar}",
            title="✓ Booking"
        ))

    except FileNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def bookings(
    school_id: Annotated[str, typer.Argument(help="School id as configured")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of bookings to show")] = 50,
    config_file: ConfigOption = None,
):
    """
    List a school's most recent tour bookings.
    """
    try:
        config = _load_config(config_file)
        api = TourBookingAPI.from_config(config)
        result = api.list_bookings(school_id, limit=limit)

        if not result["bookings"]:
            console.print("[yellow]No tour bookings yet.[/yellow]")
            return

        table = Table(
            title=f"Tour bookings for {school_id}",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("#", style="dim")
        table.add_column("Scheduled (UTC)", style="bold yellow")
        table.add_column("Parent")
        table.add_column("Phone")
        table.add_column("Email", style="dim")
        table.add_column("Calendar")

        for booking in result["bookings"]:
            table.add_row(
                str(booking["id"]),
                booking["scheduledAt"],
                booking["parentName"],
                booking["phone"],
                booking["email"],
                booking["calendarProvider"] or "-",
            )

        console.print()
        console.print(table)
        console.print()

    except FileNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def init_db(config_file: ConfigOption = None):
    """
    Create the bookings table in the configured database.
    """
    try:
        config = _load_config(config_file)
        TourBookingAPI.from_config(config)
        console.print(f"[green]✓ Database ready:[/green] {config.database_url}")

    except FileNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]tourbooking[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
