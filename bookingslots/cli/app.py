"""
Main CLI application using Typer.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator, List, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from ..adapters.sqlite_store import BookingStore
from ..api.app import build_services, create_app
from ..config import AppConfig
from ..domain.exceptions import BookingError
from ..domain.models import (
    MAX_REQUEST_MINUTES,
    Client,
    Service,
    WorkWindow,
    format_slot,
    format_time_of_day,
    parse_time_of_day,
)
from ..logging_setup import configure_logging
from ..services.booking import parse_start

app = typer.Typer(
    name="bookingslots",
    help="Appointment booking with slot availability",
    add_completion=False
)

console = Console()

WEEKDAY_NAMES = {
    0: "Monday",
    1: "Tuesday",
    2: "Wednesday",
    3: "Thursday",
    4: "Friday",
    5: "Saturday",
    6: "Sunday"
}

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")
]


def _load(config_file: Optional[Path]) -> AppConfig:
    """Load configuration and set up logging."""
    config = AppConfig.load(config_file)
    configure_logging(config.log_level)
    return config


@contextmanager
def _opened(config_file: Optional[Path]) -> Iterator[tuple[AppConfig, BookingStore]]:
    """Load configuration and keep the store open for the duration of the block."""
    config = _load(config_file)
    with BookingStore(config.resolve_database_path()) as store:
        yield config, store


def _fail(exc: Exception) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {exc}")
    raise typer.Exit(1)


@app.command()
def serve(
    config_file: ConfigOption = None,
    host: Annotated[Optional[str], typer.Option("--host", help="Bind address")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Bind port")] = None,
):
    """
    Start the HTTP API server.
    """
    import uvicorn

    try:
        config = _load(config_file)
        store = BookingStore(config.resolve_database_path())
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    bind_host = host or config.server.host
    bind_port = port or config.server.port
    console.print(f"[bold cyan]bookingslots[/bold cyan] serving on http://{bind_host}:{bind_port}")
    with store:
        uvicorn.run(create_app(config, store), host=bind_host, port=bind_port, log_config=None)


@app.command("init-db")
def init_db(config_file: ConfigOption = None):
    """
    Create the database and seed configured work windows if none exist.
    """
    try:
        with _opened(config_file) as (config, store):
            seeded = 0
            if not store.list_work_windows():
                for window in config.seed_windows():
                    store.add_work_window(window)
                    seeded += 1
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    console.print(f"[green]✓ Database ready at {store.database_path}[/green]")
    if seeded:
        console.print(f"  {seeded} work window(s) seeded from configuration")


@app.command()
def slots(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Duration in minutes")] = None,
    buffer: Annotated[Optional[int], typer.Option("--buffer", "-b", help="Buffer after appointments, in minutes")] = None,
    granularity: Annotated[Optional[int], typer.Option("--granularity", "-g", help="Scan step in minutes")] = None,
):
    """
    List bookable start times for a date.

    Examples:

        bookingslots slots 2024-11-25

        bookingslots slots 2024-11-25 --duration 60 --buffer 0 --granularity 30
    """
    try:
        with _opened(config_file) as (config, store):
            availability, _ = build_services(config, store)
            request = availability.build_request(
                date,
                duration_minutes=duration,
                buffer_minutes=buffer,
                granularity_minutes=granularity,
            )
            found = availability.find_slots(request)
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    weekday = WEEKDAY_NAMES[request.date.weekday()]
    console.print(
        f"\n[bold cyan]{weekday}, {request.date.isoformat()}[/bold cyan] "
        f"({request.duration_minutes} min, +{request.buffer_minutes} buffer, "
        f"every {request.granularity_minutes} min)\n"
    )

    if not found:
        console.print("[yellow]⚠ No available slots found.[/yellow]\n")
        return

    console.print(f"[bold green]✓ {len(found)} available slot(s):[/bold green]")
    for slot in found:
        console.print(f"  {slot}")
    console.print()


@app.command()
def windows(config_file: ConfigOption = None):
    """
    List configured work windows.
    """
    try:
        with _opened(config_file) as (_, store):
            configured = store.list_work_windows()
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    if not configured:
        console.print("[yellow]No work windows configured; the fallback window applies every day.[/yellow]")
        return

    table = Table(title="Work windows", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Weekday", style="bold yellow")
    table.add_column("Start")
    table.add_column("End")

    for window in configured:
        table.add_row(
            str(window.id),
            WEEKDAY_NAMES[window.weekday],
            format_time_of_day(window.start),
            format_time_of_day(window.end),
        )

    console.print()
    console.print(table)
    console.print()


@app.command("add-window")
def add_window(
    weekday: Annotated[int, typer.Argument(help="Weekday, 0=Monday .. 6=Sunday")],
    start: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    end: Annotated[str, typer.Argument(help="End time (HH:MM)")],
    config_file: ConfigOption = None,
):
    """
    Add a work window for a weekday.
    """
    try:
        with _opened(config_file) as (_, store):
            window = store.add_work_window(
                WorkWindow(weekday=weekday, start=parse_time_of_day(start), end=parse_time_of_day(end))
            )
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    console.print(
        f"[green]✓ Window {window.id} added: {WEEKDAY_NAMES[window.weekday]} "
        f"{format_time_of_day(window.start)}-{format_time_of_day(window.end)}[/green]"
    )


@app.command()
def clients(
    config_file: ConfigOption = None,
    search: Annotated[Optional[str], typer.Option("--search", "-s", help="Filter by name")] = None,
):
    """
    List clients.
    """
    try:
        with _opened(config_file) as (_, store):
            found = store.list_clients(search=search, limit=15 if search else None)
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    if not found:
        console.print("[yellow]No clients found.[/yellow]")
        return

    table = Table(title="Clients", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold yellow")
    table.add_column("Phone")
    table.add_column("E-mail", style="dim")

    for client in found:
        table.add_row(str(client.id), client.name, client.phone, client.email or "")

    console.print()
    console.print(table)
    console.print()


@app.command("add-client")
def add_client(
    name: Annotated[str, typer.Argument(help="Client name")],
    phone: Annotated[str, typer.Argument(help="Phone number")],
    email: Annotated[Optional[str], typer.Option("--email", help="E-mail address")] = None,
    config_file: ConfigOption = None,
):
    """
    Register a client.
    """
    if not name.strip() or not phone.strip():
        _fail(ValueError("Name and phone are required."))

    try:
        with _opened(config_file) as (_, store):
            client = store.add_client(Client(name=name.strip(), phone=phone.strip(), email=email))
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    console.print(f"[green]✓ Client registered with ID {client.id}[/green]")


@app.command()
def services(
    config_file: ConfigOption = None,
    search: Annotated[Optional[str], typer.Option("--search", "-s", help="Filter by name")] = None,
):
    """
    List the service catalog.
    """
    try:
        with _opened(config_file) as (_, store):
            found = store.list_services(search=search, limit=15 if search else None)
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    if not found:
        console.print("[yellow]No services found.[/yellow]")
        return

    table = Table(title="Services", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold yellow")
    table.add_column("Price", justify="right")
    table.add_column("Duration", justify="right")

    for service in found:
        table.add_row(str(service.id), service.name, f"{service.price:.2f}", f"{service.duration_minutes} min")

    console.print()
    console.print(table)
    console.print()


@app.command("add-service")
def add_service(
    name: Annotated[str, typer.Argument(help="Service name")],
    price: Annotated[float, typer.Argument(help="Price")],
    duration: Annotated[int, typer.Option("--duration", "-d", help="Duration in minutes")] = 30,
    config_file: ConfigOption = None,
):
    """
    Add a service to the catalog.
    """
    if price < 0 or not 0 <= duration <= MAX_REQUEST_MINUTES:
        _fail(ValueError(f"Price must not be negative and duration must be between 0 and {MAX_REQUEST_MINUTES}."))

    try:
        with _opened(config_file) as (_, store):
            service = store.add_service(Service(name=name.strip(), price=price, duration_minutes=duration))
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    console.print(f"[green]✓ Service registered with ID {service.id}[/green]")


@app.command()
def book(
    client_id: Annotated[int, typer.Argument(help="Client ID")],
    start: Annotated[str, typer.Argument(help="Start (YYYY-MM-DD HH:MM)")],
    service: Annotated[List[int], typer.Option("--service", "-s", help="Service ID (repeatable)")],
    price: Annotated[Optional[float], typer.Option("--price", help="Override the summed service price")] = None,
    config_file: ConfigOption = None,
):
    """
    Book an appointment.

    Examples:

        bookingslots book 1 "2024-11-25 10:00" -s 2 -s 3
    """
    try:
        with _opened(config_file) as (config, store):
            _, booking = build_services(config, store)
            appointment = booking.book(
                client_id=client_id,
                service_ids=service,
                start=parse_start(start),
                price=price,
            )
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    console.print(
        f"[green]✓ Appointment {appointment.id} booked for {format_slot(appointment.start)} "
        f"({appointment.price:.2f})[/green]"
    )


@app.command()
def appointments(
    config_file: ConfigOption = None,
    pending: Annotated[bool, typer.Option("--pending", help="Only pending appointments")] = False,
    completed: Annotated[bool, typer.Option("--completed", help="Only completed appointments")] = False,
):
    """
    List appointments.
    """
    if pending and completed:
        _fail(ValueError("--pending and --completed cannot be used together."))

    status = True if completed else False if pending else None

    try:
        with _opened(config_file) as (config, store):
            _, booking = build_services(config, store)
            found = booking.appointments(completed=status)
            catalog = {s.id: s.name for s in store.list_services()}
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    if not found:
        console.print("[yellow]No appointments found.[/yellow]")
        return

    table = Table(title="Appointments", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Client")
    table.add_column("Services", style="bold yellow")
    table.add_column("Start")
    table.add_column("Price", justify="right")
    table.add_column("Done")

    for appointment in found:
        names = ", ".join(catalog.get(ref, f"#{ref}") for ref in appointment.service_ids)
        table.add_row(
            str(appointment.id),
            str(appointment.client_id),
            names,
            format_slot(appointment.start),
            f"{appointment.price:.2f}",
            "✓" if appointment.completed else "",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def complete(
    appointment_id: Annotated[int, typer.Argument(help="Appointment ID")],
    config_file: ConfigOption = None,
):
    """
    Mark an appointment as completed.
    """
    try:
        with _opened(config_file) as (config, store):
            _, booking = build_services(config, store)
            booking.complete(appointment_id)
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    console.print(f"[green]✓ Appointment {appointment_id} completed[/green]")


@app.command()
def cancel(
    appointment_id: Annotated[int, typer.Argument(help="Appointment ID")],
    config_file: ConfigOption = None,
):
    """
    Delete an appointment.
    """
    try:
        with _opened(config_file) as (config, store):
            _, booking = build_services(config, store)
            booking.cancel(appointment_id)
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    console.print(f"[green]✓ Appointment {appointment_id} deleted[/green]")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]bookingslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
