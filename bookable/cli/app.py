"""
Main CLI application using Typer.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.google_calendar import GoogleCalendarClient
from ..adapters.json_repository import JsonRepository
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import BookableError
from ..domain.models import Service, Slot
from ..services.availability_service import AvailabilityService
from ..services.cache import CachedRepository, InMemoryCache, RedisCache
from ..services.pool_service import PoolService
from ..services.team_service import TeamService

app = typer.Typer(
    name="bookable",
    help="Compute bookable dates, time slots and pool assignments",
    add_completion=False
)

console = Console()
logger = logging.getLogger(__name__)

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./bookable.yaml")]
DataOption = Annotated[Optional[Path], typer.Option("--data", help="Scheduling data JSON file (overrides config)")]
JsonOption = Annotated[bool, typer.Option("--json", help="Print machine-readable JSON")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")]
DurationOption = Annotated[int, typer.Option("--duration", "-d", help="Service duration in minutes")]
BufferOption = Annotated[int, typer.Option("--buffer", "-b", help="Buffer around existing bookings in minutes")]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _load_config(config_file: Optional[Path], data_file: Optional[Path], verbose: bool) -> AppConfig:
    config_path = config_file or get_default_config_path()
    if config_path.exists():
        config = AppConfig.load_from_yaml(config_path)
    elif config_file is not None:
        raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        config = AppConfig()

    if data_file is not None:
        config.data_file = data_file
    if config.data_file is None:
        raise BookableError("No scheduling data file configured. Pass --data or set data_file.")

    _configure_logging("DEBUG" if verbose else config.log_level)
    return config


def _google_token(provider_id: str) -> Optional[str]:
    return os.environ.get(f"BOOKABLE_GOOGLE_TOKEN_{provider_id.upper()}")


def _build_sources(config: AppConfig):
    """Return (repository, busy_source) wired according to the config."""
    repository = JsonRepository.from_file(config.data_file)
    busy_source = repository

    if config.google_calendar.enabled:
        busy_source = GoogleCalendarClient(
            token_provider=_google_token,
            base_url=config.google_calendar.base_url,
            timeout_seconds=config.google_calendar.timeout_seconds,
            max_attempts=config.google_calendar.max_attempts,
        )

    if config.cache.enabled:
        if config.cache.backend == "redis":
            cache = RedisCache.from_url(config.cache.redis_url)
        else:
            cache = InMemoryCache(max_entries=config.cache.max_entries)

        cached = CachedRepository(
            repository,
            cache,
            busy_source=busy_source,
            ttls=config.cache.ttls(),
        )
        return cached, cached

    return repository, busy_source


def _service_kwargs(config: AppConfig) -> dict:
    return {
        "minimum_notice_hours": config.defaults.minimum_notice_hours,
        "horizon_days": config.defaults.horizon_days,
    }


def _print_slots(slots: List[Slot], timezone: str, as_json: bool, title: str) -> None:
    if as_json:
        console.print_json(data={"slots": [slot.to_dict() for slot in slots]})
        return

    if not slots:
        console.print("[yellow]⚠ No slots for this date.[/yellow]")
        return

    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Slot", style="bold")
    table.add_column("UTC", style="dim")
    table.add_column("Available")

    for slot in slots:
        table.add_row(
            slot.format_display(timezone),
            f"{slot.start.format('HH:mm')} - {slot.end.format('HH:mm')}",
            "[green]yes[/green]" if slot.available else "[red]no[/red]",
        )

    console.print()
    console.print(table)
    console.print()


def _print_dates(dates, as_json: bool, title: str) -> None:
    if as_json:
        console.print_json(data={"dates": [day.isoformat() for day in dates]})
        return

    if not dates:
        console.print("[yellow]⚠ No available dates in this horizon.[/yellow]")
        return

    console.print(f"\n[bold green]✓ {title}: {len(dates)} date(s)[/bold green]\n")
    for day in dates:
        console.print(f"  {day.format('dddd, YYYY-MM-DD')}")
    console.print()


def _fail(exc: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {exc}")
    raise typer.Exit(1)


@app.command()
def slots(
    provider: Annotated[str, typer.Argument(help="Provider id")],
    date: Annotated[str, typer.Argument(help="Local date (YYYY-MM-DD)")],
    duration: DurationOption = 30,
    buffer: BufferOption = 0,
    exclude_booking: Annotated[Optional[str], typer.Option("--exclude-booking", help="Ignore this booking (rescheduling)")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    as_json: JsonOption = False,
    verbose: VerboseOption = False,
):
    """
    List the time slots of one provider on one date.

    Examples:

        bookable slots alice 2025-01-27 --duration 60 --buffer 15
    """
    try:
        config = _load_config(config_file, data_file, verbose)
        repository, busy_source = _build_sources(config)
        service = AvailabilityService(repository, busy_source, **_service_kwargs(config))

        async def run():
            timezone = await repository.get_provider_timezone(provider)
            found = await service.get_slots(
                provider, date, Service(duration, buffer), exclude_booking_id=exclude_booking
            )
            return timezone, found

        timezone, found = asyncio.run(run())
        _print_slots(found, timezone, as_json, f"{provider} on {date}")

    except (BookableError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def dates(
    provider: Annotated[str, typer.Argument(help="Provider id")],
    days: Annotated[Optional[int], typer.Option("--days", help="Horizon in days")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    as_json: JsonOption = False,
    verbose: VerboseOption = False,
):
    """
    List the dates on which a provider may have availability.
    """
    try:
        config = _load_config(config_file, data_file, verbose)
        repository, busy_source = _build_sources(config)
        service = AvailabilityService(repository, busy_source, **_service_kwargs(config))

        found = asyncio.run(service.get_dates(provider, days))
        _print_dates(found, as_json, f"Open dates for {provider}")

    except (BookableError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("pool-slots")
def pool_slots(
    pool: Annotated[str, typer.Argument(help="Resource pool id")],
    date: Annotated[str, typer.Argument(help="Local date (YYYY-MM-DD)")],
    duration: DurationOption = 30,
    buffer: BufferOption = 0,
    timezone: Annotated[Optional[str], typer.Option("--timezone", "-t", help="Timezone of the date (defaults to config)")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    as_json: JsonOption = False,
    verbose: VerboseOption = False,
):
    """
    List the combined slots of a resource pool (any member free).
    """
    try:
        config = _load_config(config_file, data_file, verbose)
        repository, busy_source = _build_sources(config)
        service = PoolService(repository, busy_source, **_service_kwargs(config))
        tz = timezone or config.timezone

        found = asyncio.run(service.get_union_slots(pool, date, Service(duration, buffer), tz))
        _print_slots(found, tz, as_json, f"Pool {pool} on {date}")

    except (BookableError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("pool-dates")
def pool_dates(
    pool: Annotated[str, typer.Argument(help="Resource pool id")],
    days: Annotated[Optional[int], typer.Option("--days", help="Horizon in days")] = None,
    timezone: Annotated[Optional[str], typer.Option("--timezone", "-t", help="Timezone (defaults to config)")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    as_json: JsonOption = False,
    verbose: VerboseOption = False,
):
    """
    List the dates on which any pool member may be available.
    """
    try:
        config = _load_config(config_file, data_file, verbose)
        repository, busy_source = _build_sources(config)
        service = PoolService(repository, busy_source, **_service_kwargs(config))

        found = asyncio.run(service.get_available_dates(pool, timezone or config.timezone, days))
        _print_dates(found, as_json, f"Open dates for pool {pool}")

    except (BookableError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("select-member")
def select_member(
    pool: Annotated[str, typer.Argument(help="Resource pool id")],
    start: Annotated[str, typer.Argument(help="Start instant (ISO 8601)")],
    end: Annotated[str, typer.Argument(help="End instant (ISO 8601)")],
    pool_type: Annotated[Optional[str], typer.Option("--pool-type", help="Override the pool's assignment policy")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    as_json: JsonOption = False,
    verbose: VerboseOption = False,
):
    """
    Show which pool member a booking for START-END would be assigned to.
    """
    try:
        config = _load_config(config_file, data_file, verbose)
        repository, busy_source = _build_sources(config)
        service = PoolService(
            repository,
            busy_source,
            selection_timezone=config.defaults.selection_timezone,
            **_service_kwargs(config),
        )

        selected = asyncio.run(
            service.select_member(pool, pendulum.parse(start), pendulum.parse(end), pool_type)
        )

        if as_json:
            console.print_json(data={"provider_id": selected})
        elif selected is None:
            console.print("[yellow]⚠ No member is free and under their daily limit.[/yellow]")
        else:
            console.print(f"[bold green]✓ Assigned to:[/bold green] {selected}")

    except (BookableError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("team-slots")
def team_slots(
    link: Annotated[str, typer.Argument(help="Booking link id")],
    date: Annotated[str, typer.Argument(help="Local date (YYYY-MM-DD)")],
    duration: DurationOption = 30,
    buffer: BufferOption = 0,
    timezone: Annotated[Optional[str], typer.Option("--timezone", "-t", help="Timezone of the date (defaults to config)")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    as_json: JsonOption = False,
    verbose: VerboseOption = False,
):
    """
    List slots where all required members of a booking link are free.
    """
    try:
        config = _load_config(config_file, data_file, verbose)
        repository, busy_source = _build_sources(config)
        service = TeamService(repository, busy_source, **_service_kwargs(config))
        tz = timezone or config.timezone

        found = asyncio.run(service.get_intersection_slots(link, date, Service(duration, buffer), tz))
        _print_slots(found, tz, as_json, f"Team {link} on {date}")

    except (BookableError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def check(
    provider: Annotated[str, typer.Argument(help="Provider id")],
    start: Annotated[str, typer.Argument(help="Start instant (ISO 8601)")],
    end: Annotated[str, typer.Argument(help="End instant (ISO 8601)")],
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    verbose: VerboseOption = False,
):
    """
    Re-check that START-END is still free before writing a booking.
    """
    try:
        config = _load_config(config_file, data_file, verbose)
        repository, busy_source = _build_sources(config)
        service = AvailabilityService(repository, busy_source, **_service_kwargs(config))

        asyncio.run(service.ensure_slot_free(provider, start, end))
        console.print("[bold green]✓ Time slot is free.[/bold green]")

    except (BookableError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]bookable[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
