"""
CLI Main - Typer command-line interface.
========================================

Commands:
- scrape: Fetch records for a category from every platform that serves it
- course: Show merged details of one course
- reserve: Reserve a library study room
- cancel: Cancel a study room reservation
- info: Show configuration (never credentials)
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from campusbot.shared.errors import CampusBotError
from campusbot.shared.logging import LogContext, get_logger, setup_logging

logger = get_logger(__name__)

T = TypeVar("T")

app = typer.Typer(
    name="campusbot",
    help="""🎓 CampusBot - Campus data for the chatbot backend

Logs into the course platform, the general portal and the library system,
extracts typed records and caches them.

CATEGORIES:

  course, assignment, notice, academic, scholarship, career,
  library, studyroom, facilities

QUICK START:

  export CAMPUSBOT_USERNAME=... CAMPUSBOT_PASSWORD=...
  campusbot scrape notice                 # Notices from every platform
  campusbot scrape studyroom --json       # Study rooms as JSON
  campusbot course CSE2010                # Merged course details

Use 'campusbot <command> --help' for detailed command options.
""",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs from CampusBot."),
):
    """Apply the configured logging before any command runs."""
    from campusbot.shared.config import get_settings

    settings = get_settings()
    setup_logging(
        level=settings.get_effective_log_level(),
        use_rich=settings.logging.rich_console,
        log_file=settings.logging.file or None,
        log_format=settings.logging.format,
        force=True,
    )
    if verbose:
        ctx.with_resource(LogContext("DEBUG", "campusbot"))


def _run(operation: Callable[[Any], Awaitable[T]]) -> T:
    """Run one aggregator operation inside a fresh aggregator lifecycle."""
    from campusbot.scraping.aggregator import create_aggregator

    async def runner() -> T:
        async with create_aggregator() as aggregator:
            return await operation(aggregator)

    try:
        return asyncio.run(runner())
    except CampusBotError as e:
        console.print(f"[red]{type(e).__name__}: {e.message}[/red]")
        raise typer.Exit(1)


def _describe(record: Any) -> tuple[str, str, str]:
    """Return (id, title, details) columns for any record kind."""
    kind = record.kind
    if kind == "course":
        return record.id, record.name, f"{record.instructor} · {record.credits}학점"
    if kind == "notice":
        flag = "⭐ " if record.important else ""
        published = record.published_at.strftime("%Y-%m-%d") if record.published_at else "-"
        return record.id, f"{flag}{record.title}", f"{record.author} · {published}"
    if kind == "assignment":
        due = record.due_at.strftime("%Y-%m-%d %H:%M") if record.due_at else "-"
        return record.id, record.title, f"{record.status} · due {due}"
    if kind == "room":
        state = "available" if record.available else "occupied"
        return record.id, record.name, f"{record.capacity} seats · {record.location} · {state}"
    if kind == "library":
        open_count = sum(1 for s in record.statuses if s.status == "open")
        return "-", "Library status", f"{open_count}/{len(record.statuses)} open"
    return getattr(record, "id", "-"), kind, ""


# ─────────────────────────────────────────────────────────────────────────────
# Scrape Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def scrape(
    category: str = typer.Argument(..., help="Category to fetch (course, notice, studyroom, ...)."),
    campus: Optional[str] = typer.Option(
        None, "--campus", "-c", help="Campus scope (default from config)."
    ),
    count: Optional[int] = typer.Option(
        None, "--count", "-n", help="Maximum number of records (default from config)."
    ),
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Bypass the cache read."),
    cache: bool = typer.Option(True, "--cache/--no-cache", help="Read and write the cache."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON."),
):
    """
    🌐 Fetch records for a category.

    Examples:
        campusbot scrape course
        campusbot scrape notice -c 국제 -n 5
        campusbot scrape studyroom --refresh --json
    """
    from campusbot.shared.config import get_settings

    settings = get_settings()
    campus = campus or settings.aggregation.default_campus
    count = count or settings.aggregation.default_count
    use_cache = cache and settings.cache.enabled

    result = _run(
        lambda aggregator: aggregator.scrape_by_category(
            category, campus=campus, count=count, force_refresh=refresh, use_cache=use_cache
        )
    )

    if as_json:
        console.print_json(result.model_dump_json())
        return

    table = Table(title=f"{result.category} · {result.campus}")
    table.add_column("Kind")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Details")
    table.add_column("Platform")
    for record in result.records:
        record_id, title, details = _describe(record)
        table.add_row(record.kind, record_id, title, details, str(record.platform))
    console.print(table)

    for name, outcome in result.platforms.items():
        if outcome.success:
            console.print(f"  [green]✓ {name}: {outcome.count} record(s)[/green]")
        else:
            console.print(f"  [yellow]✗ {name}: {outcome.error}[/yellow]")
    if result.from_cache:
        console.print("[dim]Served from cache[/dim]")


# ─────────────────────────────────────────────────────────────────────────────
# Course Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def course(
    course_id: str = typer.Argument(..., help="Course identifier."),
    as_json: bool = typer.Option(False, "--json", help="Print the record as JSON."),
):
    """📘 Show a course merged from the course platform and the portal."""
    record = _run(lambda aggregator: aggregator.get_course_details(course_id))

    if as_json:
        console.print_json(record.model_dump_json())
        return

    console.print(Panel(
        f"[bold]{record.name}[/bold] ({record.id})\n"
        f"Instructor: {record.instructor or '-'}\n"
        f"Semester: {record.semester or '-'}\n"
        f"Department: {record.department or '-'}\n"
        f"Credits: {record.credits}\n"
        f"Schedule: {', '.join(record.schedule) or '-'}\n\n"
        f"{record.description}",
        title="📘 Course",
    ))


# ─────────────────────────────────────────────────────────────────────────────
# Reservation Commands
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def reserve(
    room_id: str = typer.Argument(..., help="Room identifier."),
    date: str = typer.Argument(..., help="Date, YYYY-MM-DD."),
    start: str = typer.Argument(..., help="Start time, HH:MM."),
    end: str = typer.Argument(..., help="End time, HH:MM."),
    purpose: str = typer.Option("학습", "--purpose", "-p", help="Purpose shown on the booking."),
):
    """📅 Reserve a library study room."""
    result = _run(lambda aggregator: aggregator.reserve_room(room_id, date, start, end, purpose))
    if result.success:
        console.print(f"[green]✓ Reserved (id: {result.reservation_id}) {result.message}[/green]")
    else:
        console.print(f"[red]Reservation refused: {result.message}[/red]")
        raise typer.Exit(1)


@app.command()
def cancel(reservation_id: str = typer.Argument(..., help="Reservation identifier.")):
    """🗑️ Cancel a study room reservation."""
    result = _run(lambda aggregator: aggregator.cancel_reservation(reservation_id))
    if result.success:
        console.print(f"[green]✓ Cancelled {reservation_id}[/green]")
    else:
        console.print(f"[red]Cancellation refused: {result.message}[/red]")
        raise typer.Exit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Info Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def info():
    """
    ℹ️ Show configuration.

    Displays platforms, cache settings and routes. Credentials are only
    reported as configured or missing.
    """
    from campusbot import __version__
    from campusbot.scraping.aggregator import DEFAULT_ROUTES
    from campusbot.shared.config import DEFAULT_CONFIG_FILE, get_settings

    settings = get_settings()

    console.print(Panel(
        f"[bold]CampusBot[/bold]\n"
        f"Version: {__version__}\n"
        f"Config: {DEFAULT_CONFIG_FILE}\n"
        f"Credentials: {'configured' if settings.credentials else 'missing'}",
        title="ℹ️ Info",
    ))

    console.print("\n[bold]Platforms:[/bold]")
    table = Table()
    table.add_column("Name")
    table.add_column("Base URL")
    table.add_column("Login path")
    for name, platform in settings.platforms.items():
        table.add_row(name, platform.base_url, platform.login_path)
    console.print(table)

    console.print("\n[bold]Routes:[/bold]")
    routes = {**DEFAULT_ROUTES, **{k: tuple(v) for k, v in settings.aggregation.routes.items()}}
    for category, platforms in routes.items():
        ttl = settings.cache.category_ttl.get(category, settings.cache.default_ttl)
        console.print(f"  {category}: {', '.join(platforms)} [dim](ttl {ttl:.0f}s)[/dim]")

    console.print("\n[bold]Cache:[/bold]")
    console.print(json.dumps(settings.cache.model_dump(exclude={"category_ttl"}), indent=2))


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def cli():
    """CLI entry point."""
    app()


if __name__ == "__main__":
    cli()
