"""Command-line interface for the day tracker."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import typer

from .config import load_settings, persist_settings
from .db import database_connection, mark_break_revoked
from .errors import BreakNotFound
from .paths import get_db_path, get_log_path

app = typer.Typer(help="Workday time accounting from system activity signals.")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@app.callback(no_args_is_help=True)
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs."),
    log_file: bool = typer.Option(
        False, "--log-file", help="Also write logs to the application log file."
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )
    if log_file:
        handler = logging.FileHandler(get_log_path(), encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the tracker SQLite database."
    ),
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Open the interactive API docs in your default browser.",
    ),
) -> None:
    """Start the local API with the background collector."""
    from .server_runner import run_dashboard

    run_dashboard(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        open_browser=open_browser,
    )


@app.command()
def summary(
    day: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) to summarize. Defaults to today.",
    ),
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the tracker SQLite database.",
    ),
) -> None:
    """Print the workday metrics for a specific day."""
    from .reporting import SummaryPrinter

    SummaryPrinter(db_path=db_path or get_db_path()).print_daily_summary(_parse_day(day))


@app.command()
def breaks(
    day: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) to list breaks for. Defaults to today.",
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the tracker SQLite database."
    ),
) -> None:
    """List stored breaks with their ids."""
    from .reporting import SummaryPrinter

    SummaryPrinter(db_path=db_path or get_db_path()).print_breaks(_parse_day(day))


@app.command()
def revoke(
    break_id: str = typer.Argument(..., help="Id of the break to revoke."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the tracker SQLite database."
    ),
) -> None:
    """Mark a stored break as revoked so it counts as working time."""
    try:
        parsed = uuid.UUID(break_id)
    except ValueError as exc:
        raise typer.BadParameter("break id must be a UUID") from exc
    with database_connection(db_path or get_db_path()) as conn:
        try:
            mark_break_revoked(conn, parsed, datetime.now())
        except BreakNotFound as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc
    typer.echo(f"Break {parsed} revoked.")


@app.command()
def settings(
    workday_hours: Optional[float] = typer.Option(
        None, "--workday-hours", min=0.5, help="Length of the workday including breaks."
    ),
    break_minutes: Optional[float] = typer.Option(
        None, "--break-minutes", min=0.0, help="Break time allowed per day."
    ),
    idle_minutes: Optional[float] = typer.Option(
        None,
        "--idle-minutes",
        min=0.5,
        help="Minutes without activity before a break starts.",
    ),
    sample_seconds: Optional[float] = typer.Option(
        None, "--interval", min=1.0, help="Sampling interval in seconds."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the tracker SQLite database."
    ),
) -> None:
    """Show the stored settings, updating any that are given."""
    from datetime import timedelta

    with database_connection(db_path or get_db_path()) as conn:
        current = load_settings(conn)
        if workday_hours is not None:
            current.workday_duration = timedelta(hours=workday_hours)
        if break_minutes is not None:
            current.allowed_break_duration = timedelta(minutes=break_minutes)
        if idle_minutes is not None:
            current.inactivity_threshold = timedelta(minutes=idle_minutes)
        if sample_seconds is not None:
            current.sample_interval = timedelta(seconds=sample_seconds)
        if any(value is not None for value in (workday_hours, break_minutes, idle_minutes, sample_seconds)):
            persist_settings(conn, current)

    typer.echo(f"Workday duration:      {current.workday_duration}")
    typer.echo(f"Allowed break:         {current.allowed_break_duration}")
    typer.echo(f"Inactivity threshold:  {current.inactivity_threshold}")
    typer.echo(f"Sampling interval:     {current.sample_interval}")


def _parse_day(value: Optional[str]) -> date:
    if not value:
        return date.today()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise typer.BadParameter("date must be in YYYY-MM-DD format") from exc
