"""Typer CLI entrypoint for the listing importer."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import ConfigRepository
from .engine import parse_address
from .errors import JobNotFound, JobValidationError
from .infra import SQLiteListingStore, SQLiteManager
from .logging_conf import configure_logging, default_log_files, tail_log
from .models import JobSnapshot, JobState
from .orchestrator import JobOrchestrator
from .scheduler import APSchedulerAdapter

app = typer.Typer(
    help="Import business listings into prospect lists.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
list_app = typer.Typer(name="list", help="Manage destination lists.", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Inspect log files.", no_args_is_help=True)
app.add_typer(list_app, name="list")
app.add_typer(log_app, name="log")

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    store: SQLiteListingStore
    orchestrator: JobOrchestrator


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    config = repository.load()
    store = SQLiteListingStore(SQLiteManager(), repository.store_path())
    orchestrator = JobOrchestrator(
        config,
        store,
        scheduler=APSchedulerAdapter(),
    )
    return AppState(repository=repository, store=store, orchestrator=orchestrator)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging.", is_flag=True),
) -> None:
    ctx.obj = build_state(verbose)


def _render_job(snapshot: JobSnapshot) -> Table:
    table = Table(title=f"Job {snapshot.id}", box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Field", style="dim")
    table.add_column("Value", style="cyan")
    table.add_row("State", snapshot.state.value)
    table.add_row("Search", f"{snapshot.search_term} @ {snapshot.location}")
    table.add_row("Retrieved", str(snapshot.progress_count))
    table.add_row("Processed", f"{snapshot.saved_count}/{snapshot.total_to_save}")
    table.add_row("Imported", str(snapshot.imported_count))
    table.add_row("Message", snapshot.message)
    if snapshot.error:
        table.add_row("Error", snapshot.error)
    return table


def _follow_job(
    orchestrator: JobOrchestrator, job_id: str, snapshot: JobSnapshot, poll_interval: float
) -> JobSnapshot:
    try:
        with console.status(escape(snapshot.message)) as status:
            while not snapshot.state.terminal:
                time.sleep(poll_interval)
                snapshot = orchestrator.get_status(job_id)
                status.update(escape(f"[{snapshot.state.value}] {snapshot.message}"))
        return orchestrator.wait(job_id)
    except KeyboardInterrupt:
        try:
            orchestrator.cancel(job_id)
            return orchestrator.wait(job_id)
        except JobNotFound:
            pass
    except JobNotFound:
        pass
    # 任务已被回收，只能展示最后一次读到的状态
    console.print(f"Job {job_id} is no longer tracked; showing its last known status.", style="yellow")
    return snapshot


@list_app.command("create", help="Create a destination list and print its id.")
def list_create(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="List name."),
    description: str = typer.Option("", "--description", help="Optional description."),
) -> None:
    state = _get_state(ctx)
    try:
        created = state.store.create_list(name, description)
    except ValueError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1) from exc
    console.print(f"Created list [bold]{created.name}[/bold]: {created.id}")


@list_app.command("show", help="Show the listings stored in a destination list.")
def list_show(
    ctx: typer.Context,
    list_id: str = typer.Argument(..., help="Destination list id."),
) -> None:
    state = _get_state(ctx)
    target = state.store.get_list(list_id)
    if target is None:
        console.print(f"Destination list not found: {list_id}", style="red")
        raise typer.Exit(code=1)
    listings = state.store.find_by_list(list_id)
    table = Table(title=f"{target.name} · {len(listings)} businesses", box=box.SIMPLE_HEAD)
    table.add_column("Name", style="cyan", overflow="fold")
    table.add_column("Phone", style="green")
    table.add_column("City", style="magenta")
    table.add_column("State")
    table.add_column("Website", overflow="fold")
    for stored in listings:
        listing = stored.listing
        table.add_row(listing.name, listing.phone, listing.city, listing.state, listing.website)
    console.print(table)


@app.command("run", help="Scrape a search and import the results into a list.")
def run(
    ctx: typer.Context,
    search_term: str = typer.Argument(..., help="What to search for, e.g. 'plumbers'."),
    location: str = typer.Argument(..., help="Where to search, e.g. 'Springfield, IL'."),
    list_id: str = typer.Option(..., "--list-id", help="Destination list id."),
    max_results: Optional[int] = typer.Option(None, "--max-results", help="Result cap."),
    poll_interval: float = typer.Option(1.0, "--poll-interval", help="Seconds between polls."),
) -> None:
    state = _get_state(ctx)
    orchestrator = state.orchestrator
    try:
        job_id = orchestrator.start(search_term, location, list_id, max_results)
    except JobValidationError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1) from exc

    snapshot = orchestrator.get_status(job_id)
    try:
        snapshot = _follow_job(orchestrator, job_id, snapshot, poll_interval)
    finally:
        orchestrator.shutdown(cancel_running=True)

    console.print(_render_job(snapshot))
    if snapshot.state is JobState.FAILED:
        raise typer.Exit(code=1)


@app.command("parse-address", help="Show how a combined address string is split.")
def parse_address_command(text: str = typer.Argument(..., help="Combined address.")) -> None:
    address = parse_address(text)
    table = Table(box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Part", style="dim")
    table.add_column("Value", style="cyan")
    for part in ("street", "apt_unit", "city", "state", "zip_code"):
        table.add_row(part, getattr(address, part))
    console.print(table)


@log_app.command("tail", help="Print the last lines of the importer log.")
def log_tail(
    lines: int = typer.Option(50, "--lines", "-n", help="Number of lines."),
    errors: bool = typer.Option(False, "--errors", help="Read error.log instead.", is_flag=True),
) -> None:
    importer_log, error_log = default_log_files()
    path = error_log if errors else importer_log
    content = tail_log(path, lines)
    if not content:
        console.print(f"No log entries in {path}", style="dim")
        return
    for line in content:
        console.print(line.rstrip("\n"), markup=False, highlight=False)


__all__ = ["AppState", "app", "build_state"]
