"""CLI entry point for inspecting and moving document states.

Provides commands:
  - status: Document counts by state, per collection
  - show: Current state and fields of one document
  - init: Create or load a document and give it an initial state
  - transition: Write a new state and save it (--dry-run previews without saving)
  - history: Logged state transitions of one document
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from statefield.config import CoordinatorConfig, load_config
from statefield.coordinator import StateCoordinator
from statefield.database import DocumentStore
from statefield.lifecycle import ValidationCycle
from statefield.models import PersistOptions
from statefield.records import DocumentRecord

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="statefield - inspect and move persisted state machine states",
    rich_markup_mode="rich",
)
console = Console()


@app.callback()
def app_callback(
    ctx: typer.Context,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to JSON config file"),
    ] = None,
    db_path: Annotated[
        Optional[Path],
        typer.Option("--db", "-d", help="Path to SQLite database (overrides config)"),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Log coordinator activity to stderr"),
    ] = False,
) -> None:
    """Load configuration shared by all commands."""
    config = load_config(config_path)
    if db_path is not None:
        config.db_path = db_path

    if debug:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        pkg_logger = logging.getLogger("statefield")
        pkg_logger.addHandler(handler)
        pkg_logger.setLevel(logging.DEBUG)

    ctx.obj = config


def get_config(ctx: typer.Context) -> CoordinatorConfig:
    """Type-safe accessor for the config stored on the Typer context."""
    if ctx.obj is None:
        return load_config()
    return ctx.obj


def _open_store(config: CoordinatorConfig, validation: ValidationCycle | None = None) -> DocumentStore:
    return DocumentStore(
        config.db_path,
        state_field=config.state_field,
        validation=validation,
        read_only_collections=config.read_only_collections,
    )


def _load_or_exit(store: DocumentStore, collection: str, doc_id: str) -> DocumentRecord:
    record = store.load(collection, doc_id)
    if record is None:
        console.print(f"[red]Document not found:[/red] {collection}/{doc_id}")
        raise typer.Exit(code=1)
    return record


@app.command()
def status(
    ctx: typer.Context,
    collection: Annotated[
        Optional[str],
        typer.Option("--collection", help="Only show this collection"),
    ] = None,
) -> None:
    """Display document counts by state."""
    config = get_config(ctx)
    if not config.db_path.exists():
        console.print(f"[yellow]Database not found:[/yellow] {config.db_path}")
        raise typer.Exit(code=1)

    with _open_store(config) as store:
        names = [collection] if collection else store.collections()
        console.print(Panel(f"Database: [bold]{config.db_path}[/bold]", title="State Status"))

        if not names:
            console.print("[dim]No documents stored.[/dim]")
            return

        for name in names:
            table = Table(title=f"{name} by {config.state_field}")
            table.add_column("State", style="bold")
            table.add_column("Count", justify="right")
            for state, count in sorted(store.state_counts(name).items()):
                table.add_row(state or "[dim](blank)[/dim]", str(count))
            console.print(table)


@app.command()
def show(
    ctx: typer.Context,
    collection: Annotated[str, typer.Argument(help="Collection name")],
    doc_id: Annotated[str, typer.Argument(help="Document id")],
) -> None:
    """Show the current state and fields of one document."""
    config = get_config(ctx)
    with _open_store(config) as store:
        record = _load_or_exit(store, collection, doc_id)
        coordinator = StateCoordinator(config.state_field, lambda r: None)
        state = coordinator.read_current_state(record)

        console.print(
            Panel(
                f"State: [bold green]{state if state is not None else '(blank)'}[/bold green]",
                title=f"{collection}/{doc_id}",
            )
        )
        table = Table()
        table.add_column("Field", style="bold")
        table.add_column("Value")
        for name, value in sorted(record.fields.items()):
            table.add_row(name, repr(value))
        console.print(table)


@app.command()
def init(
    ctx: typer.Context,
    collection: Annotated[str, typer.Argument(help="Collection name")],
    doc_id: Annotated[str, typer.Argument(help="Document id")],
    initial: Annotated[
        str,
        typer.Option("--initial", "-i", help="Initial state for blank documents"),
    ],
) -> None:
    """Create or load a document, ensure its initial state, and save it."""
    config = get_config(ctx)
    coordinator = StateCoordinator(config.state_field, lambda r: initial)
    cycle = ValidationCycle(coordinator)

    with _open_store(config, validation=cycle) as store:
        record = store.load(collection, doc_id) or DocumentRecord(collection=collection, doc_id=doc_id)
        if not store.persist(record, PersistOptions(validate=True)):
            console.print(f"[red]Save refused for[/red] {collection}/{doc_id}")
            raise typer.Exit(code=1)
        console.print(
            f"[green]{collection}/{doc_id}[/green] is in state "
            f"[bold]{coordinator.read_current_state(record)}[/bold]"
        )


@app.command()
def transition(
    ctx: typer.Context,
    collection: Annotated[str, typer.Argument(help="Collection name")],
    doc_id: Annotated[str, typer.Argument(help="Document id")],
    state: Annotated[str, typer.Argument(help="Target state")],
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Apply the state in memory and report it; nothing is saved"),
    ] = False,
) -> None:
    """Move a document to a new state."""
    config = get_config(ctx)
    coordinator = StateCoordinator(
        config.state_field, lambda r: None, restore_on_fault=config.restore_on_fault
    )

    with _open_store(config) as store:
        record = _load_or_exit(store, collection, doc_id)
        previous = coordinator.read_current_state(record)

        if dry_run:
            coordinator.write_deferred(record, state)
            console.print(
                f"[yellow]{previous} -> {state}[/yellow] (dry run, not saved)"
            )
            return

        outcome = coordinator.write_durable(record, state, store)
        if not outcome:
            console.print(
                f"[red]Rolled back:[/red] {collection}/{doc_id} stays in {outcome.previous}"
            )
            raise typer.Exit(code=1)
        console.print(f"[green]{previous} -> {state}[/green]")


@app.command()
def history(
    ctx: typer.Context,
    collection: Annotated[str, typer.Argument(help="Collection name")],
    doc_id: Annotated[str, typer.Argument(help="Document id")],
) -> None:
    """Show logged state transitions for one document."""
    config = get_config(ctx)
    with _open_store(config) as store:
        entries = store.state_history(collection, doc_id)
        if not entries:
            console.print(f"[dim]No state changes logged for {collection}/{doc_id}[/dim]")
            return

        table = Table(title=f"{collection}/{doc_id} history")
        table.add_column("Timestamp")
        table.add_column("From")
        table.add_column("To", style="bold")
        for entry in entries:
            table.add_row(entry.timestamp, entry.old_state or "(blank)", entry.new_state or "(blank)")
        console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
