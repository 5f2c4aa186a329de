"""CLI interface for evergreen."""
import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from evergreen.config import Settings
from evergreen.errors import ConfigError, PipelineError, SessionError
from evergreen.export import DEFAULT_ARCHIVE
from evergreen.links import build_graph
from evergreen.service import NoteService
from evergreen.session import Status, display_notes

app = typer.Typer(
    name="evergreen",
    help="Turn book text into a network of interlinked evergreen notes.",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from evergreen import __version__

        console.print(f"evergreen {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    session: Annotated[
        Optional[Path], typer.Option("--session", "-s", help="Session file (default: EVERGREEN_SESSION_PATH).")
    ] = None,
    strategy: Annotated[
        Optional[str], typer.Option("--strategy", help="Interlink strategy: batch or per_note.")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", help="Debug logging.")] = False,
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit.", callback=version_callback, is_eager=True),
    ] = False,
) -> None:
    """Evergreen - resumable book-to-notes pipeline."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        ctx.obj = Settings.from_env().with_overrides(session_path=session, interlink_strategy=strategy)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(2)


def _show_progress(update: dict) -> None:
    if update.get("stage"):
        console.print(f"[cyan]{update['stage']}[/cyan]")
    if "titles" in update:
        console.print(f"Found {len(update['titles'])} concepts.")


def _service(ctx: typer.Context, with_gateway: bool = False) -> NoteService:
    try:
        return NoteService.from_settings(ctx.obj, with_gateway=with_gateway, listener=_show_progress)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(2)


def _execute(coro) -> None:
    try:
        notes = asyncio.run(coro)
    except PipelineError as exc:
        console.print(f"[red]Processing failed:[/red] {exc}")
        console.print("Your progress is saved. Run [bold]evergreen resume[/bold] to continue.")
        raise typer.Exit(1)
    except SessionError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Done.[/green] {len(notes)} interlinked notes.")


@app.command()
def process(
    ctx: typer.Context,
    book_file: Annotated[Path, typer.Argument(exists=True, dir_okay=False, help="Plain-text book content.")],
    force: Annotated[bool, typer.Option("--force", help="Discard an unfinished session.")] = False,
) -> None:
    """Start a new session from BOOK_FILE."""
    service = _service(ctx, with_gateway=True)
    existing = service.store.load()
    if existing is not None and existing.status in (Status.PROCESSING, Status.ERROR) and not force:
        console.print(
            "[yellow]An unfinished session exists.[/yellow] Run [bold]evergreen resume[/bold], or pass --force to discard it."
        )
        raise typer.Exit(1)
    _execute(service.start(book_file.read_text(encoding="utf-8")))


@app.command()
def resume(ctx: typer.Context) -> None:
    """Continue the stored session from its last checkpoint."""
    _execute(_service(ctx, with_gateway=True).resume())


@app.command()
def status(ctx: typer.Context) -> None:
    """Show where the stored session stands."""
    session = _service(ctx).load()
    console.print(f"Status: [bold]{session.status.value}[/bold] (phase: {session.phase.value})")
    if session.stage:
        console.print(f"Stage: {session.stage}")
    console.print(f"Concepts: {len(session.titles)}")
    console.print(f"Notes generated: {len(session.unlinked_notes)}/{len(session.titles)}")
    console.print(f"Notes linked: {len(session.final_notes)}")
    if session.error:
        console.print(f"[red]Error:[/red] {session.error}")


@app.command()
def notes(ctx: typer.Context) -> None:
    """List the session's notes and their outgoing links."""
    session = _service(ctx).load()
    shown = display_notes(session)
    if not shown:
        console.print("No notes yet.")
        return
    _, edges = build_graph(shown)
    outgoing: dict[str, int] = {}
    for source, _target in edges:
        outgoing[source] = outgoing.get(source, 0) + 1
    table = Table("Id", "Title", "Links")
    for note in shown:
        table.add_row(note.id, note.title, str(outgoing.get(note.id, 0)))
    console.print(table)


@app.command()
def export(
    ctx: typer.Context,
    output: Annotated[Path, typer.Argument(help="Zip archive to write.")] = Path(DEFAULT_ARCHIVE),
) -> None:
    """Export completed notes as Markdown files in a zip archive."""
    try:
        path = _service(ctx).export(output)
    except SessionError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print(f"Wrote {path}")


@app.command()
def reset(
    ctx: typer.Context,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")] = False,
) -> None:
    """Delete the stored session and all of its notes."""
    if not yes and not typer.confirm("Clear the current session? All notes will be permanently deleted."):
        raise typer.Exit()
    _service(ctx).reset()
    console.print("Session cleared.")
