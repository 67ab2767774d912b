"""CLI application using Typer for listing sync, import and export."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..config.settings import settings
from ..core.errors import PropsyncError, ValidationFailure
from ..identity import ManualIdentitySource
from ..io.paths import default_export_path
from ..io.payload import build_import_link, build_join_link, parse_listing_payload
from ..io.portable import MergeImportExportService
from ..io.validation import validate_export_file
from ..monitor import SessionMonitor
from ..session import SyncSession
from ..store import create_store
from ..utils.logging import get_logger

app = typer.Typer(
    name="propsync",
    help="Property listing sync - workspaces, live collections, import and export",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

WORKSPACE_TIMEOUT = 30.0


async def _open_session(user_id: str) -> SyncSession:
    store = create_store(settings)
    session = SyncSession(store, ManualIdentitySource(user_id), settings)
    try:
        await session.wait_for_workspace(timeout=WORKSPACE_TIMEOUT)
    except asyncio.TimeoutError:
        await session.close()
        raise PropsyncError(f"Workspace for {user_id} did not resolve within {WORKSPACE_TIMEOUT:.0f}s")
    return session


@app.command()
def version() -> None:
    """Show version information."""
    from .. import __version__
    console.print(f"propsync v{__version__}")


@app.command()
def validate(
    file: Path = typer.Argument(..., help="Export file to validate", exists=True),
    strict: bool = typer.Option(False, "--strict", help="Treat warnings as errors"),
) -> None:
    """
    Validate an export file before importing it.

    Examples:
        propsync validate exports/listings.json
        propsync validate exports/listings.json --strict
    """
    passed = validate_export_file(file, strict=strict)
    if passed:
        console.print("\n[bold green]✓ Validation passed![/bold green]")
        raise typer.Exit(0)
    else:
        console.print("\n[bold red]✗ Validation failed![/bold red]")
        raise typer.Exit(1)


@app.command("parse-listing")
def parse_listing(
    file: Path = typer.Argument(..., help="JSON file with one listing", exists=True),
    link: bool = typer.Option(False, "--link", help="Also print an import link"),
) -> None:
    """Parse a single-listing payload and show the resulting fields."""
    try:
        payload = parse_listing_payload(file.read_text(encoding="utf-8"))
    except ValidationFailure as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    table = Table(title="Listing", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="magenta")
    for name, value in payload.model_dump(mode="json").items():
        table.add_row(name, "" if value is None else str(value))
    console.print(table)
    if link:
        console.print(build_import_link(payload), soft_wrap=True)


@app.command("join-link")
def join_link(workspace_id: str = typer.Argument(..., help="Workspace to share")) -> None:
    """Print the link another user opens to request joining a workspace."""
    console.print(build_join_link(workspace_id), soft_wrap=True)


@app.command()
def export(
    user: str = typer.Option(..., "--user", "-u", help="User whose workspace is exported"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: timestamped)"),
) -> None:
    """Export the user's workspace to a portable JSON document."""

    async def _run() -> Path:
        session = await _open_session(user)
        async with session:
            document = await session.export()
            target = output or default_export_path(session.require_workspace().id or "workspace")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(MergeImportExportService.dumps(document), encoding="utf-8")
            console.print(f"[green]Exported {len(document.listings)} listings[/green]")
            return target

    try:
        target = asyncio.run(_run())
    except PropsyncError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    console.print(f"Saved to: {target}")


@app.command("import")
def import_listings(
    file: Path = typer.Argument(..., help="Export file to import", exists=True),
    user: str = typer.Option(..., "--user", "-u", help="User whose workspace receives the listings"),
    replace: bool = typer.Option(False, "--replace", help="Delete the workspace's properties first"),
) -> None:
    """Merge an export file into the user's workspace."""

    async def _run():
        session = await _open_session(user)
        async with session:
            return await session.import_json(file.read_bytes(), replace_existing=replace)

    try:
        result = asyncio.run(_run())
    except PropsyncError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    table = Table(title="Import Result", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Imported", str(result.imported_count))
    table.add_row("Skipped", str(result.skipped_count))
    table.add_row("Errors", str(len(result.errors)))
    console.print(table)
    for error in result.errors[:20]:
        console.print(f"  [yellow]⚠ {escape(error)}[/yellow]")
    if not result.success:
        console.print(f"[bold red]✗ {escape(result.message)}[/bold red]")
        raise typer.Exit(1)
    console.print(f"[bold green]✓ {result.message}[/bold green]")


@app.command()
def approve(
    request_id: str = typer.Argument(..., help="Join request to approve"),
    user: str = typer.Option(..., "--user", "-u", help="Approving workspace member"),
) -> None:
    """Approve a pending join request."""

    async def _run():
        session = await _open_session(user)
        async with session:
            return await session.approve_join_request(request_id)

    try:
        workspace = asyncio.run(_run())
    except PropsyncError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    console.print(
        f"[bold green]✓ Approved[/bold green] workspace {workspace.id} now has "
        f"{workspace.member_count} members"
    )


@app.command()
def watch(
    user: str = typer.Option(..., "--user", "-u", help="User to sign in as"),
    interval: float = typer.Option(2.0, "--interval", help="Refresh interval in seconds"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Stop after this many refreshes"),
) -> None:
    """Show live workspace, property, tag and join request counts."""

    async def _run() -> None:
        session = await _open_session(user)
        async with session:
            await SessionMonitor(session, console=console).watch(interval=interval, limit=limit)

    try:
        asyncio.run(_run())
    except PropsyncError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")


if __name__ == "__main__":
    app()
