"""Sessions command - Manage investigation sessions."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from failure_analyst.application.factory import InvestigationFactory
from failure_analyst.core.domain.checkpoint import session_to_dict
from failure_analyst.core.domain.errors import SessionStoreError

app = typer.Typer(help="Session management")
console = Console()


def _create_store(ctx: typer.Context):
    opts = ctx.obj or {}
    factory = InvestigationFactory(opts.get("config_dir", "configs"))
    config = factory.load_profile(opts.get("profile", "dev"))
    return factory.create_session_store(config)


@app.command("list")
def list_sessions(ctx: typer.Context):
    """List all investigation sessions."""
    store = _create_store(ctx)

    async def collect():
        rows = []
        for session_id in await store.list_sessions():
            try:
                session = await store.load(session_id)
            except SessionStoreError as e:
                rows.append((session_id, "?", f"unreadable: {e}", "", ""))
                continue
            if session is not None:
                rows.append(
                    (
                        session_id,
                        session.engine.value,
                        session.state.value,
                        str(session.cycle_count),
                        session.updated_at,
                    )
                )
        return rows

    table = Table(title="Investigation Sessions")
    table.add_column("Session ID", style="cyan")
    table.add_column("Engine", style="white")
    table.add_column("State", style="green")
    table.add_column("Steps", style="yellow")
    table.add_column("Updated", style="white")

    for row in asyncio.run(collect()):
        table.add_row(*row)

    console.print(table)


@app.command("show")
def show_session(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
):
    """Show the full checkpoint of a session."""
    store = _create_store(ctx)
    session = asyncio.run(store.load(session_id))

    if not session:
        console.print(f"[red]Session '{session_id}' not found[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold]Session:[/bold] {session_id}")
    console.print(f"[bold]Context:[/bold] {session.context}")
    console.print(f"[bold]State:[/bold] {session.state.value}")
    console.print_json(data=session_to_dict(session))


@app.command("delete")
def delete_session(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
):
    """Delete a session."""
    store = _create_store(ctx)
    if not asyncio.run(store.delete(session_id)):
        console.print(f"[red]Session '{session_id}' not found[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Deleted session {session_id}[/green]")


@app.command("cleanup")
def cleanup_sessions(
    ctx: typer.Context,
    days: int = typer.Option(30, "--days", help="Remove sessions older than this"),
):
    """Remove old session checkpoints (file store only)."""
    store = _create_store(ctx)
    if not hasattr(store, "cleanup_old_sessions"):
        console.print("[yellow]The configured store does not keep old sessions[/yellow]")
        return
    removed = store.cleanup_old_sessions(days=days)
    console.print(f"Removed {len(removed)} session(s)")
