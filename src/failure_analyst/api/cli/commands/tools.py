"""Tools command - List and inspect configured diagnostic tools."""

import typer
from rich.console import Console
from rich.table import Table

from failure_analyst.application.factory import InvestigationFactory
from failure_analyst.core.domain.errors import UnknownToolError

app = typer.Typer(help="Tool management")
console = Console()


def _create_registry(ctx: typer.Context):
    opts = ctx.obj or {}
    factory = InvestigationFactory(opts.get("config_dir", "configs"))
    return factory.create_tool_registry(factory.load_profile(opts.get("profile", "dev")))


@app.command("list")
def list_tools(ctx: typer.Context):
    """List available tools."""
    registry = _create_registry(ctx)

    table = Table(title="Available Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description", style="white")

    for tool in registry.list_tool_descriptions():
        table.add_row(tool.name, tool.description)

    console.print(table)


@app.command("inspect")
def inspect_tool(
    ctx: typer.Context,
    tool_name: str = typer.Argument(..., help="Tool name to inspect"),
):
    """Inspect tool details and parameters."""
    registry = _create_registry(ctx)
    try:
        tool = registry.get_tool(tool_name).describe()
    except UnknownToolError:
        console.print(f"[red]Tool '{tool_name}' not found[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold cyan]{tool.name}[/bold cyan]")
    console.print(f"{tool.description}\n")

    console.print("[bold]Parameters:[/bold]")
    console.print_json(data=tool.to_schema())
