"""Failure Analyst CLI entry point."""

import logging

import structlog
import typer
from dotenv import load_dotenv
from rich.console import Console

from failure_analyst.api.cli.commands import run, sessions, tools

app = typer.Typer(
    name="failure-analyst",
    help="Failure Analyst - resumable root-cause analysis for operational failures",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

app.add_typer(run.app, name="run", help="Run investigations")
app.add_typer(sessions.app, name="sessions", help="Session management")
app.add_typer(tools.app, name="tools", help="Tool management")


def configure_logging(debug: bool) -> None:
    """Show structlog output at DEBUG with --debug, only warnings otherwise."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


@app.callback()
def main(
    ctx: typer.Context,
    profile: str = typer.Option("dev", "--profile", "-p", help="Configuration profile"),
    config_dir: str = typer.Option("configs", "--config-dir", "-c", help="Configuration directory"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Failure Analyst CLI."""
    load_dotenv()
    configure_logging(debug)
    # Store global options in context for subcommands
    ctx.obj = {"profile": profile, "config_dir": config_dir, "debug": debug}


@app.command()
def version():
    """Show Failure Analyst version."""
    from failure_analyst import __version__

    console.print(f"[bold blue]Failure Analyst[/bold blue] version [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()
