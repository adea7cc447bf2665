"""Run command - Investigate a failure to completion."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from failure_analyst.application.factory import InvestigationFactory
from failure_analyst.core.domain.errors import InvestigationFailedError

app = typer.Typer(help="Run investigations")
console = Console()


@app.command("investigate")
def investigate(
    ctx: typer.Context,
    context: Optional[str] = typer.Argument(
        None, help="Failure description (omit when resuming with --session)"
    ),
    session_id: Optional[str] = typer.Option(
        None, "--session", "-s", help="Resume an existing session"
    ),
    mode: Optional[str] = typer.Option(
        None, "--mode", "-m", help="Engine mode: react or hypothesis (overrides profile)"
    ),
    max_invocations: int = typer.Option(
        100, "--max-invocations", help="Maximum number of engine steps"
    ),
):
    """Investigate a failure and print the root-cause analysis.

    Examples:
        # Tree-of-Thought investigation with the dev profile
        failure-analyst run investigate "Checkout API p99 latency spiked at 10:32 UTC"

        # Plain ReAct loop
        failure-analyst run investigate "Nightly batch job failed" --mode react

        # Resume an interrupted session
        failure-analyst run investigate --session 3f2a...
    """
    global_opts = ctx.obj or {}
    profile = global_opts.get("profile", "dev")
    debug = global_opts.get("debug", False)

    if not context and not session_id:
        console.print("[red]Provide a failure description or --session to resume[/red]")
        raise typer.Exit(1)

    factory = InvestigationFactory(global_opts.get("config_dir", "configs"))
    try:
        executor = factory.create_executor(profile=profile, mode=mode)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)

    session_id = session_id or executor.generate_session_id()
    console.print(f"[bold]Session:[/bold] {session_id}")

    with Progress(
        SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console
    ) as progress:
        task = progress.add_task("[>] Investigating...", total=None)

        def progress_callback(update):
            if debug:
                progress.update(task, description=f"[>] {update.message[:100]}")
            else:
                progress.update(
                    task, description=f"[>] Step {update.details.get('cycle_count', 0)}"
                )

        try:
            session = asyncio.run(
                executor.run_to_completion(
                    context,
                    session_id=session_id,
                    max_invocations=max_invocations,
                    progress_callback=progress_callback,
                )
            )
        except (InvestigationFailedError, ValueError) as e:
            progress.stop()
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

    title = "Root-Cause Analysis"
    if session.forced_completion:
        title += " (step limit reached)"
    console.print(Panel(Markdown(session.final_answer or ""), title=title))
    console.print(
        f"[dim]Steps: {session.cycle_count} | Reason: "
        f"{session.completion_reason.value if session.completion_reason else 'n/a'}[/dim]"
    )
