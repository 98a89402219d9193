"""Run command - execute an agent on a goal."""

import asyncio
import json
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text

from thinkloop.application.factory import AgentFactory
from thinkloop.application.logging import configure_logging
from thinkloop.application.settings import get_settings
from thinkloop.core.domain.errors import ThinkloopError
from thinkloop.core.domain.events import HookEvent
from thinkloop.core.domain.models import AgentRunResult
from thinkloop.core.domain.schemas import to_plain

app = typer.Typer(help="Run agents")
console = Console()


@app.command("goal")
def run_goal(
    ctx: typer.Context,
    goal: str = typer.Argument(..., help="Goal for the agent"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Agent profile name or path"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model override"),
    max_iterations: Optional[int] = typer.Option(
        None, "--max-iterations", "-n", min=1, help="Iteration budget override"
    ),
    stream: bool = typer.Option(False, "--stream", help="Stream model output"),
):
    """Run an agent on a goal.

    Examples:
        # Default assistant with settings from THINKLOOP_* variables
        thinkloop run goal "Summarize the plot of Hamlet"

        # Agent profile from configs/researcher.yaml, streamed
        thinkloop run goal "Who invented the telephone?" --profile researcher --stream
    """
    global_opts = ctx.obj or {}
    verbose = global_opts.get("verbose", False)

    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, json_output=settings.log_json)

    factory = AgentFactory(settings=settings, config_dir=global_opts.get("config_dir", "configs"))
    try:
        if profile:
            agent = factory.create_agent_from_profile(
                profile,
                model=model,
                max_iterations=max_iterations,
                enable_streaming=stream or None,
                verbose=verbose or None,
            )
        else:
            agent = factory.create_agent(
                "assistant",
                model=model,
                max_iterations=max_iterations,
                enable_streaming=stream,
                verbose=verbose,
            )
    except ThinkloopError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold]Goal:[/bold] {escape(goal)}")
    console.print(f"[dim]Agent: {agent.name} | Models: {', '.join(agent.models)}[/dim]")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("[>] Thinking...", total=None)

        def on_think_end(payload):
            if payload.thought is None:
                return
            status = payload.thought.user_message or payload.thought.reasoning[:80]
            progress.update(task, description=f"[>] {escape(status)}")

        def on_tool_before(payload):
            progress.update(task, description=f"[>] Calling {escape(payload.call.tool_name)}")

        def on_stream_chunk(payload):
            progress.update(task, description=f"[>] {escape(payload.chunk.accumulated[-60:])}")

        agent.on(HookEvent.THINK_END, on_think_end)
        agent.on(HookEvent.TOOL_BEFORE, on_tool_before)
        agent.on(HookEvent.STREAM_CHUNK, on_stream_chunk)

        try:
            result = asyncio.run(agent.process(goal))
        except Exception as e:
            console.print(f"[red]Run failed:[/red] {escape(type(e).__name__)}: {escape(str(e))}")
            raise typer.Exit(1)

    print_result(result)
    if not result.ok:
        raise typer.Exit(2)


def print_result(result: AgentRunResult) -> None:
    """Render the run outcome and its usage."""
    output = to_plain(result.output)
    if not isinstance(output, str):
        output = json.dumps(output, indent=2, ensure_ascii=False, default=str)

    if result.ok:
        console.print(Panel(Text(output), title="[green]Completed[/green]", border_style="green"))
    else:
        console.print(
            f"[yellow]Iteration budget exhausted after {result.iterations} iterations[/yellow]"
        )

    usage = result.usage
    table = Table(title="Usage")
    table.add_column("Source", style="cyan")
    table.add_column("Requests", justify="right")
    table.add_column("Input tokens", justify="right")
    table.add_column("Output tokens", justify="right")
    table.add_column("Cost", justify="right")
    table.add_row(
        "total",
        str(usage.requests),
        str(usage.input_tokens),
        str(usage.output_tokens),
        f"{usage.cost.total:.6f}",
    )
    for source, part in usage.breakdown.items():
        table.add_row(
            source,
            str(part.requests),
            str(part.input_tokens),
            str(part.output_tokens),
            f"{part.cost.total:.6f}",
        )
    console.print(table)
