"""thinkloop CLI entry point."""

import typer
from rich.console import Console

from thinkloop.api.cli.commands import config, profiles, run

app = typer.Typer(
    name="thinkloop",
    help="thinkloop - run think/act/observe agents from YAML profiles",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

# Register command groups
app.add_typer(run.app, name="run", help="Run agents")
app.add_typer(profiles.app, name="profiles", help="Agent profiles")
app.add_typer(config.app, name="config", help="Configuration")


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: str = typer.Option(
        "configs", "--config-dir", "-c", help="Directory holding agent profiles"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """thinkloop agent CLI."""
    # Store global options in context for subcommands
    ctx.obj = {"config_dir": config_dir, "verbose": verbose}


@app.command()
def version():
    """Show thinkloop version."""
    from thinkloop import __version__

    console.print(f"[bold blue]thinkloop[/bold blue] version [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()
