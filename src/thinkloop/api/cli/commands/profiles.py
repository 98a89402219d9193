"""Profiles command - list and inspect agent profiles."""

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from thinkloop.application.factory import AgentFactory
from thinkloop.application.settings import get_settings
from thinkloop.core.domain.errors import ConfigurationError

app = typer.Typer(help="Agent profiles")
console = Console()


def _factory(ctx: typer.Context) -> AgentFactory:
    global_opts = ctx.obj or {}
    return AgentFactory(settings=get_settings(), config_dir=global_opts.get("config_dir", "configs"))


@app.command("list")
def list_profiles(ctx: typer.Context):
    """List the profiles in the config directory."""
    factory = _factory(ctx)
    names = factory.list_profiles()
    if not names:
        console.print(f"[yellow]No profiles found in {factory.config_dir}[/yellow]")
        return

    table = Table(title=f"Profiles in {factory.config_dir}")
    table.add_column("Name", style="cyan")
    table.add_column("Description", style="white")
    for name in names:
        try:
            description = factory.load_profile(name).description
        except ConfigurationError as e:
            description = f"[red]invalid: {escape(str(e))}[/red]"
        table.add_row(name, description)
    console.print(table)


@app.command("show")
def show_profile(
    ctx: typer.Context,
    profile: str = typer.Argument(..., help="Profile name or path"),
):
    """Show a profile's settings."""
    try:
        loaded = _factory(ctx).load_profile(profile)
    except ConfigurationError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Profile: {loaded.name}")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")
    for key, value in loaded.model_dump().items():
        table.add_row(key, str(value))
    console.print(table)
