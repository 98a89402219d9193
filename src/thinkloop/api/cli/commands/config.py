"""Config command - show effective settings."""

import typer
from rich.console import Console
from rich.table import Table

from thinkloop.application.settings import get_settings

app = typer.Typer(help="Configuration")
console = Console()


@app.command("show")
def show_config():
    """
    Show the effective settings (defaults, .env and THINKLOOP_* variables).

    Examples:
        thinkloop config show
        THINKLOOP_DEFAULT_MODEL=gpt-4.1 thinkloop config show
    """
    settings = get_settings()

    table = Table(title="thinkloop Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")
    for key, value in settings.model_dump().items():
        table.add_row(key, str(value))
    console.print(table)
