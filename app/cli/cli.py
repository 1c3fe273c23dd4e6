"""
Main CLI application using Typer.

Entry point: python -m app.cli
CLI Name: trackline-admin
"""
import typer

from app import __version__ as app_version

app = typer.Typer(
    name="trackline-admin",
    help="Trackline Admin CLI - workers and integration sync tools",
)

@app.command()
def version():
    """Show CLI version information."""
    typer.echo(f"Trackline CLI version {app_version}")

# Register command groups
from app.cli.commands import sync, worker
app.command("worker")(worker.start)
app.add_typer(sync.app, name="sync")
