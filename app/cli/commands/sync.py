"""
Integration sync commands.
"""
import asyncio
import uuid

import typer
from rich.console import Console
from rich.table import Table

from app.core.config import settings
from app.core.database import get_session_context
from app.core.exceptions import IntegrationError, IntegrationNotFoundError
from app.core.http_client import provider_http_client
from app.integrations.registry import build_provider_registry
from app.integrations.sync_service import SmartSyncService, SyncStats

app = typer.Typer(help="Integration sync commands")
console = Console()


async def _run_sync(integration_id: uuid.UUID, full: bool) -> SyncStats:
    async with provider_http_client() as client:
        registry = build_provider_registry(settings, http_client=client)
        with get_session_context() as session:
            return await SmartSyncService(session, registry).sync_integration(integration_id, full=full)


@app.command("run")
def run_sync(
    integration_id: str = typer.Argument(..., help="Integration id"),
    full: bool = typer.Option(False, "--full", help="Walk every parent instead of the smart limits"),
):
    """Run a resource sync inline, outside the worker."""
    try:
        parsed_id = uuid.UUID(integration_id)
    except ValueError:
        raise typer.BadParameter("Integration id must be a UUID.")

    mode = "full" if full else "smart"
    console.print(f"[cyan]Running {mode} sync for {parsed_id}...[/cyan]")
    try:
        stats = asyncio.run(_run_sync(parsed_id, full))
    except IntegrationNotFoundError:
        console.print("[red]Integration not found or inactive[/red]")
        raise typer.Exit(code=1)
    except IntegrationError as exc:
        console.print(f"[red]Sync failed ({exc.provider}): {exc.message}[/red]")
        raise typer.Exit(code=1)

    summary = Table(title="Sync Summary")
    summary.add_column("Level", style="cyan")
    summary.add_column("Resources", style="green")
    for level, count in stats.to_dict().items():
        summary.add_row(level, str(count))
    console.print(summary)
    console.print(f"[green]✓ Synced {stats.total} resources[/green]")


@app.command("providers")
def list_providers():
    """List catalogued providers."""
    registry = build_provider_registry(settings)
    table = Table(title="Providers")
    table.add_column("Id", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Enabled")
    table.add_column("Time tracking")
    table.add_column("Required env", style="dim")
    for meta in registry.get_all_metadata():
        table.add_row(
            meta.id,
            meta.display_name,
            "[green]yes[/green]" if meta.enabled else "[red]no[/red]",
            "yes" if meta.features.time_tracking else "no",
            ", ".join(meta.required_env),
        )
    console.print(table)
