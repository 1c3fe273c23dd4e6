"""
Celery worker commands.

Each worker consumes exactly one queue so screenshot processing and
integration sync can be scaled independently.
"""
from enum import Enum
from typing import List

import typer
from rich.console import Console

from app.core.config import settings, SCREENSHOT_QUEUE, INTEGRATION_SYNC_QUEUE

console = Console()


class WorkerKind(str, Enum):
    screenshots = "screenshots"
    integrations = "integrations"


def worker_argv(kind: WorkerKind, loglevel: str = "INFO") -> List[str]:
    """Celery worker arguments for one queue with its configured concurrency."""
    if kind == WorkerKind.screenshots:
        queue, concurrency = SCREENSHOT_QUEUE, settings.screenshot_worker_concurrency
    else:
        queue, concurrency = INTEGRATION_SYNC_QUEUE, settings.integration_sync_worker_concurrency
    return [
        "worker",
        "--queues", queue,
        "--concurrency", str(concurrency),
        "--hostname", f"{kind.value}@%h",
        "--loglevel", loglevel,
    ]


def start(
    kind: WorkerKind = typer.Argument(..., help="Queue to consume"),
    loglevel: str = typer.Option(None, "--loglevel", "-l", help="Celery log level (defaults to LOG_LEVEL)"),
):
    """Start a Celery worker bound to one queue."""
    from app.core.celery_app import get_celery_app

    argv = worker_argv(kind, (loglevel or settings.log_level).upper())
    console.print(f"[cyan]Starting {kind.value} worker:[/cyan] {' '.join(argv[1:])}")
    get_celery_app().worker_main(argv=argv)
