"""
Background tasks for integration synchronization.

All tasks run on the integration-sync queue with five attempts and
exponential backoff from 5 seconds. A provider rate limit defers the retry
by the provider's Retry-After instead. Authentication failures and other
permanent errors are not retried.

Each job builds its own provider registry around a short-lived HTTP client
because every job runs in a fresh event loop (asyncio.run).
"""
import asyncio
import uuid
from typing import Any, Awaitable, Callable, Dict

from app.core.celery_app import celery_app
from app.core.config import settings, INTEGRATION_SYNC_QUEUE
from app.core.database import get_session_context
from app.core.exceptions import (
    AuthenticationError,
    IntegrationError,
    IntegrationNotFoundError,
    ProviderNotFoundError,
    ResourceNotFoundError,
    ResourceNotLinkedError,
    RateLimitError,
    TimeEntryNotFoundError,
)
from app.core.http_client import provider_http_client
from app.core.logging_config import log_error, log_info, log_warning
from app.integrations.registry import ProviderRegistry, build_provider_registry
from app.integrations.service import IntegrationService
from app.integrations.sync_service import SmartSyncService
from app.tasks.base import FailedJobTask

SYNC_MAX_RETRIES = 4
SYNC_BACKOFF_SECONDS = 5
SYNC_BACKOFF_MAX_SECONDS = 600

PERMANENT_ERRORS = (
    AuthenticationError,
    IntegrationNotFoundError,
    ProviderNotFoundError,
    ResourceNotFoundError,
    ResourceNotLinkedError,
    TimeEntryNotFoundError,
    ValueError,
)


class IntegrationTask(FailedJobTask):
    abstract = True
    queue_name = INTEGRATION_SYNC_QUEUE


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, PERMANENT_ERRORS):
        return False
    if isinstance(exc, IntegrationError) and exc.code == "REFRESH_UNSUPPORTED":
        return False
    return True


def retry_countdown(exc: BaseException, retries: int) -> int:
    """Seconds until the next attempt: the provider's Retry-After, else exponential backoff."""
    if isinstance(exc, RateLimitError) and exc.retry_after:
        return exc.retry_after
    return min(SYNC_BACKOFF_SECONDS * (2 ** retries), SYNC_BACKOFF_MAX_SECONDS)


def _retry_or_raise(task, exc: Exception):
    if not is_retryable(exc):
        log_warning(
            "Integration job failed permanently",
            task_name=task.name,
            error=f"{type(exc).__name__}: {exc}",
        )
        raise exc
    countdown = retry_countdown(exc, task.request.retries)
    log_warning(
        "Retrying integration job",
        task_name=task.name,
        attempt=task.request.retries + 1,
        countdown=countdown,
        error=str(exc),
    )
    raise task.retry(exc=exc, countdown=countdown)


async def _with_registry(job: Callable[[ProviderRegistry], Awaitable[Any]]) -> Any:
    async with provider_http_client() as client:
        registry = build_provider_registry(settings, http_client=client)
        return await job(registry)


def _run_async(job: Callable[[ProviderRegistry], Awaitable[Any]]) -> Any:
    return asyncio.run(_with_registry(job))


async def run_smart_sync(registry: ProviderRegistry, integration_id: str, full: bool = False) -> Dict[str, int]:
    with get_session_context() as session:
        stats = await SmartSyncService(session, registry).sync_integration(uuid.UUID(integration_id), full=full)
        return stats.to_dict()


async def run_sync_workspace_projects(registry: ProviderRegistry, integration_id: str) -> Dict[str, int]:
    with get_session_context() as session:
        stats = await SmartSyncService(session, registry).sync_workspace_projects(uuid.UUID(integration_id))
        return stats.to_dict()


async def run_push_time_entry(registry: ProviderRegistry, time_entry_id: str) -> Dict[str, Any]:
    with get_session_context() as session:
        mapping = await IntegrationService(session).sync_time_entry(uuid.UUID(time_entry_id), registry)
        return {
            "time_entry_id": time_entry_id,
            "external_entry_id": mapping.external_entry_id,
            "sync_status": mapping.sync_status,
        }


_task_options = dict(
    bind=True,
    base=IntegrationTask,
    max_retries=SYNC_MAX_RETRIES,
    acks_late=True,
)


@celery_app.task(name="app.integrations.tasks.smart_sync_integration", **_task_options)
def smart_sync_integration(self, integration_id: str, full: bool = False):
    """Resource sync queued after an OAuth connection (or by the CLI)."""
    log_info("Starting integration sync job", integration_id=integration_id, full=full)
    try:
        return _run_async(lambda registry: run_smart_sync(registry, integration_id, full))
    except Exception as exc:
        log_error(exc, integration_id=integration_id, task_name=self.name)
        _retry_or_raise(self, exc)


@celery_app.task(name="app.integrations.tasks.sync_workspace_projects", **_task_options)
def sync_workspace_projects(self, integration_id: str):
    """Insert any containers, projects and collections not mirrored yet."""
    log_info("Starting workspace project sync job", integration_id=integration_id)
    try:
        return _run_async(lambda registry: run_sync_workspace_projects(registry, integration_id))
    except Exception as exc:
        log_error(exc, integration_id=integration_id, task_name=self.name)
        _retry_or_raise(self, exc)


@celery_app.task(name="app.integrations.tasks.push_time_entry", **_task_options)
def push_time_entry(self, time_entry_id: str):
    """Create or update a linked time entry at its provider."""
    log_info("Pushing time entry", time_entry_id=time_entry_id)
    try:
        return _run_async(lambda registry: run_push_time_entry(registry, time_entry_id))
    except Exception as exc:
        log_error(exc, time_entry_id=time_entry_id, task_name=self.name)
        _retry_or_raise(self, exc)
