"""
Celery task base class that keeps a bounded record of permanent failures.
"""
from typing import Any, Dict

from celery import Task

from app.core.database import get_session_context
from app.core.logging_config import log_error
from app.services.failed_job_service import FailedJobService


class FailedJobTask(Task):
    """
    Base for tasks whose final failure is written to the failed_job table.

    ``on_failure`` only runs once retries are exhausted or for exceptions
    that are not retried, so every row is a job that will not run again.
    """
    abstract = True
    queue_name: str = ""

    def failed_payload(self, args, kwargs) -> Dict[str, Any]:
        """JSON-safe job arguments to keep with the failure."""
        return {"args": list(args), "kwargs": dict(kwargs)}

    def handle_final_failure(self, exc: BaseException, args, kwargs) -> None:
        """Hook for task-specific cleanup after the final attempt."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        try:
            self.handle_final_failure(exc, args, kwargs)
            with get_session_context() as session:
                FailedJobService(session).record(
                    queue=self.queue_name,
                    task_name=self.name,
                    task_id=task_id,
                    payload=self.failed_payload(args, kwargs),
                    error=f"{type(exc).__name__}: {exc}",
                    attempts=self.request.retries + 1,
                )
        except Exception as record_exc:
            log_error(record_exc, task_name=self.name, task_id=task_id)
        super().on_failure(exc, task_id, args, kwargs, einfo)
