"""
Bounded record of background jobs that exhausted their retries.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from app.core.config import settings, SCREENSHOT_QUEUE, INTEGRATION_SYNC_QUEUE
from app.core.logging_config import log_error, log_warning
from app.models.failed_job import FailedJob


def retention_for(queue: str) -> int:
    if queue == SCREENSHOT_QUEUE:
        return settings.failed_job_retention_screenshot
    if queue == INTEGRATION_SYNC_QUEUE:
        return settings.failed_job_retention_integration
    return settings.failed_job_retention_integration


class FailedJobService:
    """Service class for failed job bookkeeping."""

    def __init__(self, session: Session):
        self.session = session

    def record(
        self,
        queue: str,
        task_name: str,
        error: str,
        task_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        attempts: int = 1,
        keep: Optional[int] = None,
    ) -> FailedJob:
        """Store a failed job and prune the queue down to its newest ``keep`` rows."""
        job = FailedJob(
            queue=queue,
            task_name=task_name,
            task_id=task_id,
            payload=payload,
            error=error,
            attempts=attempts,
        )
        try:
            self.session.add(job)
            self.session.commit()
            self.session.refresh(job)
            self.prune(queue, keep if keep is not None else retention_for(queue))
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, queue=queue, task_name=task_name)
            raise

        log_warning("Job failed permanently", queue=queue, task_name=task_name, task_id=task_id, attempts=attempts)
        return job

    def prune(self, queue: str, keep: int) -> int:
        """Delete all but the newest ``keep`` rows of ``queue``; returns the number deleted."""
        keep_ids = select(FailedJob.id).where(FailedJob.queue == queue).order_by(
            col(FailedJob.created_at).desc()
        ).limit(keep)
        result = self.session.exec(
            delete(FailedJob).where(
                FailedJob.queue == queue,
                col(FailedJob.id).not_in(keep_ids),
            )
        )
        self.session.commit()
        return result.rowcount or 0

    def list_recent(self, queue: str, limit: int = 50) -> List[FailedJob]:
        statement = select(FailedJob).where(FailedJob.queue == queue).order_by(
            col(FailedJob.created_at).desc()
        ).limit(limit)
        return list(self.session.exec(statement))
