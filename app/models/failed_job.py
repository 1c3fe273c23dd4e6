"""
Background jobs that exhausted their retries, kept for operator inspection.
"""
from typing import Any, Dict, Optional

from sqlalchemy import Column, String, Text
from sqlmodel import Field, Index, Column as SQLModelColumn

from .base import BaseModel, JSONType


class FailedJob(BaseModel, table=True):
    """
    A Celery task that failed on its final attempt.

    Each queue keeps only its newest N rows (see FailedJobService.record).
    """
    __tablename__ = "failed_job"

    queue: str = Field(sa_column=Column(String(100), nullable=False))
    task_name: str = Field(sa_column=Column(String(255), nullable=False))
    task_id: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    payload: Optional[Dict[str, Any]] = Field(
        default=None,
        sa_column=SQLModelColumn(JSONType(), nullable=True),
    )
    error: str = Field(sa_column=Column(Text, nullable=False))
    attempts: int = Field(default=1)

    __table_args__ = (
        Index("idx_failed_job_queue_created", "queue", "created_at"),
    )
