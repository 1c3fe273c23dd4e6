"""
Tracked activity: time entries and the screenshots captured during them.
"""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlmodel import Field, Relationship, Index, Column as SQLModelColumn

from app.core.time_utils import utc_now
from .base import BaseModel, JSONType
from .enums import UploadStatus

if TYPE_CHECKING:
    from .user import User


class TimeEntry(BaseModel, table=True):
    """
    One stretch of tracked work reported by the desktop client.
    """
    __tablename__ = "time_entry"

    user_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("user.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )
    )
    start_time: datetime = Field(sa_type=DateTime(timezone=True), sa_column_kwargs={"nullable": False})
    end_time: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    # External task the time is booked against (provider ids, not local rows)
    external_task_id: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    external_project_id: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))

    activity_percentage: int = Field(default=0, ge=0, le=100)
    mouse_clicks: int = Field(default=0, ge=0)
    keyboard_strokes: int = Field(default=0, ge=0)
    window_title: Optional[str] = Field(default=None, sa_column=Column(String(500), nullable=True))
    application_name: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))

    user: "User" = Relationship(back_populates="time_entries")
    screenshots: List["Screenshot"] = Relationship(
        back_populates="time_entry",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )

    __table_args__ = (
        Index("idx_time_entry_user_start", "user_id", "start_time"),
    )

    @property
    def duration_ms(self) -> Optional[int]:
        if self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() * 1000)


class Screenshot(BaseModel, table=True):
    """
    A captured screen image.

    The row is created when activity is ingested; the image itself is
    processed and uploaded by the screenshot worker, which records the
    outcome in ``upload_status``.
    """
    __tablename__ = "screenshot"

    time_entry_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("time_entry.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )
    )
    user_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("user.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )
    )
    timestamp: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
    storage_key: str = Field(sa_column=Column(String(512), nullable=False))
    storage_key_blurred: Optional[str] = Field(default=None, sa_column=Column(String(512), nullable=True))
    is_blurred: bool = Field(default=False)
    is_deleted: bool = Field(default=False)
    window_title: Optional[str] = Field(default=None, sa_column=Column(String(500), nullable=True))
    application_name: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    screenshot_metadata: Optional[Dict[str, Any]] = Field(
        default=None,
        sa_column=SQLModelColumn("metadata", JSONType(), nullable=True),
    )

    upload_status: UploadStatus = Field(
        default=UploadStatus.PENDING,
        sa_column=Column(String(20), nullable=False, default=UploadStatus.PENDING.value),
    )
    processing_attempts: int = Field(default=0)
    processing_error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    processed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    time_entry: "TimeEntry" = Relationship(back_populates="screenshots")

    __table_args__ = (
        Index("idx_screenshot_user_timestamp", "user_id", "timestamp"),
    )
