"""
Base model shared by every table.
"""
import uuid
from datetime import datetime

from sqlalchemy import DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from app.core.time_utils import utc_now


def JSONType():
    return JSONB().with_variant(JSON, "sqlite")


class TimestampMixin(SQLModel):
    """created_at/updated_at columns stored as timezone-aware UTC."""
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"nullable": False},
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"nullable": False, "onupdate": utc_now},
    )


class BaseModel(TimestampMixin):
    """UUID primary key plus timestamps."""
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
