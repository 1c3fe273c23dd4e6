"""
Mirrored provider hierarchy and per-user usage signals.

Models:
- SyncedResource: one node (container/project/collection/task) of a provider's tree
- RecentResource: a user's implicit recent usage of a resource
- FavoriteResource: a user's explicit, ordered favorites
- UserIntegrationPreference: default selections per (user, integration)
"""
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlmodel import Field, Index, Column as SQLModelColumn

from app.core.time_utils import utc_now
from .base import BaseModel, JSONType
from .enums import ResourceType, SyncStatus


class SyncedResource(BaseModel, table=True):
    """
    A node of an external provider's hierarchy, upserted on every sync.

    Invariants:
        - (organization_id, integration_id, external_id) is unique
        - level == parent.level + 1; roots have level 0 and no parent
        - path == parent.path + "/" + external_id; roots are "/" + external_id

    Rows are never deleted by a sync. ``expires_at`` is reserved for a
    cleanup job and is not enforced.
    """
    __tablename__ = "synced_resource"

    organization_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("organization.id", ondelete="CASCADE"),
            nullable=False
        )
    )
    integration_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("integration.id", ondelete="CASCADE"),
            nullable=False
        )
    )
    resource_type: ResourceType = Field(sa_column=Column(String(20), nullable=False))
    external_id: str = Field(sa_column=Column(String(255), nullable=False))
    parent_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(
            ForeignKey("synced_resource.id", ondelete="CASCADE"),
            nullable=True,
            index=True
        )
    )
    level: int = Field(default=0)
    # index in the provider response, orders siblings created in one batch
    position: int = Field(default=0)
    path: str = Field(sa_column=Column(Text, nullable=False))
    name: str = Field(sa_column=Column(String(500), nullable=False))
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    provider_type: Optional[str] = Field(default=None, sa_column=Column(String(50), nullable=True))
    resource_metadata: Optional[Dict[str, Any]] = Field(
        default=None,
        sa_column=SQLModelColumn(JSONType(), nullable=True),
    )
    is_selectable: bool = Field(default=False)

    sync_status: SyncStatus = Field(
        default=SyncStatus.SYNCED,
        sa_column=Column(String(20), nullable=False, default=SyncStatus.SYNCED.value),
    )
    sync_error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    last_synced_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    last_accessed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    access_count: int = Field(default=0)
    expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "integration_id", "external_id",
            name="uq_synced_resource_org_integration_external",
        ),
        Index("idx_synced_resource_integration_type", "integration_id", "resource_type"),
        Index("idx_synced_resource_name", "integration_id", "name"),
    )


class RecentResource(BaseModel, table=True):
    """Per-user recency and use counter for a resource."""
    __tablename__ = "recent_resource"

    user_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("user.id", ondelete="CASCADE"),
            nullable=False
        )
    )
    resource_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("synced_resource.id", ondelete="CASCADE"),
            nullable=False
        )
    )
    last_used_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
    use_count: int = Field(default=1)

    __table_args__ = (
        UniqueConstraint("user_id", "resource_id", name="uq_recent_resource_user_resource"),
        Index("idx_recent_resource_user_last_used", "user_id", "last_used_at"),
    )


class FavoriteResource(BaseModel, table=True):
    """Explicit favorite, ordered by ``position``."""
    __tablename__ = "favorite_resource"

    user_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("user.id", ondelete="CASCADE"),
            nullable=False
        )
    )
    resource_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("synced_resource.id", ondelete="CASCADE"),
            nullable=False
        )
    )
    position: int = Field(default=0)

    __table_args__ = (
        UniqueConstraint("user_id", "resource_id", name="uq_favorite_resource_user_resource"),
    )


class UserIntegrationPreference(BaseModel, table=True):
    """Default container/project/collection used to pre-fill new time entries."""
    __tablename__ = "user_integration_preference"

    user_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("user.id", ondelete="CASCADE"),
            nullable=False
        )
    )
    integration_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("integration.id", ondelete="CASCADE"),
            nullable=False
        )
    )
    default_container_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(ForeignKey("synced_resource.id", ondelete="SET NULL"), nullable=True)
    )
    default_project_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(ForeignKey("synced_resource.id", ondelete="SET NULL"), nullable=True)
    )
    default_collection_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(ForeignKey("synced_resource.id", ondelete="SET NULL"), nullable=True)
    )

    __table_args__ = (
        UniqueConstraint("user_id", "integration_id", name="uq_user_integration_preference"),
    )
