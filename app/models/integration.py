"""
Database models for provider connections.

Models:
- Integration: an organization's (optionally one user's) OAuth connection to a provider
- IntegrationConfig: arbitrary JSON settings scoped to one integration
- TimeEntryMapping: links a local time entry to a provider task

Tokens are encrypted with Fernet (core/encryption.py) before storage and are
never returned by the API.
"""
import uuid
from datetime import datetime
from typing import Any, Dict, Optional, TYPE_CHECKING

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlmodel import Field, Relationship, Index, Column as SQLModelColumn

from app.core.time_utils import utc_now
from .base import BaseModel, JSONType
from .enums import IntegrationProvider, SyncStatus

if TYPE_CHECKING:
    from .organization import Organization

# scope_key value for integrations shared by the whole organization
ORGANIZATION_SCOPE = "organization"


def integration_scope_key(user_id: Optional[uuid.UUID]) -> str:
    """
    Normalize the optional owner into a non-null key.

    NULLs never collide in a unique index, so the (organization, provider,
    user) constraint is declared over this key instead of the nullable
    user_id column.
    """
    return str(user_id) if user_id else ORGANIZATION_SCOPE


class Integration(BaseModel, table=True):
    """
    Connection between an organization and an external provider.

    Fields:
        organization_id: Owning tenant
        user_id: Set for per-user connections, null for organization-wide ones
        scope_key: Non-null form of user_id used by the unique constraint
        provider: Which provider this connects to
        access_token_encrypted / refresh_token_encrypted: Fernet ciphertext
        provider_account_id: Primary workspace/account id at the provider
        provider_metadata: Provider user identity and other JSON details
        last_synced_at / last_error: Outcome of the most recent resource sync
        is_active: False once disconnected; rows are never hard-deleted
    """
    __tablename__ = "integration"

    organization_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("organization.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )
    )
    user_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(
            ForeignKey("user.id", ondelete="CASCADE"),
            nullable=True
        )
    )
    scope_key: str = Field(
        default=ORGANIZATION_SCOPE,
        sa_column=Column(String(64), nullable=False, default=ORGANIZATION_SCOPE),
    )
    provider: IntegrationProvider = Field(
        sa_column=Column(String(50), nullable=False, index=True),
        description="Integration provider id"
    )

    access_token_encrypted: str = Field(
        sa_column=Column(Text, nullable=False),
        description="Encrypted OAuth access token"
    )
    refresh_token_encrypted: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )
    token_type: Optional[str] = Field(default=None, sa_column=Column(String(50), nullable=True))
    scope: Optional[str] = Field(default=None, sa_column=Column(String(500), nullable=True))
    token_expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    provider_account_id: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    provider_metadata: Optional[Dict[str, Any]] = Field(
        default=None,
        sa_column=SQLModelColumn(JSONType(), nullable=True),
    )

    last_synced_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    last_error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    last_error_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    is_active: bool = Field(default=True)
    connected_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))

    organization: "Organization" = Relationship(back_populates="integrations")

    __table_args__ = (
        UniqueConstraint("organization_id", "provider", "scope_key", name="uq_integration_org_provider_scope"),
        Index("idx_integration_active_provider", "is_active", "provider"),
    )

    def get_metadata(self) -> Dict[str, Any]:
        return dict(self.provider_metadata or {})

    def update_metadata(self, **kwargs) -> None:
        """Merge keys into provider metadata (reassigned so SQLAlchemy sees the change)."""
        current = self.get_metadata()
        current.update(kwargs)
        self.provider_metadata = current


class IntegrationConfig(BaseModel, table=True):
    """Key/value setting stored against one integration."""
    __tablename__ = "integration_config"

    integration_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("integration.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )
    )
    key: str = Field(sa_column=Column(String(100), nullable=False))
    value: Any = Field(default=None, sa_column=SQLModelColumn(JSONType(), nullable=True))

    __table_args__ = (
        UniqueConstraint("integration_id", "key", name="uq_integration_config_key"),
    )


class TimeEntryMapping(BaseModel, table=True):
    """Link between a local time entry and a task at the provider."""
    __tablename__ = "time_entry_mapping"

    time_entry_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("time_entry.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )
    )
    integration_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("integration.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )
    )
    external_task_id: str = Field(sa_column=Column(String(255), nullable=False))
    external_entry_id: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    sync_status: SyncStatus = Field(
        default=SyncStatus.PENDING,
        sa_column=Column(String(20), nullable=False, default=SyncStatus.PENDING.value),
    )
    synced_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    sync_error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
