"""
User model.
"""
import uuid
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import Column, DateTime, ForeignKey, String, Enum as SQLAlchemyEnum, text
from sqlmodel import Field, Relationship, Index

from .base import BaseModel
from .enums import UserRole

if TYPE_CHECKING:
    from .organization import Organization
    from .time_entry import TimeEntry


class User(BaseModel, table=True):
    """
    User model

    Accounts are created by the account service; this service reads them to
    authorize requests and to resolve the screenshot blur policy.
    """
    __tablename__ = "user"

    email: str = Field(
        sa_column=Column(String(255), unique=True, nullable=False)
    )
    password: str = Field(sa_column=Column(String(255), nullable=False))  # Hashed password
    name: str = Field(sa_column=Column(String(100), nullable=False))
    role: UserRole = Field(
        default=UserRole.EMPLOYEE,
        sa_column=Column(
            SQLAlchemyEnum(
                UserRole,
                name="user_role_enum",
                native_enum=False,
                values_callable=lambda x: [e.value for e in x]
            ),
            nullable=False,
            server_default=text("'employee'")
        )
    )
    organization_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(
            ForeignKey("organization.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        )
    )
    can_blur_screenshots: bool = Field(default=False)
    is_active: bool = Field(default=True)
    last_login_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    organization: Optional["Organization"] = Relationship(back_populates="users")
    time_entries: List["TimeEntry"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )

    __table_args__ = (
        Index("idx_user_org_role", "organization_id", "role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
