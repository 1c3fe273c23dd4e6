"""
Organization (tenant) model.
"""
from typing import Any, Dict, List, TYPE_CHECKING

from sqlalchemy import Column, String
from sqlmodel import Field, Relationship, Column as SQLModelColumn

from .base import BaseModel, JSONType
from .enums import BlurMode

if TYPE_CHECKING:
    from .user import User
    from .integration import Integration


DEFAULT_ORGANIZATION_SETTINGS: Dict[str, Any] = {
    "blur_mode": BlurMode.OPTIONAL.value,
    "screenshot_interval": 600,  # seconds
    "screenshot_retention": 30,  # days
    "allow_screenshot_delete": True,
    "delete_grace_period": 5,  # minutes
}


class Organization(BaseModel, table=True):
    """
    A tenant. Every user, integration and synced resource belongs to exactly one.

    ``settings`` holds the screenshot policy; missing keys fall back to
    DEFAULT_ORGANIZATION_SETTINGS.
    """
    __tablename__ = "organization"

    name: str = Field(sa_column=Column(String(200), nullable=False))
    slug: str = Field(sa_column=Column(String(100), unique=True, nullable=False))
    settings: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=SQLModelColumn(JSONType(), nullable=False),
    )

    users: List["User"] = Relationship(back_populates="organization")
    integrations: List["Integration"] = Relationship(back_populates="organization")

    def get_settings(self) -> Dict[str, Any]:
        """Stored settings merged over the defaults."""
        merged = dict(DEFAULT_ORGANIZATION_SETTINGS)
        merged.update(self.settings or {})
        return merged

    @property
    def blur_mode(self) -> BlurMode:
        try:
            return BlurMode(self.get_settings()["blur_mode"])
        except ValueError:
            return BlurMode.OPTIONAL
