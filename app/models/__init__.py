# Import all models so every table registers on the shared metadata
from .base import BaseModel
from .failed_job import FailedJob
from .integration import Integration, IntegrationConfig, TimeEntryMapping
from .organization import Organization
from .synced_resource import (
    FavoriteResource,
    RecentResource,
    SyncedResource,
    UserIntegrationPreference,
)
from .time_entry import Screenshot, TimeEntry
from .user import User

__all__ = [
    "BaseModel",
    "Organization",
    "User",
    "TimeEntry",
    "Screenshot",
    "Integration",
    "IntegrationConfig",
    "TimeEntryMapping",
    "SyncedResource",
    "RecentResource",
    "FavoriteResource",
    "UserIntegrationPreference",
    "FailedJob",
]
