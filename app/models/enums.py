"""
Enums and constants for the application.
"""
from enum import Enum


class UserRole(str, Enum):
    """Roles within an organization."""
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class BlurMode(str, Enum):
    """Organization-wide screenshot blur policy."""
    ALWAYS = "always"
    OPTIONAL = "optional"  # follows the user's can_blur_screenshots flag
    NEVER = "never"


class UploadStatus(str, Enum):
    """Processing state of a screenshot upload."""
    PENDING = "pending"
    UPLOADED = "uploaded"
    FAILED = "failed"


class IntegrationProvider(str, Enum):
    """
    Known project-management providers.

    Only providers with an adapter in app/integrations can be enabled; the
    others are catalogued so the settings page can list them as upcoming.
    """
    CLICKUP = "clickup"
    ASANA = "asana"
    JIRA = "jira"
    LINEAR = "linear"


class ResourceType(str, Enum):
    """The four levels of a provider hierarchy, root first."""
    CONTAINER = "container"
    PROJECT = "project"
    COLLECTION = "collection"
    TASK = "task"

    @property
    def level(self) -> int:
        return RESOURCE_LEVELS[self]

    @property
    def is_selectable(self) -> bool:
        """Only collections and tasks can be assigned to time entries."""
        return self in (ResourceType.COLLECTION, ResourceType.TASK)


RESOURCE_LEVELS = {
    ResourceType.CONTAINER: 0,
    ResourceType.PROJECT: 1,
    ResourceType.COLLECTION: 2,
    ResourceType.TASK: 3,
}


class SyncLevel(str, Enum):
    """Target level for an on-demand subtree sync."""
    PROJECTS = "projects"
    COLLECTIONS = "collections"
    TASKS = "tasks"

    @property
    def resource_type(self) -> ResourceType:
        return {
            SyncLevel.PROJECTS: ResourceType.PROJECT,
            SyncLevel.COLLECTIONS: ResourceType.COLLECTION,
            SyncLevel.TASKS: ResourceType.TASK,
        }[self]


class SyncStatus(str, Enum):
    """Sync state of a mirrored resource or time entry mapping."""
    SYNCED = "synced"
    PENDING = "pending"
    ERROR = "error"
