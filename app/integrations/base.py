"""
Provider adapter contract.

Every project-management provider implements BaseProvider. The sync engine,
record store and routers only ever talk to this interface, so adding a
provider means adding one subclass and registering it in registry.py.

Errors are reported with the shared taxonomy from app.core.exceptions:
AuthenticationError (401), RateLimitError (429), ResourceNotFoundError (404)
and IntegrationError for everything else. Adapters never retry; callers
decide whether a failure is retryable.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from app.core.exceptions import IntegrationError


class OAuthTokens(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None


class Workspace(BaseModel):
    """Top-level container (ClickUp team, Asana workspace, Jira site)."""
    id: str
    name: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Project(BaseModel):
    id: str
    name: str
    workspace_id: str
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Collection(BaseModel):
    """Grouping of tasks inside a project (ClickUp list, Asana section)."""
    id: str
    name: str
    project_id: str
    parent_collection_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Task(BaseModel):
    id: str
    name: str
    collection_id: Optional[str] = None
    project_id: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    assignees: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TimeEntryInput(BaseModel):
    """Provider-neutral time entry; ``duration`` is in milliseconds."""
    task_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    description: Optional[str] = None
    billable: bool = False

    @model_validator(mode="after")
    def require_end_or_duration(self) -> "TimeEntryInput":
        if self.end_time is None and self.duration is None:
            raise ValueError("Either end_time or duration is required")
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self


class TimeEntryResult(BaseModel):
    id: str
    task_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: int


class IntegrationUser(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None


class HierarchySupport(BaseModel):
    containers: bool = True
    projects: bool = True
    collections: bool = True
    sub_collections: bool = False


class HierarchyLabels(BaseModel):
    container: str = "Workspace"
    project: str = "Project"
    collection: str = "Collection"
    task: str = "Task"


class ResourceHierarchy(BaseModel):
    """Static description of which levels a provider exposes."""
    supports: HierarchySupport = Field(default_factory=HierarchySupport)
    labels: HierarchyLabels = Field(default_factory=HierarchyLabels)
    max_depth: int = 4


class BaseProvider(ABC):
    """Capability contract implemented once per provider."""

    name: str
    display_name: str

    @abstractmethod
    def get_auth_url(self, state: str, redirect_uri: str) -> str:
        """Build the OAuth authorize URL. ``state`` must round-trip unchanged."""

    @abstractmethod
    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> OAuthTokens:
        ...

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        ...

    @abstractmethod
    async def fetch_workspaces(self, access_token: str) -> List[Workspace]:
        ...

    @abstractmethod
    async def fetch_projects(self, access_token: str, workspace_id: str) -> List[Project]:
        ...

    @abstractmethod
    async def fetch_collections(self, access_token: str, project_id: str) -> List[Collection]:
        ...

    @abstractmethod
    async def fetch_tasks(self, access_token: str, collection_id: str) -> List[Task]:
        ...

    @abstractmethod
    async def create_time_entry(self, access_token: str, entry: TimeEntryInput) -> TimeEntryResult:
        ...

    @abstractmethod
    async def update_time_entry(self, access_token: str, entry_id: str, entry: TimeEntryInput) -> TimeEntryResult:
        ...

    @abstractmethod
    async def delete_time_entry(self, access_token: str, entry_id: str) -> None:
        ...

    @abstractmethod
    async def get_current_user(self, access_token: str) -> IntegrationUser:
        ...

    @abstractmethod
    def get_hierarchy(self) -> ResourceHierarchy:
        ...

    async def validate_token(self, access_token: str) -> bool:
        """A token is valid when the provider answers the identity call."""
        try:
            await self.get_current_user(access_token)
            return True
        except IntegrationError:
            return False
