"""
Fixtures for unit tests: an in-memory database, tenant factories and a
scripted provider adapter.
"""
import uuid
from typing import Dict, List, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import app.models  # noqa: F401  (registers every table)
from app.core.cache import InMemoryCache
from app.core.scoped_cache import ScopedCache
from app.integrations.base import (
    BaseProvider,
    Collection,
    HierarchySupport,
    IntegrationUser,
    OAuthTokens,
    Project,
    ResourceHierarchy,
    Task,
    TimeEntryInput,
    TimeEntryResult,
    Workspace,
)
from app.integrations.registry import ProviderFeatures, ProviderMetadata, ProviderRegistry
from app.integrations.service import IntegrationService
from app.models.enums import UserRole
from app.models.organization import Organization
from app.models.user import User


@pytest.fixture
def session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    engine.dispose()


@pytest.fixture
def organization(session) -> Organization:
    org = Organization(name="Acme", slug=f"acme-{uuid.uuid4().hex[:8]}", settings={})
    session.add(org)
    session.commit()
    session.refresh(org)
    return org


@pytest.fixture
def make_user(session, organization):
    def _create(role: UserRole = UserRole.EMPLOYEE, **overrides) -> User:
        user = User(
            email=overrides.pop("email", f"user_{uuid.uuid4().hex[:8]}@example.com"),
            password="hashed_password",
            name=overrides.pop("name", "Test User"),
            role=role,
            organization_id=overrides.pop("organization_id", organization.id),
            **overrides,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _create


@pytest.fixture
def admin_user(make_user) -> User:
    return make_user(role=UserRole.ADMIN)


@pytest.fixture
def employee_user(make_user) -> User:
    return make_user(role=UserRole.EMPLOYEE)


class StubProvider(BaseProvider):
    """
    Scripted adapter that generates a deterministic tree.

    Every container has ``projects`` projects, every project ``collections``
    collections and every collection ``tasks`` tasks. Ids encode the path so
    tests can assert on parentage.
    """

    name = "clickup"
    display_name = "Stub"

    def __init__(
        self,
        containers: int = 3,
        projects: int = 10,
        collections: int = 8,
        tasks: int = 50,
        supports: Optional[HierarchySupport] = None,
    ):
        self.counts = {"containers": containers, "projects": projects, "collections": collections, "tasks": tasks}
        self.supports = supports or HierarchySupport()
        self.calls: Dict[str, List[str]] = {"projects": [], "collections": [], "tasks": []}
        self.fail_with: Optional[Exception] = None
        self.created_entries: List[TimeEntryInput] = []
        self.updated_entries: List[str] = []

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    def get_auth_url(self, state: str, redirect_uri: str) -> str:
        return f"https://provider.example.com/oauth?state={state}&redirect_uri={redirect_uri}"

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> OAuthTokens:
        return OAuthTokens(access_token=f"token-for-{code}", token_type="Bearer")

    async def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        return OAuthTokens(access_token="refreshed")

    async def fetch_workspaces(self, access_token: str) -> List[Workspace]:
        self._maybe_fail()
        return [Workspace(id=f"w{i}", name=f"Workspace {i}") for i in range(1, self.counts["containers"] + 1)]

    async def fetch_projects(self, access_token: str, workspace_id: str) -> List[Project]:
        self._maybe_fail()
        self.calls["projects"].append(workspace_id)
        return [
            Project(id=f"{workspace_id}-p{i:02d}", name=f"Project {i}", workspace_id=workspace_id)
            for i in range(1, self.counts["projects"] + 1)
        ]

    async def fetch_collections(self, access_token: str, project_id: str) -> List[Collection]:
        self._maybe_fail()
        self.calls["collections"].append(project_id)
        return [
            Collection(id=f"{project_id}-c{i:02d}", name=f"List {i}", project_id=project_id)
            for i in range(1, self.counts["collections"] + 1)
        ]

    async def fetch_tasks(self, access_token: str, collection_id: str) -> List[Task]:
        self._maybe_fail()
        self.calls["tasks"].append(collection_id)
        return [
            Task(id=f"{collection_id}-t{i:03d}", name=f"Task {i}", collection_id=collection_id)
            for i in range(1, self.counts["tasks"] + 1)
        ]

    async def create_time_entry(self, access_token: str, entry: TimeEntryInput) -> TimeEntryResult:
        self._maybe_fail()
        self.created_entries.append(entry)
        return TimeEntryResult(
            id=f"te-{len(self.created_entries)}",
            task_id=entry.task_id,
            start_time=entry.start_time,
            end_time=entry.end_time,
            duration=int((entry.end_time - entry.start_time).total_seconds() * 1000),
        )

    async def update_time_entry(self, access_token: str, entry_id: str, entry: TimeEntryInput) -> TimeEntryResult:
        self._maybe_fail()
        self.updated_entries.append(entry_id)
        return TimeEntryResult(
            id=entry_id,
            task_id=entry.task_id,
            start_time=entry.start_time,
            end_time=entry.end_time,
            duration=int((entry.end_time - entry.start_time).total_seconds() * 1000),
        )

    async def delete_time_entry(self, access_token: str, entry_id: str) -> None:
        self._maybe_fail()

    async def get_current_user(self, access_token: str) -> IntegrationUser:
        return IntegrationUser(id="u-1", name="Provider User", email="provider@example.com")

    def get_hierarchy(self) -> ResourceHierarchy:
        return ResourceHierarchy(supports=self.supports)


STUB_METADATA = ProviderMetadata(
    id="clickup",
    name="clickup",
    display_name="ClickUp",
    description="Stubbed adapter",
    color="#7B68EE",
    enabled=True,
    features=ProviderFeatures(oauth=True, time_tracking=True),
)


@pytest.fixture
def stub_provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def make_registry():
    """Build a registry around a custom StubProvider configuration."""
    def _build(**stub_kwargs):
        provider = StubProvider(**stub_kwargs)
        return provider, ProviderRegistry({"clickup": provider}, [STUB_METADATA])

    return _build


@pytest.fixture
def registry(stub_provider) -> ProviderRegistry:
    return ProviderRegistry({"clickup": stub_provider}, [STUB_METADATA])


@pytest.fixture
def level_cache() -> ScopedCache:
    return ScopedCache("sync", cache_backend=InMemoryCache())


@pytest.fixture
def integration(session, organization):
    return IntegrationService(session).connect(
        organization_id=organization.id,
        provider="clickup",
        tokens=OAuthTokens(access_token="pk_live_token", token_type="Bearer"),
        provider_account_id="w1",
    )
