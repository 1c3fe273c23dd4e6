"""
Resource sync engine and usage tracking.

Mirrors a provider's container -> project -> collection -> task tree into
SyncedResource rows and keeps per-user usage signals (recent resources,
favorites and default selections) on top of it.

Sync modes:
- smart (default): projects of the first container, collections of the first
  5 projects, and the first 20 tasks of the first 5 collections
- full: every parent at every level

Either way each per-parent fetch is truncated to
``settings.sync_max_resources_per_level`` rows. Syncs only ever upsert;
resources that disappeared at the provider are left in place.
"""
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from app.core.config import settings
from app.core.database import dialect_insert
from app.core.exceptions import (
    IntegrationError,
    IntegrationNotFoundError,
    ResourcePathError,
    SyncedResourceNotFoundError,
)
from app.core.logging_config import log_error, log_info, log_warning
from app.core.scoped_cache import ScopedCache
from app.core.time_utils import utc_now
from app.integrations.base import BaseProvider, ResourceHierarchy
from app.integrations.registry import ProviderRegistry
from app.integrations.service import IntegrationService
from app.models.enums import ResourceType, SyncLevel, SyncStatus
from app.models.integration import Integration
from app.models.synced_resource import (
    FavoriteResource,
    RecentResource,
    SyncedResource,
    UserIntegrationPreference,
)

SMART_CONTAINER_LIMIT = 1
SMART_PROJECT_LIMIT = 5
SMART_COLLECTION_LIMIT = 5
SMART_TASKS_PER_COLLECTION = 20

DEFAULT_MAX_DEPTH = 4
LEVEL_CACHE_NAMESPACE = "sync"

_level_cache: Optional[ScopedCache] = None


def get_level_cache() -> ScopedCache:
    """Process-wide cache for on-demand level syncs."""
    global _level_cache
    if _level_cache is None:
        _level_cache = ScopedCache(namespace=LEVEL_CACHE_NAMESPACE)
    return _level_cache


@dataclass
class SyncStats:
    containers: int = 0
    projects: int = 0
    collections: int = 0
    tasks: int = 0

    @property
    def total(self) -> int:
        return self.containers + self.projects + self.collections + self.tasks

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class SmartSyncService:
    """Sync engine bound to one session and provider registry."""

    def __init__(
        self,
        session: Session,
        registry: ProviderRegistry,
        cache: Optional[ScopedCache] = None,
    ):
        self.session = session
        self.registry = registry
        self.cache = cache if cache is not None else get_level_cache()
        self.integrations = IntegrationService(session)

    # ================================================================================
    # FULL / SMART SYNC
    # ================================================================================

    def _active_integration(self, integration_id: uuid.UUID) -> Integration:
        integration = self.integrations.get_by_id(integration_id)
        if integration is None or not integration.is_active:
            raise IntegrationNotFoundError("Integration not found")
        return integration

    async def sync_integration(self, integration_id: uuid.UUID, full: bool = False) -> SyncStats:
        """
        Walk the provider hierarchy top-down and upsert what was found.

        The integration's last_synced_at is stamped on success; on failure the
        error is recorded on the integration and re-raised.
        """
        integration = self._active_integration(integration_id)
        provider = self.registry.get_provider(integration.provider)
        access_token = self.integrations.get_access_token(integration)
        hierarchy = provider.get_hierarchy()
        mode = "full" if full else "smart"

        log_info(
            f"Starting {mode} sync",
            integration_id=str(integration.id),
            provider=integration.provider,
        )

        try:
            stats = await self._walk(integration, provider, access_token, hierarchy, full)
        except IntegrationError as exc:
            log_warning(
                f"{mode.capitalize()} sync failed",
                integration_id=str(integration.id),
                provider=integration.provider,
                error=exc.message,
                code=exc.code,
            )
            self.integrations.record_sync_error(integration, exc.message)
            raise
        except Exception as exc:
            log_error(exc, integration_id=str(integration.id), provider=integration.provider)
            self.session.rollback()
            self.integrations.record_sync_error(integration, str(exc))
            raise

        self.integrations.record_sync_success(integration)
        log_info(
            "Sync complete",
            integration_id=str(integration.id),
            provider=integration.provider,
            mode=mode,
            **stats.to_dict(),
        )
        return stats

    async def _walk(
        self,
        integration: Integration,
        provider: BaseProvider,
        access_token: str,
        hierarchy: ResourceHierarchy,
        full: bool,
    ) -> SyncStats:
        stats = SyncStats()
        supports = hierarchy.supports

        if supports.containers:
            workspaces = await provider.fetch_workspaces(access_token)
            stats.containers = self._upsert_resources(
                integration, hierarchy, workspaces, ResourceType.CONTAINER, parent=None
            )

        if supports.projects:
            containers = self.get_resources(
                integration.id,
                resource_type=ResourceType.CONTAINER,
                limit=None if full else SMART_CONTAINER_LIMIT,
            )
            for container in containers:
                projects = await provider.fetch_projects(access_token, container.external_id)
                stats.projects += self._upsert_resources(
                    integration, hierarchy, projects, ResourceType.PROJECT, parent=container
                )

        if supports.collections:
            projects = self.get_resources(
                integration.id,
                resource_type=ResourceType.PROJECT,
                limit=None if full else SMART_PROJECT_LIMIT,
            )
            for project in projects:
                collections = await provider.fetch_collections(access_token, project.external_id)
                stats.collections += self._upsert_resources(
                    integration, hierarchy, collections, ResourceType.COLLECTION, parent=project
                )

        # Without collections, tasks hang directly off projects
        task_parent_type = ResourceType.COLLECTION if supports.collections else ResourceType.PROJECT
        task_parents = self.get_resources(
            integration.id,
            resource_type=task_parent_type,
            limit=None if full else SMART_COLLECTION_LIMIT,
        )
        for parent in task_parents:
            tasks = await provider.fetch_tasks(access_token, parent.external_id)
            if not full:
                tasks = tasks[:SMART_TASKS_PER_COLLECTION]
            stats.tasks += self._upsert_resources(
                integration, hierarchy, tasks, ResourceType.TASK, parent=parent
            )

        return stats

    async def sync_workspace_projects(self, integration_id: uuid.UUID) -> SyncStats:
        """
        Insert-only walk of containers, projects and collections.

        Rows that already exist are left untouched, so this never overwrites
        what a regular sync stored. Counts report inserted rows only.
        """
        integration = self._active_integration(integration_id)
        provider = self.registry.get_provider(integration.provider)
        access_token = self.integrations.get_access_token(integration)
        hierarchy = provider.get_hierarchy()
        supports = hierarchy.supports
        stats = SyncStats()

        if not supports.containers:
            return stats

        for container_position, workspace in enumerate(await provider.fetch_workspaces(access_token)):
            container, inserted = self._insert_missing(
                integration, hierarchy, workspace, ResourceType.CONTAINER, parent=None, position=container_position
            )
            stats.containers += inserted
            if not supports.projects:
                continue

            projects = await provider.fetch_projects(access_token, container.external_id)
            for project_position, project_data in enumerate(projects[:settings.sync_max_resources_per_level]):
                project, inserted = self._insert_missing(
                    integration, hierarchy, project_data, ResourceType.PROJECT, parent=container, position=project_position
                )
                stats.projects += inserted
                if not supports.collections:
                    continue

                collections = await provider.fetch_collections(access_token, project.external_id)
                for collection_position, collection_data in enumerate(collections[:settings.sync_max_resources_per_level]):
                    _, inserted = self._insert_missing(
                        integration, hierarchy, collection_data, ResourceType.COLLECTION, parent=project,
                        position=collection_position,
                    )
                    stats.collections += inserted

        self.session.commit()
        self.integrations.record_sync_success(integration)
        log_info(
            "Workspace projects synced",
            integration_id=str(integration.id),
            **stats.to_dict(),
        )
        return stats

    def _insert_missing(
        self,
        integration: Integration,
        hierarchy: ResourceHierarchy,
        resource: Any,
        resource_type: ResourceType,
        parent: Optional[SyncedResource],
        position: int = 0,
    ) -> Tuple[SyncedResource, int]:
        existing = self.session.exec(
            select(SyncedResource).where(
                SyncedResource.organization_id == integration.organization_id,
                SyncedResource.integration_id == integration.id,
                SyncedResource.external_id == resource.id,
            )
        ).first()
        if existing is not None:
            return existing, 0

        row = SyncedResource(
            organization_id=integration.organization_id,
            integration_id=integration.id,
            resource_type=resource_type.value,
            external_id=resource.id,
            parent_id=parent.id if parent is not None else None,
            level=parent.level + 1 if parent is not None else 0,
            position=position,
            path=f"{parent.path if parent is not None else ''}/{resource.id}",
            name=resource.name,
            description=getattr(resource, "description", None),
            provider_type=getattr(hierarchy.labels, resource_type.value).lower(),
            resource_metadata=resource.metadata or {},
            is_selectable=resource_type.is_selectable,
            sync_status=SyncStatus.SYNCED.value,
            last_synced_at=utc_now(),
        )
        self.session.add(row)
        self.session.flush()
        return row, 1

    # ================================================================================
    # ON-DEMAND LEVEL SYNC
    # ================================================================================

    def _allowed_parent_types(self, level: SyncLevel, hierarchy: ResourceHierarchy) -> Sequence[ResourceType]:
        if level == SyncLevel.PROJECTS:
            return (ResourceType.CONTAINER,)
        if level == SyncLevel.COLLECTIONS:
            return (ResourceType.PROJECT,)
        if hierarchy.supports.collections:
            return (ResourceType.COLLECTION,)
        return (ResourceType.PROJECT,)

    async def sync_level(
        self,
        integration_id: uuid.UUID,
        parent_id: uuid.UUID,
        level: SyncLevel | str,
    ) -> int:
        """
        Sync the children of one resource.

        The resulting count is cached per (integration, parent, level) for
        ``settings.sync_level_cache_ttl_seconds``; a cached count of zero is
        still a hit.
        """
        level = SyncLevel(level)
        scope_id = f"{integration_id}.{parent_id}"

        integration = self._active_integration(integration_id)
        cached = self.cache.get(scope_id, level.value)
        if cached is not None:
            log_info("Using cached level sync", integration_id=str(integration_id), sync_level=level.value)
            return int(cached["count"])

        parent = self.session.get(SyncedResource, parent_id)
        if parent is None or parent.integration_id != integration.id:
            raise SyncedResourceNotFoundError("Parent resource not found")

        provider = self.registry.get_provider(integration.provider)
        hierarchy = provider.get_hierarchy()
        if ResourceType(parent.resource_type) not in self._allowed_parent_types(level, hierarchy):
            raise ValueError(
                f"Cannot sync {level.value} under a {ResourceType(parent.resource_type).value}"
            )

        access_token = self.integrations.get_access_token(integration)
        if level == SyncLevel.PROJECTS:
            resources = await provider.fetch_projects(access_token, parent.external_id)
        elif level == SyncLevel.COLLECTIONS:
            resources = await provider.fetch_collections(access_token, parent.external_id)
        else:
            resources = await provider.fetch_tasks(access_token, parent.external_id)

        count = self._upsert_resources(integration, hierarchy, resources, level.resource_type, parent=parent)
        self.cache.set(scope_id, level.value, {"count": count}, ttl_seconds=settings.sync_level_cache_ttl_seconds)
        return count

    # ================================================================================
    # UPSERT
    # ================================================================================

    def _upsert_resources(
        self,
        integration: Integration,
        hierarchy: ResourceHierarchy,
        resources: Sequence[Any],
        resource_type: ResourceType,
        parent: Optional[SyncedResource],
    ) -> int:
        """Upsert at most sync_max_resources_per_level resources under ``parent``."""
        if not resources:
            return 0

        batch = resources[:settings.sync_max_resources_per_level]
        level = parent.level + 1 if parent is not None else 0
        parent_path = parent.path if parent is not None else ""
        provider_type = getattr(hierarchy.labels, resource_type.value).lower()
        now = utc_now()

        try:
            for position, resource in enumerate(batch):
                values = {
                    "parent_id": parent.id if parent is not None else None,
                    "resource_type": resource_type.value,
                    "level": level,
                    "position": position,
                    "path": f"{parent_path}/{resource.id}",
                    "name": resource.name,
                    "description": getattr(resource, "description", None),
                    "provider_type": provider_type,
                    "resource_metadata": resource.metadata or {},
                    "is_selectable": resource_type.is_selectable,
                    "sync_status": SyncStatus.SYNCED.value,
                    "sync_error": None,
                    "last_synced_at": now,
                    "updated_at": now,
                }
                statement = dialect_insert(self.session, SyncedResource).values(
                    id=uuid.uuid4(),
                    organization_id=integration.organization_id,
                    integration_id=integration.id,
                    external_id=resource.id,
                    created_at=now,
                    **values,
                ).on_conflict_do_update(
                    index_elements=["organization_id", "integration_id", "external_id"],
                    set_=values,
                )
                self.session.exec(statement)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, integration_id=str(integration.id), resource_type=resource_type.value)
            raise

        return len(batch)

    # ================================================================================
    # READS
    # ================================================================================

    def get_resource(self, resource_id: uuid.UUID, organization_id: Optional[uuid.UUID] = None) -> SyncedResource:
        resource = self.session.get(SyncedResource, resource_id)
        if resource is None or (organization_id is not None and resource.organization_id != organization_id):
            raise SyncedResourceNotFoundError("Resource not found")
        return resource

    def get_resources(
        self,
        integration_id: uuid.UUID,
        parent_id: Optional[uuid.UUID] = None,
        resource_type: Optional[ResourceType] = None,
        limit: Optional[int] = None,
    ) -> List[SyncedResource]:
        """
        Children of ``parent_id``; roots when neither parent nor type is given.

        Results come back in creation order.
        """
        statement = select(SyncedResource).where(SyncedResource.integration_id == integration_id)
        if parent_id is not None:
            statement = statement.where(SyncedResource.parent_id == parent_id)
        elif resource_type is None:
            statement = statement.where(col(SyncedResource.parent_id).is_(None))
        if resource_type is not None:
            statement = statement.where(SyncedResource.resource_type == ResourceType(resource_type).value)

        statement = statement.order_by(SyncedResource.created_at, SyncedResource.position, SyncedResource.path)
        if limit is not None:
            statement = statement.limit(limit)
        return list(self.session.exec(statement.execution_options(populate_existing=True)))

    def search_resources(
        self,
        organization_id: uuid.UUID,
        integration_id: uuid.UUID,
        query: str,
        resource_type: Optional[ResourceType] = None,
        limit: int = 50,
    ) -> List[SyncedResource]:
        """Case-insensitive substring match on name."""
        limit = max(1, min(limit, settings.resource_search_limit))
        statement = select(SyncedResource).where(
            SyncedResource.organization_id == organization_id,
            SyncedResource.integration_id == integration_id,
            func.lower(SyncedResource.name).contains(query.lower(), autoescape=True),
        )
        if resource_type is not None:
            statement = statement.where(SyncedResource.resource_type == ResourceType(resource_type).value)
        statement = statement.order_by(SyncedResource.level, SyncedResource.name).limit(limit)
        return list(self.session.exec(statement))

    def get_resource_path(self, resource_id: uuid.UUID) -> List[SyncedResource]:
        """
        Root-to-leaf chain ending at ``resource_id``.

        Raises:
            SyncedResourceNotFoundError: The starting resource does not exist
            ResourcePathError: The parent chain revisits a node or is deeper
                than the provider's hierarchy allows
        """
        start = self.session.get(SyncedResource, resource_id)
        if start is None:
            raise SyncedResourceNotFoundError("Resource not found")

        max_depth = self._max_depth(start.integration_id)
        path: List[SyncedResource] = []
        seen = set()
        current: Optional[SyncedResource] = start

        while current is not None:
            if current.id in seen:
                raise ResourcePathError(f"Cycle detected in resource ancestry at {current.id}")
            if len(path) >= max_depth:
                raise ResourcePathError(
                    f"Resource ancestry of {resource_id} exceeds maximum depth {max_depth}"
                )
            seen.add(current.id)
            path.append(current)
            current = self.session.get(SyncedResource, current.parent_id) if current.parent_id else None

        path.reverse()
        return path

    def _max_depth(self, integration_id: uuid.UUID) -> int:
        integration = self.integrations.get_by_id(integration_id)
        if integration is None or integration.provider not in self.registry:
            return DEFAULT_MAX_DEPTH
        return self.registry.get_provider(integration.provider).get_hierarchy().max_depth

    # ================================================================================
    # USAGE TRACKING
    # ================================================================================

    def track_usage(self, user_id: uuid.UUID, resource_id: uuid.UUID) -> None:
        """Bump the resource's access counter and the user's recent entry."""
        if self.session.get(SyncedResource, resource_id) is None:
            raise SyncedResourceNotFoundError("Resource not found")

        now = utc_now()
        recent_table = RecentResource.__table__
        try:
            self.session.exec(
                update(SyncedResource)
                .where(SyncedResource.id == resource_id)
                .values(
                    access_count=SyncedResource.access_count + 1,
                    last_accessed_at=now,
                )
            )
            self.session.exec(
                dialect_insert(self.session, RecentResource).values(
                    id=uuid.uuid4(),
                    user_id=user_id,
                    resource_id=resource_id,
                    last_used_at=now,
                    use_count=1,
                    created_at=now,
                    updated_at=now,
                ).on_conflict_do_update(
                    index_elements=["user_id", "resource_id"],
                    set_={
                        "last_used_at": now,
                        "use_count": recent_table.c.use_count + 1,
                        "updated_at": now,
                    },
                )
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, user_id=str(user_id), resource_id=str(resource_id))
            raise

    def get_recent_resources(
        self,
        user_id: uuid.UUID,
        limit: int = 10,
        integration_id: Optional[uuid.UUID] = None,
    ) -> List[Dict[str, Any]]:
        statement = (
            select(SyncedResource, RecentResource.last_used_at, RecentResource.use_count)
            .join(RecentResource, RecentResource.resource_id == SyncedResource.id)
            .where(RecentResource.user_id == user_id)
        )
        if integration_id is not None:
            statement = statement.where(SyncedResource.integration_id == integration_id)
        statement = statement.order_by(col(RecentResource.last_used_at).desc()).limit(limit)
        statement = statement.execution_options(populate_existing=True)
        return [
            {"resource": resource, "last_used_at": last_used_at, "use_count": use_count}
            for resource, last_used_at, use_count in self.session.exec(statement)
        ]

    def add_favorite(self, user_id: uuid.UUID, resource_id: uuid.UUID) -> FavoriteResource:
        """Append a favorite; adding an existing one returns it unchanged."""
        if self.session.get(SyncedResource, resource_id) is None:
            raise SyncedResourceNotFoundError("Resource not found")

        existing = self.session.exec(
            select(FavoriteResource).where(
                FavoriteResource.user_id == user_id,
                FavoriteResource.resource_id == resource_id,
            )
        ).first()
        if existing:
            return existing

        last_position = self.session.exec(
            select(func.max(FavoriteResource.position)).where(FavoriteResource.user_id == user_id)
        ).one()
        favorite = FavoriteResource(
            user_id=user_id,
            resource_id=resource_id,
            position=0 if last_position is None else last_position + 1,
        )
        try:
            self.session.add(favorite)
            self.session.commit()
            self.session.refresh(favorite)
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, user_id=str(user_id), resource_id=str(resource_id))
            raise
        return favorite

    def remove_favorite(self, user_id: uuid.UUID, resource_id: uuid.UUID) -> bool:
        favorite = self.session.exec(
            select(FavoriteResource).where(
                FavoriteResource.user_id == user_id,
                FavoriteResource.resource_id == resource_id,
            )
        ).first()
        if favorite is None:
            return False
        self.session.delete(favorite)
        self.session.commit()
        return True

    def list_favorites(self, user_id: uuid.UUID) -> List[SyncedResource]:
        statement = (
            select(SyncedResource)
            .join(FavoriteResource, FavoriteResource.resource_id == SyncedResource.id)
            .where(FavoriteResource.user_id == user_id)
            .order_by(FavoriteResource.position)
        )
        return list(self.session.exec(statement))

    def save_user_defaults(
        self,
        user_id: uuid.UUID,
        integration_id: uuid.UUID,
        container_id: Optional[uuid.UUID] = None,
        project_id: Optional[uuid.UUID] = None,
        collection_id: Optional[uuid.UUID] = None,
    ) -> UserIntegrationPreference:
        now = utc_now()
        values = {
            "default_container_id": container_id,
            "default_project_id": project_id,
            "default_collection_id": collection_id,
            "updated_at": now,
        }
        try:
            self.session.exec(
                dialect_insert(self.session, UserIntegrationPreference).values(
                    id=uuid.uuid4(),
                    user_id=user_id,
                    integration_id=integration_id,
                    created_at=now,
                    **values,
                ).on_conflict_do_update(
                    index_elements=["user_id", "integration_id"],
                    set_=values,
                )
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, user_id=str(user_id), integration_id=str(integration_id))
            raise
        return self.get_user_defaults(user_id, integration_id)

    def get_user_defaults(
        self,
        user_id: uuid.UUID,
        integration_id: uuid.UUID,
    ) -> Optional[UserIntegrationPreference]:
        return self.session.exec(
            select(UserIntegrationPreference)
            .where(
                UserIntegrationPreference.user_id == user_id,
                UserIntegrationPreference.integration_id == integration_id,
            )
            .execution_options(populate_existing=True)
        ).first()
