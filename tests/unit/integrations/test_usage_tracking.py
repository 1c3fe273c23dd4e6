"""
Unit tests for search, recent resources, favorites and default selections.
"""
import uuid

import pytest
import pytest_asyncio
from sqlmodel import select

from app.core.exceptions import SyncedResourceNotFoundError
from app.integrations.sync_service import SmartSyncService
from app.models.enums import ResourceType
from app.models.synced_resource import UserIntegrationPreference


@pytest_asyncio.fixture
async def synced(session, integration, registry, level_cache):
    service = SmartSyncService(session, registry, cache=level_cache)
    await service.sync_integration(integration.id)
    return service


def _tasks(service, integration, count):
    return service.get_resources(integration.id, resource_type=ResourceType.TASK, limit=count)


class TestSearch:
    @pytest.mark.asyncio
    async def test_case_insensitive_substring(self, synced, organization, integration):
        results = synced.search_resources(organization.id, integration.id, "PROJECT 1")

        assert sorted(r.name for r in results) == ["Project 1", "Project 10"]

    @pytest.mark.asyncio
    async def test_type_filter(self, synced, organization, integration):
        results = synced.search_resources(
            organization.id, integration.id, "1", resource_type=ResourceType.CONTAINER
        )

        assert [r.name for r in results] == ["Workspace 1"]

    @pytest.mark.asyncio
    async def test_limit_is_clamped(self, synced, organization, integration):
        assert len(synced.search_resources(organization.id, integration.id, "task", limit=500)) == 50
        assert len(synced.search_resources(organization.id, integration.id, "task", limit=0)) == 1

    @pytest.mark.asyncio
    async def test_other_organization_sees_nothing(self, synced, integration):
        assert synced.search_resources(uuid.uuid4(), integration.id, "project") == []

    @pytest.mark.asyncio
    async def test_like_wildcards_are_literal(self, synced, organization, integration):
        assert synced.search_resources(organization.id, integration.id, "%") == []


class TestRecentResources:
    @pytest.mark.asyncio
    async def test_tracking_counts_and_orders(self, synced, session, integration, employee_user):
        first, second = _tasks(synced, integration, 2)

        synced.track_usage(employee_user.id, first.id)
        synced.track_usage(employee_user.id, first.id)
        synced.track_usage(employee_user.id, second.id)

        recent = synced.get_recent_resources(employee_user.id)
        assert [item["resource"].id for item in recent] == [second.id, first.id]
        assert recent[1]["use_count"] == 2

        session.refresh(first)
        assert first.access_count == 2
        assert first.last_accessed_at is not None

    @pytest.mark.asyncio
    async def test_recent_is_per_user(self, synced, integration, employee_user, admin_user):
        task = _tasks(synced, integration, 1)[0]
        synced.track_usage(employee_user.id, task.id)

        assert synced.get_recent_resources(admin_user.id) == []
        assert len(synced.get_recent_resources(employee_user.id, integration_id=integration.id)) == 1
        assert synced.get_recent_resources(employee_user.id, integration_id=uuid.uuid4()) == []

    @pytest.mark.asyncio
    async def test_limit(self, synced, integration, employee_user):
        for task in _tasks(synced, integration, 5):
            synced.track_usage(employee_user.id, task.id)

        assert len(synced.get_recent_resources(employee_user.id, limit=3)) == 3

    @pytest.mark.asyncio
    async def test_unknown_resource(self, synced, employee_user):
        with pytest.raises(SyncedResourceNotFoundError):
            synced.track_usage(employee_user.id, uuid.uuid4())


class TestFavorites:
    @pytest.mark.asyncio
    async def test_favorites_keep_insertion_order(self, synced, integration, employee_user):
        first, second = _tasks(synced, integration, 2)

        assert synced.add_favorite(employee_user.id, first.id).position == 0
        assert synced.add_favorite(employee_user.id, second.id).position == 1
        assert synced.add_favorite(employee_user.id, first.id).position == 0

        assert [r.id for r in synced.list_favorites(employee_user.id)] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_remove(self, synced, integration, employee_user):
        first, second = _tasks(synced, integration, 2)
        synced.add_favorite(employee_user.id, first.id)
        synced.add_favorite(employee_user.id, second.id)

        assert synced.remove_favorite(employee_user.id, first.id) is True
        assert synced.remove_favorite(employee_user.id, first.id) is False
        assert [r.id for r in synced.list_favorites(employee_user.id)] == [second.id]

    @pytest.mark.asyncio
    async def test_unknown_resource(self, synced, employee_user):
        with pytest.raises(SyncedResourceNotFoundError):
            synced.add_favorite(employee_user.id, uuid.uuid4())


class TestUserDefaults:
    @pytest.mark.asyncio
    async def test_save_replaces_previous_defaults(self, synced, session, integration, employee_user):
        container = synced.get_resources(integration.id, resource_type=ResourceType.CONTAINER)[0]
        project = synced.get_resources(integration.id, resource_type=ResourceType.PROJECT)[0]
        collection = synced.get_resources(integration.id, resource_type=ResourceType.COLLECTION)[0]

        saved = synced.save_user_defaults(employee_user.id, integration.id, container.id, project.id)
        assert saved.default_container_id == container.id
        assert saved.default_collection_id is None

        saved = synced.save_user_defaults(employee_user.id, integration.id, collection_id=collection.id)
        assert saved.default_container_id is None
        assert saved.default_collection_id == collection.id

        rows = session.exec(
            select(UserIntegrationPreference).where(UserIntegrationPreference.user_id == employee_user.id)
        ).all()
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_no_defaults(self, synced, integration, admin_user):
        assert synced.get_user_defaults(admin_user.id, integration.id) is None
