"""
Unit tests for IntegrationService: connections, configuration and time entry pushes.
"""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select

from app.core.encryption import is_encrypted
from app.core.exceptions import (
    IntegrationError,
    IntegrationNotFoundError,
    RateLimitError,
    ResourceNotLinkedError,
)
from app.integrations.base import OAuthTokens
from app.integrations.service import IntegrationService
from app.integrations.sync_service import SmartSyncService
from app.models.enums import SyncStatus
from app.models.integration import ORGANIZATION_SCOPE, Integration
from app.models.synced_resource import SyncedResource
from app.models.time_entry import TimeEntry


def _time_entry(session, user, running=False) -> TimeEntry:
    start = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    entry = TimeEntry(
        user_id=user.id,
        start_time=start,
        end_time=None if running else start + timedelta(hours=1),
        description="Code review",
    )
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return entry


class TestConnect:
    def test_connect_encrypts_tokens(self, session, integration):
        assert integration.is_active
        assert integration.scope_key == ORGANIZATION_SCOPE
        assert is_encrypted(integration.access_token_encrypted)
        assert IntegrationService.get_access_token(integration) == "pk_live_token"

    def test_reconnect_updates_the_same_row(self, session, organization, integration):
        service = IntegrationService(session)
        service.record_sync_error(integration, "Invalid or expired token")

        again = service.connect(
            organization_id=organization.id,
            provider="clickup",
            tokens=OAuthTokens(access_token="pk_rotated"),
            provider_account_id="w1",
        )

        rows = session.exec(select(Integration).where(Integration.organization_id == organization.id)).all()
        assert len(rows) == 1
        assert again.id == integration.id
        assert again.last_error is None
        assert IntegrationService.get_access_token(again) == "pk_rotated"

    def test_per_user_connections_are_separate(self, session, organization, integration, employee_user):
        service = IntegrationService(session)

        personal = service.connect(
            organization_id=organization.id,
            provider="clickup",
            tokens=OAuthTokens(access_token="pk_personal"),
            user_id=employee_user.id,
        )

        assert personal.id != integration.id
        assert personal.scope_key == str(employee_user.id)
        assert service.get(organization.id, "clickup", user_id=employee_user.id).id == personal.id

    def test_disconnect_deactivates(self, session, organization, integration):
        service = IntegrationService(session)

        service.disconnect(integration.id)

        assert service.get(organization.id, "clickup") is None
        assert service.list_for_organization(organization.id) == []
        assert service.get_by_id(integration.id).is_active is False

    @pytest.mark.asyncio
    async def test_disconnect_keeps_synced_resources(self, session, integration, make_registry, level_cache):
        _, registry = make_registry(containers=2, projects=2, collections=1, tasks=1)
        await SmartSyncService(session, registry, cache=level_cache).sync_integration(integration.id)
        synced_ids = set(
            session.exec(select(SyncedResource.id).where(SyncedResource.integration_id == integration.id)).all()
        )

        IntegrationService(session).disconnect(integration.id)

        remaining = set(
            session.exec(select(SyncedResource.id).where(SyncedResource.integration_id == integration.id)).all()
        )
        assert synced_ids
        assert remaining == synced_ids

    def test_reconnect_after_disconnect_reactivates(self, session, organization, integration):
        service = IntegrationService(session)
        service.disconnect(integration.id)

        again = service.connect(
            organization_id=organization.id,
            provider="clickup",
            tokens=OAuthTokens(access_token="pk_back"),
        )

        assert again.id == integration.id
        assert again.is_active is True

    def test_require_missing(self, session):
        with pytest.raises(IntegrationNotFoundError):
            IntegrationService(session).require(uuid.uuid4())

    def test_sync_outcome_is_recorded(self, session, integration):
        service = IntegrationService(session)

        service.record_sync_error(integration, "boom")
        assert integration.last_error == "boom"
        assert integration.last_error_at is not None

        service.record_sync_success(integration)
        assert integration.last_error is None
        assert integration.last_synced_at is not None


class TestConfig:
    def test_set_and_overwrite(self, session, integration):
        service = IntegrationService(session)

        service.set_config(integration.id, "default_billable", True)
        service.set_config(integration.id, "default_billable", False)
        service.set_config(integration.id, "tags", ["client-a"])

        assert service.get_config(integration.id, "default_billable") is False
        assert service.get_config(integration.id, "missing") is None
        assert service.get_all_configs(integration.id) == {"default_billable": False, "tags": ["client-a"]}


class TestSyncTimeEntry:
    @pytest.mark.asyncio
    async def test_first_push_creates(self, session, integration, employee_user, registry, stub_provider):
        entry = _time_entry(session, employee_user)
        service = IntegrationService(session)
        service.link_time_entry(entry.id, integration.id, "task-1")

        mapping = await service.sync_time_entry(entry.id, registry)

        assert mapping.external_entry_id == "te-1"
        assert mapping.sync_status == SyncStatus.SYNCED.value
        assert mapping.synced_at is not None
        assert stub_provider.created_entries[0].task_id == "task-1"
        assert stub_provider.created_entries[0].description == "Code review"

    @pytest.mark.asyncio
    async def test_second_push_updates(self, session, integration, employee_user, registry, stub_provider):
        entry = _time_entry(session, employee_user)
        service = IntegrationService(session)
        service.link_time_entry(entry.id, integration.id, "task-1")

        await service.sync_time_entry(entry.id, registry)
        mapping = await service.sync_time_entry(entry.id, registry)

        assert len(stub_provider.created_entries) == 1
        assert stub_provider.updated_entries == ["te-1"]
        assert mapping.external_entry_id == "te-1"

    @pytest.mark.asyncio
    async def test_provider_failure_recorded_on_mapping(self, session, integration, employee_user, registry, stub_provider):
        entry = _time_entry(session, employee_user)
        service = IntegrationService(session)
        mapping = service.link_time_entry(entry.id, integration.id, "task-1")
        stub_provider.fail_with = RateLimitError("clickup", 10)

        with pytest.raises(RateLimitError):
            await service.sync_time_entry(entry.id, registry)

        session.refresh(mapping)
        assert mapping.sync_status == SyncStatus.ERROR.value
        assert "Rate limit exceeded" in mapping.sync_error

    @pytest.mark.asyncio
    async def test_unlinked_entry(self, session, employee_user, registry):
        entry = _time_entry(session, employee_user)

        with pytest.raises(ResourceNotLinkedError):
            await IntegrationService(session).sync_time_entry(entry.id, registry)

    @pytest.mark.asyncio
    async def test_running_entry_rejected(self, session, integration, employee_user, registry):
        entry = _time_entry(session, employee_user, running=True)
        service = IntegrationService(session)
        service.link_time_entry(entry.id, integration.id, "task-1")

        with pytest.raises(ValueError, match="still running"):
            await service.sync_time_entry(entry.id, registry)

    @pytest.mark.asyncio
    async def test_generic_provider_error(self, session, integration, employee_user, registry, stub_provider):
        entry = _time_entry(session, employee_user)
        service = IntegrationService(session)
        service.link_time_entry(entry.id, integration.id, "task-1")
        stub_provider.fail_with = IntegrationError("Task locked", "clickup", code="TASK_LOCKED")

        with pytest.raises(IntegrationError, match="Task locked"):
            await service.sync_time_entry(entry.id, registry)
