"""
Unit tests for the integrations router.
"""
import asyncio
import uuid
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.middleware.sessions import SessionMiddleware

from app.api.dependencies import get_current_user, get_provider_registry
from app.core.config import settings
from app.core.database import get_session
from app.core.exceptions import IntegrationError, RateLimitError
from app.integrations.router import router
from app.integrations.service import IntegrationService
from app.integrations.sync_service import SmartSyncService
from app.models.enums import ResourceType

API = "/api/v1/integrations"
SETTINGS_PAGE = f"{settings.app_url}/settings/integrations"


@pytest.fixture
def make_client(session, registry):
    def _build(user, provider_registry=None) -> TestClient:
        app = FastAPI()
        app.add_middleware(SessionMiddleware, secret_key="test-session-secret")
        app.include_router(router, prefix="/api/v1")
        app.dependency_overrides[get_session] = lambda: session
        app.dependency_overrides[get_current_user] = lambda: user
        app.dependency_overrides[get_provider_registry] = lambda: provider_registry or registry
        return TestClient(app)

    return _build


@pytest.fixture
def admin_client(make_client, admin_user):
    return make_client(admin_user)


@pytest.fixture
def employee_client(make_client, employee_user):
    return make_client(employee_user)


def _query(response) -> dict:
    location = response.headers["location"]
    return {key: values[0] for key, values in parse_qs(urlparse(location).query).items()}


class TestCatalogue:
    def test_lists_providers_with_connection_state(self, employee_client, integration):
        response = employee_client.get(API)

        assert response.status_code == 200
        clickup = response.json()["providers"][0]
        assert clickup["id"] == "clickup"
        assert clickup["connected"] is True
        assert clickup["integration_id"] == str(integration.id)
        assert response.json()["notice"] is None

    def test_not_connected(self, employee_client):
        clickup = employee_client.get(API).json()["providers"][0]

        assert clickup["connected"] is False
        assert clickup["integration_id"] is None

    def test_redirect_codes_become_notices(self, employee_client):
        notice = employee_client.get(API, params={"error": "invalid_state"}).json()["notice"]
        assert notice == {"level": "error", "message": "Security validation failed. Please try again."}

        notice = employee_client.get(API, params={"success": "true"}).json()["notice"]
        assert notice["level"] == "success"


class TestOAuthFlow:
    def test_connect_requires_admin(self, employee_client):
        response = employee_client.get(f"{API}/clickup/connect", follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"].startswith(SETTINGS_PAGE)
        assert _query(response) == {"error": "unauthorized"}

    def test_connect_unavailable_provider(self, admin_client):
        response = admin_client.get(f"{API}/asana/connect", follow_redirects=False)

        assert _query(response) == {"error": "provider_not_available"}

    def test_full_flow(self, admin_client, session, organization):
        response = admin_client.get(f"{API}/clickup/connect", follow_redirects=False)
        assert response.status_code == 302
        state = _query(response)["state"]
        assert _query(response)["redirect_uri"] == f"{settings.app_url}/api/v1/integrations/clickup/callback"

        with patch("app.integrations.router.smart_sync_integration") as sync_task:
            response = admin_client.get(
                f"{API}/clickup/callback",
                params={"code": "abc", "state": state},
                follow_redirects=False,
            )

        assert response.status_code == 303
        assert _query(response) == {"success": "true"}

        integration = IntegrationService(session).get(organization.id, "clickup")
        assert integration is not None
        assert IntegrationService.get_access_token(integration) == "token-for-abc"
        assert integration.provider_account_id == "w1"
        assert integration.get_metadata()["user"]["id"] == "u-1"
        assert len(integration.get_metadata()["workspaces"]) == 3
        sync_task.delay.assert_called_once_with(str(integration.id))

    def test_state_is_single_use(self, admin_client):
        state = _query(admin_client.get(f"{API}/clickup/connect", follow_redirects=False))["state"]
        with patch("app.integrations.router.smart_sync_integration"):
            admin_client.get(f"{API}/clickup/callback", params={"code": "abc", "state": state}, follow_redirects=False)
            response = admin_client.get(
                f"{API}/clickup/callback", params={"code": "abc", "state": state}, follow_redirects=False
            )

        assert _query(response) == {"error": "invalid_state"}

    def test_state_mismatch(self, admin_client):
        admin_client.get(f"{API}/clickup/connect", follow_redirects=False)

        response = admin_client.get(
            f"{API}/clickup/callback", params={"code": "abc", "state": "forged"}, follow_redirects=False
        )

        assert _query(response) == {"error": "invalid_state"}

    def test_missing_code(self, admin_client):
        response = admin_client.get(f"{API}/clickup/callback", params={"state": "x"}, follow_redirects=False)

        assert _query(response) == {"error": "invalid_callback"}

    def test_provider_error_is_passed_through(self, admin_client):
        response = admin_client.get(
            f"{API}/clickup/callback", params={"error": "access_denied"}, follow_redirects=False
        )

        assert _query(response) == {"error": "access_denied"}

    def test_enqueue_failure_does_not_fail_callback(self, admin_client):
        state = _query(admin_client.get(f"{API}/clickup/connect", follow_redirects=False))["state"]
        sync_task = MagicMock()
        sync_task.delay.side_effect = ConnectionError("broker down")

        with patch("app.integrations.router.smart_sync_integration", sync_task):
            response = admin_client.get(
                f"{API}/clickup/callback", params={"code": "abc", "state": state}, follow_redirects=False
            )

        assert _query(response) == {"success": "true"}

    def test_disconnect(self, admin_client, session, organization, integration):
        response = admin_client.post(f"{API}/clickup/disconnect", follow_redirects=False)

        assert _query(response) == {"disconnected": "true"}
        assert IntegrationService(session).get(organization.id, "clickup") is None

    def test_disconnect_when_not_connected(self, admin_client):
        response = admin_client.post(f"{API}/clickup/disconnect", follow_redirects=False)

        assert _query(response) == {"error": "not_connected"}


class TestManualSync:
    def test_smart_sync(self, admin_client, integration):
        response = admin_client.post(f"{API}/clickup/sync")

        assert response.status_code == 200
        body = response.json()
        assert body["sync_type"] == "smart"
        assert body["stats"] == {"containers": 3, "projects": 10, "collections": 40, "tasks": 100}
        assert body["message"] == "Successfully synced 153 resources from clickup"

    def test_full_sync_flag(self, make_client, make_registry, admin_user, integration):
        provider, small_registry = make_registry(containers=3, projects=2, collections=1, tasks=1)
        client = make_client(admin_user, provider_registry=small_registry)

        response = client.post(f"{API}/clickup/sync", data={"full": "true"})

        assert response.json()["sync_type"] == "full"
        assert response.json()["stats"] == {"containers": 3, "projects": 6, "collections": 6, "tasks": 6}
        assert provider.calls["projects"] == ["w1", "w2", "w3"]

    def test_not_connected(self, admin_client):
        assert admin_client.post(f"{API}/clickup/sync").status_code == 404

    def test_requires_admin(self, employee_client, integration):
        assert employee_client.post(f"{API}/clickup/sync").status_code == 403

    def test_rate_limited(self, admin_client, integration, stub_provider):
        stub_provider.fail_with = RateLimitError("clickup", 30)

        response = admin_client.post(f"{API}/clickup/sync")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "30"
        assert response.json()["retry_after"] == 30

    def test_provider_failure(self, admin_client, integration, stub_provider):
        stub_provider.fail_with = IntegrationError("API error: 500", "clickup")

        response = admin_client.post(f"{API}/clickup/sync")

        assert response.status_code == 500
        assert response.json() == {"error": "Sync failed", "details": "API error: 500"}

    def test_get_is_rejected(self, admin_client):
        assert admin_client.get(f"{API}/clickup/sync").status_code == 405


@pytest.fixture
def synced(session, integration, registry, level_cache):
    service = SmartSyncService(session, registry, cache=level_cache)
    asyncio.run(service.sync_integration(integration.id))
    return service


class TestResources:
    def test_roots(self, employee_client, synced):
        response = employee_client.get(f"{API}/clickup/resources")

        assert response.status_code == 200
        assert [r["external_id"] for r in response.json()] == ["w1", "w2", "w3"]

    def test_children(self, employee_client, synced, integration):
        container = synced.get_resources(integration.id)[0]

        response = employee_client.get(f"{API}/clickup/resources", params={"parent_id": str(container.id)})

        assert len(response.json()) == 10
        assert all(r["parent_id"] == str(container.id) for r in response.json())

    def test_invalid_type(self, employee_client, synced):
        response = employee_client.get(f"{API}/clickup/resources", params={"type": "folder"})

        assert response.status_code == 400

    def test_search(self, employee_client, synced):
        response = employee_client.get(f"{API}/clickup/resources/search", params={"q": "project 1"})

        assert sorted(r["name"] for r in response.json()) == ["Project 1", "Project 10"]

    def test_path(self, employee_client, synced, integration):
        task = synced.get_resources(integration.id, resource_type=ResourceType.TASK, limit=1)[0]

        response = employee_client.get(f"{API}/resources/{task.id}/path")

        assert [r["resource_type"] for r in response.json()] == ["container", "project", "collection", "task"]

    def test_path_unknown(self, employee_client, synced):
        assert employee_client.get(f"{API}/resources/{uuid.uuid4()}/path").status_code == 404

    def test_level_sync(self, employee_client, synced, integration):
        container = synced.get_resources(integration.id)[2]

        response = employee_client.post(f"{API}/resources/{container.id}/sync/projects")

        assert response.status_code == 200
        assert response.json() == {"success": True, "count": 10}

    def test_level_sync_invalid_level(self, employee_client, synced, integration):
        container = synced.get_resources(integration.id)[0]

        assert employee_client.post(f"{API}/resources/{container.id}/sync/subtasks").status_code == 400

    def test_level_sync_repeat_is_served_from_cache(self, employee_client, synced, integration, stub_provider):
        container = synced.get_resources(integration.id)[1]
        calls_before = len(stub_provider.calls["projects"])

        first = employee_client.post(f"{API}/resources/{container.id}/sync/projects")
        second = employee_client.post(f"{API}/resources/{container.id}/sync/projects")

        assert first.json() == second.json() == {"success": True, "count": 10}
        assert len(stub_provider.calls["projects"]) == calls_before + 1

    def test_level_sync_provider_failure(self, employee_client, synced, integration, stub_provider):
        container = synced.get_resources(integration.id)[1]
        stub_provider.fail_with = IntegrationError("API error: 500", "clickup")

        response = employee_client.post(f"{API}/resources/{container.id}/sync/projects")

        assert response.status_code == 500
        assert response.json() == {"error": "Sync failed", "details": "API error: 500"}

    def test_track_and_recent(self, employee_client, synced, integration):
        task = synced.get_resources(integration.id, resource_type=ResourceType.TASK, limit=1)[0]

        assert employee_client.post(f"{API}/resources/{task.id}/track").status_code == 204
        recent = employee_client.get(f"{API}/clickup/resources/recent").json()

        assert recent[0]["resource"]["id"] == str(task.id)
        assert recent[0]["use_count"] == 1


class TestFavoritesAndDefaults:
    def test_favorite_lifecycle(self, employee_client, synced, integration):
        task = synced.get_resources(integration.id, resource_type=ResourceType.TASK, limit=1)[0]

        response = employee_client.post(f"{API}/resources/{task.id}/favorite")
        assert response.status_code == 201
        assert response.json() == {"success": True, "position": 0}

        assert [r["id"] for r in employee_client.get(f"{API}/favorites").json()] == [str(task.id)]

        assert employee_client.delete(f"{API}/resources/{task.id}/favorite").json() == {"success": True}
        response = employee_client.delete(f"{API}/resources/{task.id}/favorite")
        assert response.status_code == 404
        assert response.json()["detail"] == "Favorite not found"

    def test_defaults(self, employee_client, synced, integration):
        project = synced.get_resources(integration.id, resource_type=ResourceType.PROJECT)[0]

        empty = employee_client.get(f"{API}/clickup/defaults").json()
        assert empty["project_id"] is None

        saved = employee_client.put(f"{API}/clickup/defaults", json={"project_id": str(project.id)}).json()
        assert saved["project_id"] == str(project.id)
        assert employee_client.get(f"{API}/clickup/defaults").json()["project_id"] == str(project.id)

    def test_defaults_reject_unknown_resource(self, employee_client, synced):
        response = employee_client.put(f"{API}/clickup/defaults", json={"project_id": str(uuid.uuid4())})

        assert response.status_code == 404
