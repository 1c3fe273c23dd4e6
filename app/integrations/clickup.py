"""
ClickUp provider adapter.

Hierarchy mapping:
    container  -> Team (called Workspace in the ClickUp UI)
    project    -> Space
    collection -> List (folderless lists plus lists inside folders)
    task       -> Task

API Documentation: https://clickup.com/api/

ClickUp access tokens do not expire and there is no refresh grant. Requests
send the raw token in the Authorization header, without a "Bearer" prefix.
"""
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from app.core.config import settings
from app.core.exceptions import (
    AuthenticationError,
    IntegrationError,
    RateLimitError,
    ResourceNotFoundError,
)
from app.core.http_client import get_http_client
from app.core.logging_config import log_debug, log_warning
from app.core.time_utils import from_epoch_ms, to_epoch_ms
from app.integrations.base import (
    BaseProvider,
    Collection,
    HierarchyLabels,
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

PROVIDER_NAME = "clickup"


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return max(int(float(value)), 0)
    except ValueError:
        return None


class ClickUpProvider(BaseProvider):
    """ClickUp REST v2 adapter."""

    name = PROVIDER_NAME
    display_name = "ClickUp"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        auth_url: Optional[str] = None,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._http_client = http_client
        self._base_url = (base_url or settings.clickup_api_base_url).rstrip("/")
        self._auth_url = auth_url or settings.clickup_auth_url

    async def _client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        return await get_http_client()

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def get_auth_url(self, state: str, redirect_uri: str) -> str:
        query = urlencode({
            "client_id": self._client_id,
            "redirect_uri": redirect_uri,
            "state": state,
        })
        return f"{self._auth_url}?{query}"

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> OAuthTokens:
        client = await self._client()
        try:
            response = await client.post(
                f"{self._base_url}/oauth/token",
                json={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "code": code,
                    "redirect_uri": redirect_uri,
                },
            )
        except httpx.HTTPError as e:
            raise IntegrationError(
                f"Token exchange request failed: {e}", PROVIDER_NAME, code="NETWORK_ERROR"
            ) from e

        if not response.is_success:
            log_warning(
                "ClickUp token exchange rejected",
                provider=PROVIDER_NAME,
                status_code=response.status_code,
            )
            raise AuthenticationError(PROVIDER_NAME, "Failed to exchange code for token")

        data = response.json()
        return OAuthTokens(
            access_token=data["access_token"],
            token_type="Bearer",
        )

    async def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        raise IntegrationError(
            "ClickUp does not support refresh tokens",
            PROVIDER_NAME,
            code="REFRESH_UNSUPPORTED",
        )

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    def get_hierarchy(self) -> ResourceHierarchy:
        return ResourceHierarchy(
            supports=HierarchySupport(containers=True, projects=True, collections=True, sub_collections=False),
            labels=HierarchyLabels(container="Workspace", project="Space", collection="List", task="Task"),
            max_depth=4,
        )

    async def fetch_workspaces(self, access_token: str) -> List[Workspace]:
        data = await self._request(access_token, "GET", "/team", resource_type="Workspace")
        return [
            Workspace(
                id=str(team["id"]),
                name=team.get("name") or str(team["id"]),
                metadata={
                    "color": team.get("color"),
                    "avatar": team.get("avatar"),
                    "member_count": len(team.get("members") or []),
                },
            )
            for team in data.get("teams", [])
        ]

    async def fetch_projects(self, access_token: str, workspace_id: str) -> List[Project]:
        data = await self._request(
            access_token, "GET", f"/team/{workspace_id}/space",
            params={"archived": "false"}, resource_type="Workspace", resource_id=workspace_id,
        )
        return [
            Project(
                id=str(space["id"]),
                name=space.get("name") or str(space["id"]),
                workspace_id=workspace_id,
                metadata={"private": space.get("private"), "color": space.get("color")},
            )
            for space in data.get("spaces", [])
        ]

    async def fetch_collections(self, access_token: str, project_id: str) -> List[Collection]:
        """Lists directly under the space, then lists inside each folder."""
        folderless = await self._request(
            access_token, "GET", f"/space/{project_id}/list",
            params={"archived": "false"}, resource_type="Space", resource_id=project_id,
        )
        folders = await self._request(
            access_token, "GET", f"/space/{project_id}/folder",
            params={"archived": "false"}, resource_type="Space", resource_id=project_id,
        )

        collections = [
            self._to_collection(lst, project_id, folder=None)
            for lst in folderless.get("lists", [])
        ]
        for folder in folders.get("folders", []):
            for lst in folder.get("lists") or []:
                collections.append(self._to_collection(lst, project_id, folder=folder))
        return collections

    @staticmethod
    def _to_collection(lst: Dict[str, Any], project_id: str, folder: Optional[Dict[str, Any]]) -> Collection:
        metadata: Dict[str, Any] = {"task_count": lst.get("task_count")}
        if folder is not None:
            metadata["folder_id"] = str(folder["id"])
            metadata["folder_name"] = folder.get("name")
        return Collection(
            id=str(lst["id"]),
            name=lst.get("name") or str(lst["id"]),
            project_id=project_id,
            metadata=metadata,
        )

    async def fetch_tasks(self, access_token: str, collection_id: str) -> List[Task]:
        # First page only (ClickUp pages at 100, which is also the per-level sync ceiling)
        data = await self._request(
            access_token, "GET", f"/list/{collection_id}/task",
            params={"archived": "false", "page": 0}, resource_type="List", resource_id=collection_id,
        )
        tasks = []
        for task in data.get("tasks", []):
            status = task.get("status") or {}
            tasks.append(
                Task(
                    id=str(task["id"]),
                    name=task.get("name") or str(task["id"]),
                    collection_id=collection_id,
                    description=task.get("description") or None,
                    status=status.get("status") if isinstance(status, dict) else status,
                    assignees=[str(a["id"]) for a in task.get("assignees") or [] if "id" in a],
                    metadata={
                        "url": task.get("url"),
                        "priority": task.get("priority"),
                        "due_date": task.get("due_date"),
                    },
                )
            )
        return tasks

    # ------------------------------------------------------------------
    # Time tracking
    # ------------------------------------------------------------------

    async def create_time_entry(self, access_token: str, entry: TimeEntryInput) -> TimeEntryResult:
        duration = entry.duration
        if duration is None:
            duration = to_epoch_ms(entry.end_time) - to_epoch_ms(entry.start_time)

        body: Dict[str, Any] = {
            "start": to_epoch_ms(entry.start_time),
            "duration": int(duration),
            "description": entry.description,
            "billable": entry.billable,
        }
        if entry.end_time is not None:
            body["end"] = to_epoch_ms(entry.end_time)

        data = await self._request(
            access_token, "POST", f"/task/{entry.task_id}/time",
            json=body, resource_type="Task", resource_id=entry.task_id,
        )
        return self._to_time_entry_result(data.get("data") or {}, entry.task_id)

    async def update_time_entry(self, access_token: str, entry_id: str, entry: TimeEntryInput) -> TimeEntryResult:
        body: Dict[str, Any] = {
            "start": to_epoch_ms(entry.start_time),
            "description": entry.description,
            "billable": entry.billable,
        }
        if entry.end_time is not None:
            body["end"] = to_epoch_ms(entry.end_time)
        if entry.duration is not None:
            body["duration"] = int(entry.duration)

        data = await self._request(
            access_token, "PUT", f"/team/time/{entry_id}",
            json=body, resource_type="Time entry", resource_id=entry_id,
        )
        return self._to_time_entry_result(data.get("data") or {}, entry.task_id)

    async def delete_time_entry(self, access_token: str, entry_id: str) -> None:
        await self._request(
            access_token, "DELETE", f"/team/time/{entry_id}",
            resource_type="Time entry", resource_id=entry_id,
        )

    @staticmethod
    def _to_time_entry_result(payload: Dict[str, Any], task_id: str) -> TimeEntryResult:
        task = payload.get("task")
        if isinstance(task, dict) and task.get("id"):
            task_id = str(task["id"])
        return TimeEntryResult(
            id=str(payload["id"]),
            task_id=task_id,
            start_time=from_epoch_ms(payload.get("start")),
            end_time=from_epoch_ms(payload.get("end")),
            duration=int(payload.get("duration") or 0),
        )

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def get_current_user(self, access_token: str) -> IntegrationUser:
        data = await self._request(access_token, "GET", "/user", resource_type="User")
        user = data["user"]
        return IntegrationUser(
            id=str(user["id"]),
            name=user.get("username") or user.get("email") or str(user["id"]),
            email=user.get("email"),
            avatar_url=user.get("profilePicture"),
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        access_token: str,
        method: str,
        endpoint: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        resource_type: str = "Resource",
        resource_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Perform one API call and translate failures into the provider error taxonomy."""
        client = await self._client()
        log_debug("ClickUp request", method=method, endpoint=endpoint)
        try:
            response = await client.request(
                method,
                f"{self._base_url}{endpoint}",
                params=params,
                json=json,
                headers={"Authorization": access_token, "Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise IntegrationError(
                f"Request to ClickUp failed: {e}", PROVIDER_NAME, code="NETWORK_ERROR"
            ) from e

        if response.status_code == 401:
            raise AuthenticationError(PROVIDER_NAME, "Invalid or expired token")

        if response.status_code == 429:
            raise RateLimitError(PROVIDER_NAME, _parse_retry_after(response.headers.get("Retry-After")))

        if response.status_code == 404:
            raise ResourceNotFoundError(PROVIDER_NAME, resource_type, resource_id or endpoint)

        if not response.is_success:
            try:
                error = response.json()
            except ValueError:
                error = {}
            raise IntegrationError(
                error.get("err") or f"API error: {response.status_code}",
                PROVIDER_NAME,
                code=error.get("ECODE"),
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        return response.json()
