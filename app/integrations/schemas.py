"""
Pydantic schemas for integration API requests and responses.

Response Schemas:
- ProviderStatusResponse: Catalogue entry plus connection state for the caller's organization
- IntegrationListResponse: All providers and an optional flash notice
- SyncResponse: Result of a manual sync
- SyncedResourceResponse / RecentResourceResponse: Mirrored hierarchy nodes
- UserDefaultsResponse: Saved default selections

Design Principles:
- Never expose encrypted tokens in responses
- OAuth redirects carry short codes in the query string; NOTICE_MESSAGES
  turns them into text for the settings page
"""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ================================================================================
# NOTICES
# ================================================================================

ERROR_MESSAGES: Dict[str, str] = {
    "unauthorized": "Only administrators can manage integrations.",
    "provider_not_available": "This integration is not available yet.",
    "invalid_callback": "Invalid OAuth callback. Please try again.",
    "invalid_state": "Security validation failed. Please try again.",
    "invalid_provider": "The OAuth callback does not match the provider you started connecting.",
    "no_organization": "Your account is not part of an organization.",
    "not_connected": "This integration is not connected.",
    "connection_failed": "Failed to connect. Please try again.",
}

SUCCESS_NOTICE = "Integration connected successfully! You can now sync your data."
DISCONNECTED_NOTICE = "Integration disconnected successfully."


def error_notice(code: str) -> str:
    """Human-readable text for an OAuth redirect error code."""
    return ERROR_MESSAGES.get(code, f"An error occurred while connecting: {code}")


class Notice(BaseModel):
    level: str = Field(..., description="'success' or 'error'")
    message: str


def build_notice(success: Optional[str], disconnected: Optional[str], error: Optional[str]) -> Optional[Notice]:
    if error:
        return Notice(level="error", message=error_notice(error))
    if success == "true":
        return Notice(level="success", message=SUCCESS_NOTICE)
    if disconnected == "true":
        return Notice(level="success", message=DISCONNECTED_NOTICE)
    return None


# ================================================================================
# RESPONSE SCHEMAS
# ================================================================================

class ProviderFeaturesResponse(BaseModel):
    oauth: bool
    time_tracking: bool
    webhooks: bool
    custom_fields: bool


class ProviderStatusResponse(BaseModel):
    """
    A catalogued provider and whether the caller's organization is connected.

    Example Response:
        {
            "id": "clickup",
            "display_name": "ClickUp",
            "enabled": true,
            "connected": true,
            "last_synced_at": "2025-01-06T10:00:00Z",
            "last_error": null
        }
    """
    id: str
    name: str
    display_name: str
    description: str
    color: str
    enabled: bool
    features: ProviderFeaturesResponse
    connected: bool = False
    integration_id: Optional[uuid.UUID] = None
    connected_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None
    last_error: Optional[str] = None


class IntegrationListResponse(BaseModel):
    providers: List[ProviderStatusResponse]
    notice: Optional[Notice] = None


class SyncStatsResponse(BaseModel):
    containers: int = 0
    projects: int = 0
    collections: int = 0
    tasks: int = 0


class SyncResponse(BaseModel):
    success: bool = True
    stats: SyncStatsResponse
    message: str
    sync_type: str = Field(..., description="'smart' or 'full'")


class LevelSyncResponse(BaseModel):
    success: bool = True
    count: int


class SyncedResourceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    integration_id: uuid.UUID
    resource_type: str
    external_id: str
    parent_id: Optional[uuid.UUID] = None
    level: int
    path: str
    name: str
    description: Optional[str] = None
    provider_type: Optional[str] = None
    resource_metadata: Optional[Dict[str, Any]] = None
    is_selectable: bool
    sync_status: str
    last_synced_at: Optional[datetime] = None
    access_count: int = 0


class RecentResourceResponse(BaseModel):
    resource: SyncedResourceResponse
    last_used_at: datetime
    use_count: int


class UserDefaultsRequest(BaseModel):
    container_id: Optional[uuid.UUID] = None
    project_id: Optional[uuid.UUID] = None
    collection_id: Optional[uuid.UUID] = None


class UserDefaultsResponse(BaseModel):
    integration_id: uuid.UUID
    container_id: Optional[uuid.UUID] = None
    project_id: Optional[uuid.UUID] = None
    collection_id: Optional[uuid.UUID] = None
