"""
FastAPI router for integration endpoints.

Endpoints:
- GET /integrations: Provider catalogue with connection state
- GET /integrations/{provider}/connect: Start the OAuth flow (admin)
- GET /integrations/{provider}/callback: Finish the OAuth flow
- POST /integrations/{provider}/disconnect: Deactivate a connection (admin)
- POST /integrations/{provider}/sync: Run a smart or full resource sync (admin)
- GET /integrations/{provider}/resources[/search|/recent]: Browse mirrored resources
- GET /integrations/resources/{id}/path: Breadcrumb of a resource
- POST /integrations/resources/{id}/sync/{level}: Lazily sync one level below a resource
- POST /integrations/resources/{id}/track: Record usage
- POST|DELETE /integrations/resources/{id}/favorite, GET /integrations/favorites
- GET|PUT /integrations/{provider}/defaults: Default selections

Authentication:
- All endpoints except the OAuth callback require a valid access token
- Connection management is limited to organization admins; browser-facing
  OAuth routes report problems through a redirect carrying an error code
"""
import uuid
from typing import Annotated, List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Form, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlmodel import Session

from app.api.dependencies import get_current_user, get_provider_registry
from app.core.config import settings
from app.core.database import get_session
from app.core.exceptions import (
    IntegrationError,
    ProviderNotFoundError,
    RateLimitError,
    ResourcePathError,
    SyncedResourceNotFoundError,
)
from app.core.logging_config import log_error, log_info, log_warning
from app.integrations.registry import ProviderRegistry
from app.integrations.schemas import (
    IntegrationListResponse,
    LevelSyncResponse,
    ProviderFeaturesResponse,
    ProviderStatusResponse,
    RecentResourceResponse,
    SyncedResourceResponse,
    SyncResponse,
    SyncStatsResponse,
    UserDefaultsRequest,
    UserDefaultsResponse,
    build_notice,
)
from app.integrations.service import IntegrationService
from app.integrations.sync_service import SmartSyncService
from app.integrations.tasks import smart_sync_integration
from app.models.enums import ResourceType, SyncLevel
from app.models.integration import Integration
from app.models.user import User

router = APIRouter(prefix="/integrations", tags=["integrations"])

INTEGRATIONS_PAGE = "/settings/integrations"
OAUTH_SESSION_KEYS = ("oauth_state", "oauth_provider", "oauth_organization_id")


def _settings_redirect(**params: str) -> RedirectResponse:
    """Redirect back to the integrations settings page with a status code in the query."""
    return RedirectResponse(
        url=f"{settings.app_url}{INTEGRATIONS_PAGE}?{urlencode(params)}",
        status_code=status.HTTP_303_SEE_OTHER,
    )


def _callback_uri(provider: str) -> str:
    return f"{settings.app_url}{settings.api_v1_prefix}/integrations/{provider}/callback"


def _require_organization(user: User) -> uuid.UUID:
    if user.organization_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No organization")
    return user.organization_id


def _require_integration(session: Session, user: User, provider: str) -> Integration:
    organization_id = _require_organization(user)
    integration = IntegrationService(session).get(organization_id, provider)
    if integration is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not connected")
    return integration


def _resource_type(value: Optional[str]) -> Optional[ResourceType]:
    if value is None:
        return None
    try:
        return ResourceType(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid resource type: {value}")


def _rate_limited(exc: RateLimitError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"error": "Rate limit exceeded", "details": exc.message, "retry_after": exc.retry_after},
        headers={"Retry-After": str(exc.retry_after)} if exc.retry_after else None,
    )


# ================================================================================
# CATALOGUE
# ================================================================================

@router.get("", response_model=IntegrationListResponse)
async def list_integrations(
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
    success: Optional[str] = None,
    disconnected: Optional[str] = None,
    error: Optional[str] = None,
) -> IntegrationListResponse:
    """
    List every catalogued provider with the organization's connection state.

    The ``success``, ``disconnected`` and ``error`` query parameters set by the
    OAuth redirects are turned into a human-readable notice.
    """
    connected = {}
    if current_user.organization_id is not None:
        for integration in IntegrationService(session).list_for_organization(current_user.organization_id):
            connected.setdefault(integration.provider, integration)

    providers = []
    for meta in registry.get_all_metadata():
        integration = connected.get(meta.id)
        providers.append(
            ProviderStatusResponse(
                id=meta.id,
                name=meta.name,
                display_name=meta.display_name,
                description=meta.description,
                color=meta.color,
                enabled=meta.enabled,
                features=ProviderFeaturesResponse(**meta.to_dict()["features"]),
                connected=integration is not None,
                integration_id=integration.id if integration else None,
                connected_at=integration.connected_at if integration else None,
                last_synced_at=integration.last_synced_at if integration else None,
                last_error=integration.last_error if integration else None,
            )
        )

    return IntegrationListResponse(
        providers=providers,
        notice=build_notice(success, disconnected, error),
    )


# ================================================================================
# OAUTH
# ================================================================================

@router.get("/{provider}/connect")
async def connect(
    provider: str,
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
) -> RedirectResponse:
    """Start the OAuth flow by redirecting an admin to the provider's consent page."""
    if not current_user.is_admin:
        log_warning("Non-admin attempted to connect integration", user_id=str(current_user.id), provider=provider)
        return _settings_redirect(error="unauthorized")

    if not registry.is_provider_enabled(provider):
        return _settings_redirect(error="provider_not_available")

    if current_user.organization_id is None:
        return _settings_redirect(error="no_organization")

    state = str(uuid.uuid4())
    request.session["oauth_state"] = state
    request.session["oauth_provider"] = provider
    request.session["oauth_organization_id"] = str(current_user.organization_id)

    auth_url = registry.get_provider(provider).get_auth_url(state, _callback_uri(provider))
    log_info("Starting OAuth flow", provider=provider, organization_id=str(current_user.organization_id))
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


@router.get("/{provider}/callback")
async def callback(
    provider: str,
    request: Request,
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
) -> RedirectResponse:
    """
    Finish the OAuth flow: verify state, exchange the code, store the
    connection and queue the first resource sync.
    """
    if error:
        log_warning("Provider returned OAuth error", provider=provider, error=error)
        return _settings_redirect(error=error)

    if not code or not state:
        return _settings_redirect(error="invalid_callback")

    if state != request.session.get("oauth_state"):
        log_warning("OAuth state mismatch", provider=provider)
        return _settings_redirect(error="invalid_state")

    if provider != request.session.get("oauth_provider"):
        log_warning("OAuth provider mismatch", provider=provider)
        return _settings_redirect(error="invalid_provider")

    organization_id = request.session.get("oauth_organization_id")
    if not organization_id:
        return _settings_redirect(error="no_organization")

    try:
        adapter = registry.get_provider(provider)
        tokens = await adapter.exchange_code_for_token(code, _callback_uri(provider))
        provider_user = await adapter.get_current_user(tokens.access_token)

        workspaces = []
        try:
            workspaces = await adapter.fetch_workspaces(tokens.access_token)
        except IntegrationError as exc:
            log_warning("Could not fetch workspaces during connect", provider=provider, error=exc.message)

        integration = IntegrationService(session).connect(
            organization_id=uuid.UUID(organization_id),
            provider=provider,
            tokens=tokens,
            provider_account_id=workspaces[0].id if workspaces else None,
            metadata={
                "user": provider_user.model_dump(),
                "workspaces": [{"id": ws.id, "name": ws.name} for ws in workspaces],
            },
        )
    except Exception as exc:
        log_error(exc, provider=provider, organization_id=organization_id)
        return _settings_redirect(error=str(exc))

    for key in OAUTH_SESSION_KEYS:
        request.session.pop(key, None)

    try:
        smart_sync_integration.delay(str(integration.id))
    except Exception as exc:
        log_error(exc, integration_id=str(integration.id), stage="enqueue_initial_sync")

    return _settings_redirect(success="true")


@router.post("/{provider}/disconnect")
async def disconnect(
    provider: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
) -> RedirectResponse:
    """Deactivate the organization's connection. Synced resources are kept."""
    if not current_user.is_admin:
        return _settings_redirect(error="unauthorized")
    if current_user.organization_id is None:
        return _settings_redirect(error="no_organization")

    service = IntegrationService(session)
    integration = service.get(current_user.organization_id, provider)
    if integration is None:
        return _settings_redirect(error="not_connected")

    try:
        service.disconnect(integration.id)
    except Exception as exc:
        log_error(exc, provider=provider)
        return _settings_redirect(error=str(exc))

    return _settings_redirect(disconnected="true")


# ================================================================================
# SYNC
# ================================================================================

@router.post(
    "/{provider}/sync",
    response_model=SyncResponse,
    responses={
        400: {"description": "User has no organization"},
        401: {"description": "Not authenticated"},
        403: {"description": "Admin access required"},
        404: {"description": "Integration not connected"},
        429: {"description": "Provider rate limit"},
        500: {"description": "Sync failed"},
    },
)
async def trigger_sync(
    provider: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
    full: Annotated[Optional[str], Form()] = None,
):
    """Run a resource sync inline. ``full=true`` walks every parent."""
    integration = _require_integration(session, current_user, provider)
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")

    is_full = (full or "").lower() == "true"
    sync_type = "full" if is_full else "smart"
    try:
        stats = await SmartSyncService(session, registry).sync_integration(integration.id, full=is_full)
    except RateLimitError as exc:
        log_warning("Manual sync rate limited", provider=provider, retry_after=exc.retry_after)
        return _rate_limited(exc)
    except Exception as exc:
        log_error(exc, provider=provider, integration_id=str(integration.id))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Sync failed", "details": str(exc)},
        )

    return SyncResponse(
        success=True,
        stats=SyncStatsResponse(**stats.to_dict()),
        message=f"Successfully synced {stats.total} resources from {provider}",
        sync_type=sync_type,
    )


@router.get("/{provider}/sync", include_in_schema=False)
async def sync_method_not_allowed(provider: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content={"error": "Method not allowed. Use POST to trigger sync."},
    )


@router.post("/resources/{resource_id}/sync/{level}", response_model=LevelSyncResponse)
async def sync_resource_level(
    resource_id: uuid.UUID,
    level: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
):
    """Lazily sync the level below a resource (projects, collections or tasks)."""
    organization_id = _require_organization(current_user)
    service = SmartSyncService(session, registry)
    try:
        parent = service.get_resource(resource_id, organization_id)
        count = await service.sync_level(parent.integration_id, parent.id, SyncLevel(level))
    except SyncedResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ValueError as exc:
        log_warning(f"Invalid level sync request: {exc}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RateLimitError as exc:
        return _rate_limited(exc)
    except Exception as exc:
        log_error(exc, resource_id=str(resource_id), sync_level=level)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Sync failed", "details": str(exc)},
        )
    return LevelSyncResponse(count=count)


# ================================================================================
# RESOURCES
# ================================================================================

@router.get("/{provider}/resources", response_model=List[SyncedResourceResponse])
async def list_resources(
    provider: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
    parent_id: Optional[uuid.UUID] = None,
    type: Optional[str] = None,
):
    """Children of ``parent_id``, or the root containers when omitted."""
    integration = _require_integration(session, current_user, provider)
    resources = SmartSyncService(session, registry).get_resources(
        integration.id, parent_id=parent_id, resource_type=_resource_type(type)
    )
    return [SyncedResourceResponse.model_validate(resource) for resource in resources]


@router.get("/{provider}/resources/search", response_model=List[SyncedResourceResponse])
async def search_resources(
    provider: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
    q: Annotated[str, Query(min_length=1)],
    type: Optional[str] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
):
    integration = _require_integration(session, current_user, provider)
    resources = SmartSyncService(session, registry).search_resources(
        integration.organization_id, integration.id, q, resource_type=_resource_type(type), limit=limit
    )
    return [SyncedResourceResponse.model_validate(resource) for resource in resources]


@router.get("/{provider}/resources/recent", response_model=List[RecentResourceResponse])
async def recent_resources(
    provider: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
    limit: Annotated[Optional[int], Query(ge=1, le=100)] = None,
):
    integration = _require_integration(session, current_user, provider)
    recent = SmartSyncService(session, registry).get_recent_resources(
        current_user.id,
        limit=limit or settings.recent_resources_limit,
        integration_id=integration.id,
    )
    return [
        RecentResourceResponse(
            resource=SyncedResourceResponse.model_validate(item["resource"]),
            last_used_at=item["last_used_at"],
            use_count=item["use_count"],
        )
        for item in recent
    ]


@router.get("/resources/{resource_id}/path", response_model=List[SyncedResourceResponse])
async def resource_path(
    resource_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
):
    """Root-to-leaf breadcrumb for a resource."""
    organization_id = _require_organization(current_user)
    service = SmartSyncService(session, registry)
    try:
        service.get_resource(resource_id, organization_id)
        path = service.get_resource_path(resource_id)
    except SyncedResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ResourcePathError as exc:
        log_error(exc, resource_id=str(resource_id))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    return [SyncedResourceResponse.model_validate(resource) for resource in path]


@router.post("/resources/{resource_id}/track", status_code=status.HTTP_204_NO_CONTENT)
async def track_resource_usage(
    resource_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
) -> None:
    organization_id = _require_organization(current_user)
    service = SmartSyncService(session, registry)
    try:
        service.get_resource(resource_id, organization_id)
        service.track_usage(current_user.id, resource_id)
    except SyncedResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


# ================================================================================
# FAVORITES AND DEFAULTS
# ================================================================================

@router.get("/favorites", response_model=List[SyncedResourceResponse])
async def list_favorites(
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
):
    favorites = SmartSyncService(session, registry).list_favorites(current_user.id)
    return [SyncedResourceResponse.model_validate(resource) for resource in favorites]


@router.post("/resources/{resource_id}/favorite", status_code=status.HTTP_201_CREATED)
async def add_favorite(
    resource_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
) -> dict:
    organization_id = _require_organization(current_user)
    service = SmartSyncService(session, registry)
    try:
        service.get_resource(resource_id, organization_id)
        favorite = service.add_favorite(current_user.id, resource_id)
    except SyncedResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return {"success": True, "position": favorite.position}


@router.delete("/resources/{resource_id}/favorite")
async def remove_favorite(
    resource_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
) -> dict:
    removed = SmartSyncService(session, registry).remove_favorite(current_user.id, resource_id)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Favorite not found")
    return {"success": True}


def _defaults_response(integration_id: uuid.UUID, preference) -> UserDefaultsResponse:
    if preference is None:
        return UserDefaultsResponse(integration_id=integration_id)
    return UserDefaultsResponse(
        integration_id=integration_id,
        container_id=preference.default_container_id,
        project_id=preference.default_project_id,
        collection_id=preference.default_collection_id,
    )


@router.get("/{provider}/defaults", response_model=UserDefaultsResponse)
async def get_defaults(
    provider: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
):
    integration = _require_integration(session, current_user, provider)
    preference = SmartSyncService(session, registry).get_user_defaults(current_user.id, integration.id)
    return _defaults_response(integration.id, preference)


@router.put("/{provider}/defaults", response_model=UserDefaultsResponse)
async def save_defaults(
    provider: str,
    body: UserDefaultsRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
):
    integration = _require_integration(session, current_user, provider)
    service = SmartSyncService(session, registry)
    try:
        for resource_id in (body.container_id, body.project_id, body.collection_id):
            if resource_id is not None:
                service.get_resource(resource_id, integration.organization_id)
    except SyncedResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    preference = service.save_user_defaults(
        current_user.id,
        integration.id,
        container_id=body.container_id,
        project_id=body.project_id,
        collection_id=body.collection_id,
    )
    return _defaults_response(integration.id, preference)
