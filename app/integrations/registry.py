"""
Provider registry.

The registry is built once per process by ``build_provider_registry`` and is
immutable afterwards: the API stores it on ``app.state`` during lifespan
startup and hands it to handlers through the ``get_provider_registry``
dependency, while Celery workers build their own from the same settings.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

import httpx

from app.core.config import Settings
from app.core.exceptions import ProviderNotFoundError
from app.core.logging_config import log_info
from app.integrations.base import BaseProvider
from app.integrations.clickup import ClickUpProvider
from app.models.enums import IntegrationProvider


@dataclass(frozen=True)
class ProviderFeatures:
    oauth: bool = True
    time_tracking: bool = False
    webhooks: bool = False
    custom_fields: bool = False


@dataclass(frozen=True)
class ProviderMetadata:
    """Catalogue entry shown on the integrations page."""
    id: str
    name: str
    display_name: str
    description: str
    color: str
    enabled: bool
    features: ProviderFeatures = field(default_factory=ProviderFeatures)
    required_env: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "color": self.color,
            "enabled": self.enabled,
            "features": {
                "oauth": self.features.oauth,
                "time_tracking": self.features.time_tracking,
                "webhooks": self.features.webhooks,
                "custom_fields": self.features.custom_fields,
            },
            "required_env": list(self.required_env),
        }


class ProviderRegistry:
    """Read-only lookup of adapters and their catalogue metadata."""

    __slots__ = ("_providers", "_metadata")

    def __init__(self, providers: Mapping[str, BaseProvider], metadata: List[ProviderMetadata]):
        self._providers = MappingProxyType(dict(providers))
        self._metadata = tuple(metadata)

    def get_provider(self, provider_id: str) -> BaseProvider:
        provider = self._providers.get(provider_id)
        if provider is None:
            raise ProviderNotFoundError(provider_id)
        return provider

    def get_metadata(self, provider_id: str) -> Optional[ProviderMetadata]:
        for meta in self._metadata:
            if meta.id == provider_id:
                return meta
        return None

    def get_all_metadata(self) -> Tuple[ProviderMetadata, ...]:
        return self._metadata

    def get_enabled_providers(self) -> Tuple[ProviderMetadata, ...]:
        return tuple(meta for meta in self._metadata if meta.enabled)

    def is_provider_enabled(self, provider_id: str) -> bool:
        meta = self.get_metadata(provider_id)
        return bool(meta and meta.enabled and provider_id in self._providers)

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._providers


def build_provider_registry(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ProviderRegistry:
    """
    Build the registry from settings.

    ClickUp is registered only when both OAuth credentials are configured.
    The remaining providers are catalogued as disabled placeholders without
    an adapter.
    """
    providers: Dict[str, BaseProvider] = {}
    if settings.clickup_enabled:
        providers[IntegrationProvider.CLICKUP.value] = ClickUpProvider(
            client_id=settings.clickup_client_id,
            client_secret=settings.clickup_client_secret,
            http_client=http_client,
            base_url=settings.clickup_api_base_url,
            auth_url=settings.clickup_auth_url,
        )

    metadata = [
        ProviderMetadata(
            id=IntegrationProvider.CLICKUP.value,
            name="clickup",
            display_name="ClickUp",
            description="Sync workspaces, spaces, lists and tasks, and push tracked time to ClickUp.",
            color="#7B68EE",
            enabled=settings.clickup_enabled,
            features=ProviderFeatures(oauth=True, time_tracking=True, webhooks=True, custom_fields=True),
            required_env=("CLICKUP_CLIENT_ID", "CLICKUP_CLIENT_SECRET"),
        ),
        ProviderMetadata(
            id=IntegrationProvider.ASANA.value,
            name="asana",
            display_name="Asana",
            description="Track time against Asana projects and tasks.",
            color="#F06A6A",
            enabled=False,
            features=ProviderFeatures(oauth=True, time_tracking=False),
            required_env=("ASANA_CLIENT_ID", "ASANA_CLIENT_SECRET"),
        ),
        ProviderMetadata(
            id=IntegrationProvider.JIRA.value,
            name="jira",
            display_name="Jira",
            description="Log work on Jira issues.",
            color="#0052CC",
            enabled=False,
            features=ProviderFeatures(oauth=True, time_tracking=True),
            required_env=("JIRA_CLIENT_ID", "JIRA_CLIENT_SECRET"),
        ),
        ProviderMetadata(
            id=IntegrationProvider.LINEAR.value,
            name="linear",
            display_name="Linear",
            description="Track time against Linear issues.",
            color="#5E6AD2",
            enabled=False,
            features=ProviderFeatures(oauth=True, time_tracking=False),
            required_env=("LINEAR_CLIENT_ID", "LINEAR_CLIENT_SECRET"),
        ),
    ]

    registry = ProviderRegistry(providers, metadata)
    log_info(
        "Provider registry built",
        enabled=[meta.id for meta in registry.get_enabled_providers()],
    )
    return registry
