"""
Integrations module for connecting Trackline to project management tools.

Organizations connect a provider (ClickUp today; Asana, Jira and Linear are
catalogued but disabled) through OAuth. The provider's hierarchy is mirrored
locally so time entries can be booked against its tasks.

Architecture:
- app/models/integration.py: Connections, per-integration config, time entry links
- app/models/synced_resource.py: Mirrored hierarchy plus recent/favorite/default selections
- base.py: Provider adapter contract and normalized resource types
- {provider}.py: Provider-specific adapters (clickup)
- registry.py: Immutable catalogue of adapters and their metadata
- service.py: Connection storage and time entry push
- sync_service.py: Resource sync engine and usage tracking
- tasks.py: Celery jobs on the integration-sync queue
- router.py / schemas.py: HTTP interface

Design Principles:
- One connection per (organization, provider, user scope), written as an upsert
- Tokens are encrypted at rest using Fernet
- Smart sync fetches a bounded first slice; deeper levels sync lazily on demand
- Adding a provider means one BaseProvider subclass plus a registry entry
"""

from app.models.integration import Integration
from app.models.enums import IntegrationProvider

__all__ = [
    "Integration",
    "IntegrationProvider",
]
