"""
Integration record store.

Persists provider connections, their per-integration configuration and the
links between local time entries and provider tasks.

Design Principles:
- Tokens are encrypted here and nowhere else; adapters receive plaintext
- connect() is a single INSERT ... ON CONFLICT DO UPDATE over the
  (organization, provider, scope_key) unique constraint, so concurrent OAuth
  callbacks cannot create duplicate rows
- Disconnecting only deactivates the row; synced resources are left in place
"""
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.core.database import dialect_insert
from app.core.encryption import decrypt_token, encrypt_optional_token, encrypt_token
from app.core.exceptions import (
    IntegrationError,
    IntegrationNotFoundError,
    ResourceNotLinkedError,
    TimeEntryNotFoundError,
)
from app.core.logging_config import log_error, log_info, log_warning
from app.core.time_utils import utc_now
from app.integrations.base import OAuthTokens, TimeEntryInput
from app.integrations.registry import ProviderRegistry
from app.models.enums import IntegrationProvider, SyncStatus
from app.models.integration import (
    Integration,
    IntegrationConfig,
    TimeEntryMapping,
    integration_scope_key,
)
from app.models.time_entry import TimeEntry


def _provider_value(provider: IntegrationProvider | str) -> str:
    return provider.value if isinstance(provider, IntegrationProvider) else str(provider)


class IntegrationService:
    """Service class for integration records."""

    def __init__(self, session: Session):
        self.session = session

    # ================================================================================
    # CONNECTIONS
    # ================================================================================

    def connect(
        self,
        organization_id: uuid.UUID,
        provider: IntegrationProvider | str,
        tokens: OAuthTokens,
        user_id: Optional[uuid.UUID] = None,
        provider_account_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Integration:
        """
        Create or refresh the connection for (organization, provider, user).

        Reconnecting replaces the tokens, reactivates the row and clears the
        last sync error.
        """
        provider_id = _provider_value(provider)
        scope_key = integration_scope_key(user_id)
        now = utc_now()

        updates = {
            "access_token_encrypted": encrypt_token(tokens.access_token),
            "refresh_token_encrypted": encrypt_optional_token(tokens.refresh_token),
            "token_type": tokens.token_type,
            "scope": tokens.scope,
            "token_expires_at": tokens.expires_at,
            "provider_account_id": provider_account_id,
            "provider_metadata": metadata or {},
            "is_active": True,
            "last_error": None,
            "last_error_at": None,
            "connected_at": now,
            "updated_at": now,
        }
        statement = dialect_insert(self.session, Integration).values(
            id=uuid.uuid4(),
            organization_id=organization_id,
            user_id=user_id,
            scope_key=scope_key,
            provider=provider_id,
            created_at=now,
            **updates,
        ).on_conflict_do_update(
            index_elements=["organization_id", "provider", "scope_key"],
            set_=updates,
        )

        try:
            self.session.exec(statement)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, organization_id=str(organization_id), provider=provider_id)
            raise

        integration = self.session.exec(
            select(Integration)
            .where(
                Integration.organization_id == organization_id,
                Integration.provider == provider_id,
                Integration.scope_key == scope_key,
            )
            .execution_options(populate_existing=True)
        ).one()

        log_info(
            "Integration connected",
            integration_id=str(integration.id),
            organization_id=str(organization_id),
            provider=provider_id,
        )
        return integration

    def get(
        self,
        organization_id: uuid.UUID,
        provider: IntegrationProvider | str,
        user_id: Optional[uuid.UUID] = None,
    ) -> Optional[Integration]:
        """Active integration for the organization (or one user within it)."""
        statement = select(Integration).where(
            Integration.organization_id == organization_id,
            Integration.provider == _provider_value(provider),
            Integration.is_active.is_(True),
        )
        if user_id is not None:
            statement = statement.where(Integration.user_id == user_id)
        return self.session.exec(statement.order_by(Integration.created_at)).first()

    def get_by_id(self, integration_id: uuid.UUID) -> Optional[Integration]:
        return self.session.get(Integration, integration_id)

    def require(self, integration_id: uuid.UUID) -> Integration:
        integration = self.get_by_id(integration_id)
        if integration is None:
            raise IntegrationNotFoundError("Integration not found")
        return integration

    def list_for_organization(self, organization_id: uuid.UUID) -> List[Integration]:
        statement = select(Integration).where(
            Integration.organization_id == organization_id,
            Integration.is_active.is_(True),
        ).order_by(Integration.created_at)
        return list(self.session.exec(statement))

    def disconnect(self, integration_id: uuid.UUID) -> None:
        integration = self.require(integration_id)
        integration.is_active = False
        integration.updated_at = utc_now()
        try:
            self.session.add(integration)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, integration_id=str(integration_id))
            raise
        log_info("Integration disconnected", integration_id=str(integration_id), provider=integration.provider)

    # ================================================================================
    # TOKENS AND SYNC OUTCOME
    # ================================================================================

    @staticmethod
    def get_access_token(integration: Integration) -> str:
        return decrypt_token(integration.access_token_encrypted)

    def record_sync_success(self, integration: Integration) -> None:
        integration.last_synced_at = utc_now()
        integration.last_error = None
        integration.last_error_at = None
        self.session.add(integration)
        self.session.commit()

    def record_sync_error(self, integration: Integration, error: str) -> None:
        integration.last_error = error
        integration.last_error_at = utc_now()
        self.session.add(integration)
        self.session.commit()

    # ================================================================================
    # CONFIGURATION
    # ================================================================================

    def set_config(self, integration_id: uuid.UUID, key: str, value: Any) -> None:
        now = utc_now()
        statement = dialect_insert(self.session, IntegrationConfig).values(
            id=uuid.uuid4(),
            integration_id=integration_id,
            key=key,
            value=value,
            created_at=now,
            updated_at=now,
        ).on_conflict_do_update(
            index_elements=["integration_id", "key"],
            set_={"value": value, "updated_at": now},
        )
        try:
            self.session.exec(statement)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, integration_id=str(integration_id), key=key)
            raise

    def get_config(self, integration_id: uuid.UUID, key: str) -> Any:
        config = self.session.exec(
            select(IntegrationConfig)
            .where(IntegrationConfig.integration_id == integration_id, IntegrationConfig.key == key)
            .execution_options(populate_existing=True)
        ).first()
        return config.value if config else None

    def get_all_configs(self, integration_id: uuid.UUID) -> Dict[str, Any]:
        configs = self.session.exec(
            select(IntegrationConfig)
            .where(IntegrationConfig.integration_id == integration_id)
            .execution_options(populate_existing=True)
        ).all()
        return {config.key: config.value for config in configs}

    # ================================================================================
    # TIME ENTRIES
    # ================================================================================

    def link_time_entry(
        self,
        time_entry_id: uuid.UUID,
        integration_id: uuid.UUID,
        external_task_id: str,
    ) -> TimeEntryMapping:
        mapping = TimeEntryMapping(
            time_entry_id=time_entry_id,
            integration_id=integration_id,
            external_task_id=external_task_id,
            sync_status=SyncStatus.PENDING.value,
        )
        try:
            self.session.add(mapping)
            self.session.commit()
            self.session.refresh(mapping)
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, time_entry_id=str(time_entry_id))
            raise
        return mapping

    async def sync_time_entry(self, time_entry_id: uuid.UUID, registry: ProviderRegistry) -> TimeEntryMapping:
        """
        Push a linked time entry to its provider.

        Creates the entry at the provider on first push and updates it after.
        Provider failures are recorded on the mapping and re-raised.
        """
        mapping = self.session.exec(
            select(TimeEntryMapping).where(TimeEntryMapping.time_entry_id == time_entry_id)
        ).first()
        if mapping is None:
            raise ResourceNotLinkedError("Time entry not linked to any integration")

        integration = self.get_by_id(mapping.integration_id)
        if integration is None:
            raise IntegrationNotFoundError("Integration not found")

        time_entry = self.session.get(TimeEntry, time_entry_id)
        if time_entry is None:
            raise TimeEntryNotFoundError("Time entry not found")
        if time_entry.end_time is None:
            raise ValueError("Cannot push a time entry that is still running")

        provider = registry.get_provider(integration.provider)
        entry = TimeEntryInput(
            task_id=mapping.external_task_id,
            start_time=time_entry.start_time,
            end_time=time_entry.end_time,
            description=time_entry.description,
        )

        try:
            access_token = self.get_access_token(integration)
            if mapping.external_entry_id:
                result = await provider.update_time_entry(access_token, mapping.external_entry_id, entry)
            else:
                result = await provider.create_time_entry(access_token, entry)
        except IntegrationError as exc:
            log_warning(
                "Time entry push failed",
                time_entry_id=str(time_entry_id),
                provider=integration.provider,
                error=exc.message,
            )
            mapping.sync_status = SyncStatus.ERROR.value
            mapping.sync_error = exc.message
            self.session.add(mapping)
            self.session.commit()
            raise

        mapping.external_entry_id = result.id
        mapping.sync_status = SyncStatus.SYNCED.value
        mapping.sync_error = None
        mapping.synced_at = utc_now()
        self.session.add(mapping)
        self.session.commit()
        self.session.refresh(mapping)

        log_info(
            "Time entry pushed",
            time_entry_id=str(time_entry_id),
            provider=integration.provider,
            external_entry_id=result.id,
        )
        return mapping
