"""
Unit tests for the provider registry.
"""
import pytest

from app.core.config import Settings
from app.core.exceptions import ProviderNotFoundError
from app.integrations.clickup import ClickUpProvider
from app.integrations.registry import build_provider_registry


def _settings(**overrides) -> Settings:
    values = {"secret_key": "s" * 40, "_env_file": None}
    values.update(overrides)
    return Settings(**values)


class TestBuildProviderRegistry:
    def test_clickup_registered_with_credentials(self):
        registry = build_provider_registry(_settings(clickup_client_id="id", clickup_client_secret="secret"))

        assert "clickup" in registry
        assert isinstance(registry.get_provider("clickup"), ClickUpProvider)
        assert registry.is_provider_enabled("clickup")

    def test_clickup_disabled_without_credentials(self):
        registry = build_provider_registry(_settings(clickup_client_id=None, clickup_client_secret=None))

        assert "clickup" not in registry
        assert not registry.is_provider_enabled("clickup")
        assert registry.get_metadata("clickup").enabled is False

    def test_placeholders_are_catalogued_but_disabled(self):
        registry = build_provider_registry(_settings(clickup_client_id="id", clickup_client_secret="secret"))

        ids = [meta.id for meta in registry.get_all_metadata()]
        assert ids == ["clickup", "asana", "jira", "linear"]
        assert [meta.id for meta in registry.get_enabled_providers()] == ["clickup"]
        assert not registry.is_provider_enabled("asana")

    def test_unknown_provider_raises(self):
        registry = build_provider_registry(_settings(clickup_client_id="id", clickup_client_secret="secret"))

        with pytest.raises(ProviderNotFoundError):
            registry.get_provider("asana")
        with pytest.raises(ProviderNotFoundError):
            registry.get_provider("trello")

    def test_metadata_serializes(self):
        registry = build_provider_registry(_settings(clickup_client_id="id", clickup_client_secret="secret"))

        data = registry.get_metadata("clickup").to_dict()

        assert data["features"]["time_tracking"] is True
        assert data["required_env"] == ["CLICKUP_CLIENT_ID", "CLICKUP_CLIENT_SECRET"]
