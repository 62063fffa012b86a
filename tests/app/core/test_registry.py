"""Tests for the adapter registry."""

import pytest

from app.adapters.groupme import GroupMeAdapter
from app.adapters.teams import TeamsAdapter
from app.config import get_settings
from app.core.registry import AdapterRegistry, build_adapter_registry
from app.schemas.relay import Platform


def test_build_registry_includes_enabled_platforms(monkeypatch):
    monkeypatch.setenv("GROUPME_ENABLED", "true")
    monkeypatch.setenv("TEAMS_ENABLED", "false")
    registry = build_adapter_registry(get_settings())
    assert registry.list_platforms() == [Platform.GROUPME]
    assert isinstance(registry.get("groupme"), GroupMeAdapter)
    assert registry.get(Platform.TEAMS) is None


def test_unknown_platform_resolves_to_none():
    registry = AdapterRegistry()
    assert registry.get("carrier-pigeon") is None


def test_duplicate_registration_is_rejected():
    registry = AdapterRegistry()
    registry.register(TeamsAdapter())
    with pytest.raises(ValueError):
        registry.register(TeamsAdapter())
