from __future__ import annotations

from typing import Dict, Optional

import httpx

from app.adapters.base import BasePlatformAdapter
from app.adapters.groupme import GroupMeAdapter
from app.adapters.teams import TeamsAdapter
from app.config import Settings, get_settings
from app.schemas.relay import Platform


class AdapterRegistry:
    """Platform → adapter dispatch. Callers never branch on platform themselves."""

    def __init__(self) -> None:
        self._adapters: Dict[Platform, BasePlatformAdapter] = {}

    def register(self, adapter: BasePlatformAdapter) -> None:
        if adapter.platform in self._adapters:
            raise ValueError(f"Adapter already registered: {adapter.platform.value}")
        self._adapters[adapter.platform] = adapter

    def get(self, platform: Platform | str) -> BasePlatformAdapter | None:
        try:
            return self._adapters.get(Platform(platform))
        except ValueError:
            return None

    def list_platforms(self) -> list[Platform]:
        return list(self._adapters.keys())


def build_adapter_registry(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> AdapterRegistry:
    """Build adapter registry from config. Only enabled adapters are included."""
    settings = settings or get_settings()
    registry = AdapterRegistry()
    timeout = settings.platform_timeout_seconds
    if settings.groupme_enabled:
        registry.register(
            GroupMeAdapter(
                api_url=settings.groupme_api_url,
                access_token=settings.groupme_access_token,
                timeout=timeout,
                client=client,
            )
        )
    if settings.teams_enabled:
        registry.register(
            TeamsAdapter(
                app_id=settings.teams_app_id,
                app_password=settings.teams_app_password,
                oauth_url=settings.teams_oauth_url,
                oauth_scope=settings.teams_oauth_scope,
                timeout=timeout,
                client=client,
            )
        )
    return registry
