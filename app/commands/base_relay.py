"""
Base command for relay operations.

Holds the database session and the adapter registry, and resolves the
adapter for a platform so commands never branch on platform themselves.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from app.adapters.base import BasePlatformAdapter
from app.config import Settings, get_settings
from app.core.exceptions import PlatformNotEnabledError
from app.core.registry import AdapterRegistry
from app.schemas.relay import Platform


class BaseRelayCommand:
    """Shared wiring for webhook, broadcast and provisioning commands."""

    def __init__(
        self,
        db: Session,
        registry: AdapterRegistry,
        settings: Optional[Settings] = None,
    ) -> None:
        self.db = db
        self.registry = registry
        self.settings = settings or get_settings()

    def get_adapter(self, platform: Platform | str) -> BasePlatformAdapter:
        """Return the adapter for ``platform`` or raise PlatformNotEnabledError."""
        adapter = self.registry.get(platform)
        if adapter is None:
            value = platform.value if isinstance(platform, Platform) else platform
            raise PlatformNotEnabledError(
                f"Platform {value} is not enabled or not supported"
            )
        return adapter
