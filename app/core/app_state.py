from typing import Optional

from app.core.notifier import ThreadNotifier
from app.core.registry import AdapterRegistry, build_adapter_registry


class AppState:
    def __init__(self) -> None:
        self.notifier = ThreadNotifier()
        self._registry: Optional[AdapterRegistry] = None

    @property
    def registry(self) -> AdapterRegistry:
        """Adapter registry, built from settings on first use."""
        if self._registry is None:
            self._registry = build_adapter_registry()
        return self._registry


state = AppState()
