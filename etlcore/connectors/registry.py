"""Adapter registry for managing available adapter implementations.

The registry maps adapter ids to factories and provides a factory method
for instantiating an adapter for one (connector, credential) pair.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Mapping

from ..errors import ConfigurationError
from .base import AdapterFactory
from .models import Connector, Credential

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Registry for adapter factories.

    Factories are callables ``factory(connector, credential)`` returning an
    adapter instance; adapter classes deriving from ``BaseAdapter`` qualify.
    """

    def __init__(self, adapters: Mapping[str, AdapterFactory] | None = None) -> None:
        self._factories: dict[str, AdapterFactory] = {}
        for adapter_id, factory in (adapters or {}).items():
            self.register(adapter_id, factory)

    def register(self, adapter_id: str, factory: AdapterFactory) -> None:
        """Register an adapter factory.

        Args:
            adapter_id: Unique identifier connectors refer to
            factory: Callable building an adapter instance
        """
        if adapter_id in self._factories:
            logger.warning(f"Overwriting existing adapter for {adapter_id}")
        self._factories[adapter_id] = factory
        logger.debug(f"Registered adapter: {adapter_id}")

    def unregister(self, adapter_id: str) -> None:
        """Unregister an adapter factory.

        Args:
            adapter_id: The adapter id to remove
        """
        self._factories.pop(adapter_id, None)

    def get(self, adapter_id: str) -> AdapterFactory | None:
        """Get the factory for an adapter id, or None if not registered."""
        return self._factories.get(adapter_id)

    def create(self, connector: Connector, credential: Credential) -> Any:
        """Create an adapter instance for a connector.

        Args:
            connector: Connector naming the adapter
            credential: Resolved credential passed to the factory

        Returns:
            Instantiated adapter

        Raises:
            ConfigurationError: If the adapter id is not registered
        """
        factory = self._factories.get(connector.adapter_id)
        if factory is None:
            raise ConfigurationError(
                f"Adapter {connector.adapter_id} not found", connector.id
            )
        return factory(connector, credential)

    def is_registered(self, adapter_id: str) -> bool:
        return adapter_id in self._factories

    def list_ids(self) -> list[str]:
        """List registered adapter ids in registration order."""
        return list(self._factories)

    def __contains__(self, adapter_id: object) -> bool:
        return adapter_id in self._factories

    def __iter__(self) -> Iterator[str]:
        return iter(self._factories)

    def __len__(self) -> int:
        return len(self._factories)


# Global registry instance
_registry = AdapterRegistry()


def get_registry() -> AdapterRegistry:
    """Get the global adapter registry.

    Returns:
        The global AdapterRegistry instance
    """
    return _registry


def register_adapter(adapter_id: str, factory: AdapterFactory) -> None:
    """Convenience function to register an adapter in the global registry."""
    _registry.register(adapter_id, factory)
