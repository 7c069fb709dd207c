"""Base adapter abstract class.

Defines the capability contract every source/target adapter satisfies.
The pipeline engine only talks to adapters through this surface.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable

from ..errors import ConfigurationError

if TYPE_CHECKING:
    from .models import (
        AdapterDescriptor,
        Connector,
        Credential,
        Page,
        PageOptions,
    )

logger = logging.getLogger(__name__)


class BaseAdapter(ABC):
    """Abstract base class for adapters.

    Adapters handle:
    - Connection management (connect, disconnect)
    - Paged extraction (download)
    - Batched delivery (upload)

    ``connect``, ``disconnect`` and ``upload`` are optional capabilities:
    the defaults are no-ops except ``upload``, which target adapters must
    override. The engine also accepts duck-typed objects exposing the same
    methods.
    """

    def __init__(self, connector: "Connector", credential: "Credential") -> None:
        """Initialize the adapter.

        Args:
            connector: Connector binding this adapter instance
            credential: Resolved credential for the connector
        """
        self.connector = connector
        self.credential = credential
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Check if the adapter is currently connected."""
        return self._connected

    @abstractmethod
    def get_config(self) -> "AdapterDescriptor":
        """Describe the adapter, its endpoints and pagination defaults."""
        pass

    async def connect(self) -> None:
        """Establish any stateful connection."""
        self._connected = True

    async def disconnect(self) -> None:
        """Release the connection."""
        self._connected = False

    @abstractmethod
    async def download(self, page_options: "PageOptions") -> "Page | dict[str, Any]":
        """Fetch one page of records.

        Must return an empty page (not raise) when the data is exhausted,
        and raise for genuine failures.

        Args:
            page_options: Requested limit and offset/cursor

        Returns:
            Page of records with optional ``next_offset``
        """
        pass

    async def upload(self, data: list[dict[str, Any]]) -> None:
        """Deliver one batch of records atomically.

        Raises:
            NotImplementedError: If the adapter cannot act as a target
        """
        raise NotImplementedError(f"{type(self).__name__} does not support upload")

    @property
    def supports_upload(self) -> bool:
        return type(self).upload is not BaseAdapter.upload

    async def __aenter__(self) -> "BaseAdapter":
        """Async context manager entry - connect."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit - disconnect."""
        await self.disconnect()

    def _log(self, level: str, message: str, **context: Any) -> None:
        """Log a message with connector context.

        Args:
            level: Log level (debug, info, warning, error); debug is
                promoted to info when the connector sets ``debug``
            message: Log message
            **context: Additional context to include
        """
        level = level.lower()
        if level == "debug" and self.connector.debug:
            level = "info"
        log_fn = getattr(logger, level, logger.info)
        log_fn(
            f"[{self.connector.adapter_id}:{self.connector.endpoint_id}] {message}",
            extra={"connector_id": self.connector.id, **context},
        )


AdapterFactory = Callable[["Connector", "Credential"], Any]


def supports(adapter: Any, capability: str) -> bool:
    """Check whether an adapter instance offers an optional capability."""
    if isinstance(adapter, BaseAdapter) and capability == "upload":
        return adapter.supports_upload
    return callable(getattr(adapter, capability, None))


def validate_connector_config(
    descriptor: "AdapterDescriptor", connector: "Connector"
) -> dict[str, Any]:
    """Check required config fields and fill in declared defaults.

    Args:
        descriptor: Adapter description
        connector: Connector whose config is checked

    Returns:
        Connector config merged over the declared defaults

    Raises:
        ConfigurationError: If a required field is missing
    """
    resolved = {
        field.name: field.default
        for field in descriptor.config
        if field.default is not None
    }
    resolved.update(connector.config)

    missing = [
        field.name
        for field in descriptor.config
        if field.required and resolved.get(field.name) in (None, "")
    ]
    if missing:
        raise ConfigurationError(
            f"Adapter {descriptor.id} requires config field(s): {', '.join(missing)}",
            connector.id,
        )
    return resolved
