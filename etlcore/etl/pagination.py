"""Pagination resolution for one connector/endpoint pair.

Most specific declaration wins: the endpoint's own pagination settings,
then the adapter's default, then no pagination at all. A declared maximum
page size fills in or clamps the caller's request; clamping is a policy
decision reported as an ``info`` event, never an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from ..connectors.models import (
    AdapterDescriptor,
    Connector,
    EventType,
    PaginationConfig,
    PaginationStyle,
)
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

EventLog = Callable[..., None]


@dataclass(frozen=True)
class PaginationSettings:
    """Effective pagination for one run of a connector."""

    style: PaginationStyle | None
    items_per_page: int | None

    @property
    def is_paginated(self) -> bool:
        return self.style is not None and self.items_per_page is not None


def get_descriptor(adapter: Any, connector: Connector) -> AdapterDescriptor:
    """Call ``get_config()`` on an adapter and validate the result."""
    get_config = getattr(adapter, "get_config", None)
    if not callable(get_config):
        raise ConfigurationError(
            f"Adapter {connector.adapter_id} does not describe itself (get_config missing)",
            connector.id,
        )
    descriptor = get_config()
    if isinstance(descriptor, AdapterDescriptor):
        return descriptor
    return AdapterDescriptor.model_validate(descriptor)


def resolve_pagination(
    connector: Connector,
    descriptor: AdapterDescriptor,
    items_per_page: int | None,
    log: EventLog | None = None,
) -> PaginationSettings:
    """Compute the effective page size and style.

    Args:
        connector: Connector naming the endpoint
        descriptor: The adapter's ``get_config()`` result
        items_per_page: Page size requested by the caller, if any
        log: Event sink called as ``log(event_type, message)``

    Returns:
        PaginationSettings; ``style`` is None for unpaginated endpoints

    Raises:
        ConfigurationError: If the endpoint is not declared by the adapter
    """
    endpoint = descriptor.get_endpoint(connector.endpoint_id)
    if endpoint is None:
        raise ConfigurationError(
            f"Endpoint {connector.endpoint_id} not found in adapter {connector.adapter_id}",
            connector.id,
        )

    declaration = endpoint.settings.pagination
    if declaration is None:
        declaration = descriptor.pagination or False

    def info(message: str) -> None:
        logger.debug(message)
        if log:
            log(EventType.INFO, message)

    if not isinstance(declaration, PaginationConfig):
        if items_per_page is not None:
            info(
                f"Since the {connector.endpoint_id} endpoint of the {connector.adapter_id} "
                "adapter does not support pagination, the number of items per page set "
                "will be ignored"
            )
        return PaginationSettings(style=None, items_per_page=None)

    maximum = declaration.max_items_per_page
    if maximum is not None:
        if items_per_page is None:
            info(
                "Since the number of items per page was not defined, the maximum items "
                f"per page defined by the adapter ({maximum}) will be used instead"
            )
            items_per_page = maximum
        elif items_per_page > maximum:
            info(
                f"The number of items per page ({items_per_page}) is greater than the "
                f"maximum allowed by the adapter ({maximum}), so it will be reduced to "
                "the maximum allowed by the adapter"
            )
            items_per_page = maximum

    return PaginationSettings(style=declaration.type, items_per_page=items_per_page)
