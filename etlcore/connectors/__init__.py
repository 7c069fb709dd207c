"""Adapter framework for pipeline sources and targets.

Provides the adapter contract, the registry of adapter factories, the
shared data models and the bundled adapters:
- memory: in-process datasets
- rest: generic JSON REST APIs
"""

from .base import BaseAdapter, supports, validate_connector_config
from .filters import matches
from .memory import MemoryAdapter, MemoryStore, memory_adapter_factory
from .models import (
    AdapterDescriptor,
    Connector,
    Credential,
    Page,
    PageOptions,
    parse_credential,
)
from .registry import AdapterRegistry, get_registry, register_adapter
from .api import RESTAdapter

__all__ = [
    # Base
    "BaseAdapter",
    "supports",
    "validate_connector_config",
    # Registry
    "AdapterRegistry",
    "get_registry",
    "register_adapter",
    # Models
    "AdapterDescriptor",
    "Connector",
    "Credential",
    "Page",
    "PageOptions",
    "parse_credential",
    # Adapters
    "MemoryAdapter",
    "MemoryStore",
    "memory_adapter_factory",
    "RESTAdapter",
    # Filters
    "matches",
]
