"""HTTP API adapters."""

from .rest import RESTAdapter, RESTRequestError

__all__ = [
    "RESTAdapter",
    "RESTRequestError",
]
