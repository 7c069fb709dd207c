"""etlcore: pipeline engine for moving records between adapters.

Example usage:
    from etlcore import Orchestrator, Pipeline
    from etlcore.connectors import MemoryStore, memory_adapter_factory

    store = MemoryStore({"contacts": [{"id": 1, "name": "Ada"}]})
    orchestrator = Orchestrator(
        vault={"local": {"type": "api_key", "credentials": {"api_key": "-"}}},
        adapters={"memory": memory_adapter_factory(store)},
    )

    result = await orchestrator.run_pipeline(
        Pipeline(
            id="copy-contacts",
            source={
                "id": "src",
                "adapter_id": "memory",
                "endpoint_id": "records",
                "credential_id": "local",
                "config": {"dataset": "contacts"},
                "pagination": {"itemsPerPage": 100},
            },
            target={
                "id": "dst",
                "adapter_id": "memory",
                "endpoint_id": "snapshot",
                "credential_id": "local",
                "config": {"dataset": "archive"},
            },
        )
    )
"""

from .connectors.models import (
    Connector,
    ErrorHandling,
    EventType,
    Pipeline,
    PipelineEvent,
    RateLimiting,
)
from .errors import (
    AuthorizationRequired,
    ConfigurationError,
    CredentialError,
    CredentialsNotFound,
    ETLError,
    OAuth2Error,
    UpstreamOperationError,
)
from .etl.pipeline import Orchestrator, PipelineResult
from .security.credentials import Vault

__all__ = [
    "Orchestrator",
    "PipelineResult",
    "Pipeline",
    "PipelineEvent",
    "Connector",
    "ErrorHandling",
    "RateLimiting",
    "EventType",
    "Vault",
    "ETLError",
    "ConfigurationError",
    "CredentialError",
    "CredentialsNotFound",
    "AuthorizationRequired",
    "OAuth2Error",
    "UpstreamOperationError",
]
