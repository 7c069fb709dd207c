"""Pipeline orchestrator for moving records between adapters.

Coordinates one run of a pipeline: credential resolution, paginated
extraction from the source, transformation, caller hooks, batched
delivery to the target, and cleanup of adapter connections.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import httpx

from ..connectors.base import AdapterFactory, supports, validate_connector_config
from ..connectors.models import Connector, Credential, EventType, Pipeline
from ..connectors.registry import AdapterRegistry, get_registry
from ..errors import ConfigurationError, HaltedByCaller, is_fatal
from ..security.credentials import CredentialManager, Vault
from .events import EventEmitter
from .pagination import get_descriptor
from .retry import Sleep
from .stages.extract import ExtractStage
from .stages.load import LoadStage
from .stages.transform import TransformStage

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Result from a pipeline run."""

    data: list[dict[str, Any]]
    status: str = "completed"  # completed, halted, failed
    error_message: str | None = None
    extracted_count: int = 0
    loaded_count: int = 0
    skipped_batches: list[int] = field(default_factory=list)
    events: int = 0

    @property
    def success(self) -> bool:
        return self.status != "failed"


class Orchestrator:
    """Runs pipelines against a credential vault and an adapter registry.

    One orchestrator may serve many concurrent runs; adapter instances
    are created per run and never shared.
    """

    def __init__(
        self,
        vault: Vault | Mapping[str, Any],
        adapters: Mapping[str, AdapterFactory] | None = None,
        registry: AdapterRegistry | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            vault: Credential store shared by every run
            adapters: Adapter factories keyed by adapter id
            registry: Registry to use instead of building one from ``adapters``
                (defaults to the global registry when neither is given)
            http_client: Client for OAuth2 token exchanges
            sleep: Awaitable sleep in seconds, for retries and rate limiting
            clock: Monotonic clock in seconds, for timeouts and rate limiting
        """
        self.credentials = CredentialManager(vault, http_client=http_client)
        if registry is not None:
            self.registry = registry
        elif adapters is not None:
            self.registry = AdapterRegistry(adapters)
        else:
            self.registry = get_registry()
        self._sleep = sleep
        self._clock = clock

    @property
    def vault(self) -> Vault:
        return self.credentials.vault

    def register_adapter(self, adapter_id: str, factory: AdapterFactory) -> None:
        """Register an adapter factory for subsequent runs."""
        self.registry.register(adapter_id, factory)

    async def run_pipeline(self, pipeline: Pipeline | dict[str, Any]) -> PipelineResult:
        """Run a pipeline once.

        Args:
            pipeline: Pipeline model or raw mapping

        Returns:
            PipelineResult with the final data and counts

        Raises:
            ConfigurationError: Invalid pipeline shape, unknown adapter or
                endpoint, missing config field or capability
            CredentialError: Credential missing or not refreshable
            ETLError: Any other failure when ``fail_on_error`` is set
        """
        if not isinstance(pipeline, Pipeline):
            pipeline = Pipeline.model_validate(pipeline)

        emit = EventEmitter(pipeline.id, pipeline.logging)
        policy = pipeline.error_handling
        result = PipelineResult(data=[])

        emit(EventType.START, "Pipeline started")

        if pipeline.source is None and pipeline.data is None:
            emit.error("Pipeline must have either a source or data")
            raise ConfigurationError("Pipeline must have either a source or data")
        if pipeline.source is not None and pipeline.data is not None:
            emit.error("Pipeline must not have both a source and data")
            raise ConfigurationError("Pipeline must not have both a source and data")

        source_adapter: Any = None
        target_adapter: Any = None

        try:
            if pipeline.source is not None:
                source = pipeline.source
                source_adapter = await self._create_adapter(source)
                await self._connect(source_adapter)
                emit.info("Connected to source adapter")

                extraction = await ExtractStage(
                    source_adapter,
                    source,
                    policy,
                    pipeline.rate_limiting,
                    emit,
                    sleep=self._sleep,
                    clock=self._clock,
                ).extract()
                result.extracted_count = len(extraction.records)

                data = extraction.records
                if source.transform:
                    transformed = TransformStage(source.transform).transform(data)
                    data = transformed.records
                    emit(
                        EventType.TRANSFORM,
                        f"Applied {transformed.operations_applied} transformation(s)",
                        len(data),
                    )

                emit(EventType.EXTRACT, "Data extraction complete", len(data))
            else:
                data = list(pipeline.data or [])
                result.extracted_count = len(data)
                emit(EventType.EXTRACT, "Using provided data", len(data))

            result.data = data
            if pipeline.onload:
                pipeline.onload(data)

            if pipeline.target is not None:
                target = pipeline.target

                if pipeline.onbeforesend:
                    replacement = pipeline.onbeforesend(data)
                    if replacement is False:
                        raise HaltedByCaller("Pipeline halted by onbeforesend")
                    if isinstance(replacement, list):
                        data = replacement
                        result.data = data

                target_adapter = await self._create_adapter(target)
                await self._connect(target_adapter)
                emit.info("Connected to target adapter")

                loaded = await LoadStage(
                    target_adapter, target, policy, emit, sleep=self._sleep
                ).load(data)
                result.loaded_count = loaded.loaded_count
                result.skipped_batches = loaded.skipped_batches

                if pipeline.onupload:
                    pipeline.onupload()

            emit(EventType.COMPLETE, "Pipeline finished")

        except HaltedByCaller as e:
            result.status = "halted"
            emit(EventType.COMPLETE, str(e))

        except Exception as e:
            result.status = "failed"
            result.error_message = str(e)
            emit.error(f"Pipeline failed: {e}")
            if is_fatal(e) or policy.fail_on_error:
                raise

        finally:
            await self._cleanup(source_adapter, target_adapter, emit)
            result.events = emit.count

        return result

    async def _create_adapter(self, connector: Connector) -> Any:
        """Resolve credentials, then build and validate an adapter."""
        credential: Credential = await self.credentials.resolve(connector.credential_id)
        adapter = self.registry.create(connector, credential)

        if supports(adapter, "get_config"):
            validate_connector_config(get_descriptor(adapter, connector), connector)
        return adapter

    async def _connect(self, adapter: Any) -> None:
        if supports(adapter, "connect"):
            await adapter.connect()

    async def _cleanup(self, source_adapter: Any, target_adapter: Any, emit: EventEmitter) -> None:
        """Disconnect source then target; failures are reported, never raised."""
        for role, adapter in (("Source", source_adapter), ("Target", target_adapter)):
            if adapter is None or not supports(adapter, "disconnect"):
                continue
            try:
                await adapter.disconnect()
                emit.info(f"{role} adapter disconnected")
            except Exception as e:
                logger.exception(f"{role} adapter disconnect failed")
                emit.error(f"Connection cleanup failed: {e}")
