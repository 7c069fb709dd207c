"""Load stage for ETL pipeline.

Delivers records to a target adapter's ``upload``:
- Batch size from the target's offset pagination, else one batch
- Batches sent strictly in order, one at a time
- Bounded retries per batch through ``with_retries``
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from ...connectors.base import supports
from ...connectors.models import Connector, ErrorHandling, EventType, PaginationStyle
from ...errors import ConfigurationError, UpstreamOperationError
from ..events import EventLog
from ..pagination import get_descriptor, resolve_pagination
from ..retry import NO_RESULT, Sleep, with_retries

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    """Result from a load operation."""

    loaded_count: int
    batch_count: int
    skipped_batches: list[int] = field(default_factory=list)  # Batch start offsets


class LoadStage:
    """Load stage for writing records to a target adapter."""

    def __init__(
        self,
        adapter: Any,
        connector: Connector,
        error_handling: ErrorHandling,
        log: EventLog,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the load stage.

        Args:
            adapter: Connected target adapter
            connector: Target connector
            error_handling: Retry policy applied to each batch
            log: Event sink called as ``log(type, message, data_count)``
            sleep: Awaitable sleep in seconds

        Raises:
            ConfigurationError: If the adapter cannot upload
        """
        if not supports(adapter, "upload"):
            raise ConfigurationError(
                f"Upload not supported by adapter {connector.adapter_id}", connector.id
            )
        self.adapter = adapter
        self.connector = connector
        self.error_handling = error_handling
        self.log = log
        self._sleep = sleep

    def batch_size(self, total: int) -> int:
        """Resolve the target's batch size for ``total`` records."""
        if not supports(self.adapter, "get_config"):
            return total

        settings = resolve_pagination(
            self.connector,
            get_descriptor(self.adapter, self.connector),
            self.connector.requested_items_per_page,
            log=self.log,
        )
        if settings.style == PaginationStyle.OFFSET and settings.items_per_page:
            return settings.items_per_page
        return total

    async def load(self, records: list[dict[str, Any]]) -> LoadResult:
        """Upload records in consecutive batches.

        Args:
            records: Final records to deliver, in order

        Returns:
            LoadResult with delivered and skipped batches

        Raises:
            UpstreamOperationError: If a batch fails under fail-fast policy
        """
        result = LoadResult(loaded_count=0, batch_count=0)
        if not records:
            logger.debug(f"Nothing to upload to {self.connector.id}")
            return result

        size = self.batch_size(len(records))

        for start in range(0, len(records), size):
            batch = records[start : start + size]
            result.batch_count += 1

            delivered = await self._upload(batch)
            if delivered is NO_RESULT:
                result.skipped_batches.append(start)
                self.log(
                    EventType.ERROR,
                    f"Skipped batch at offset {start}, count: {len(batch)} after "
                    f"{self.error_handling.max_retries + 1} attempt(s)",
                )
                continue

            result.loaded_count += len(batch)
            self.log(
                EventType.LOAD,
                f"Uploaded batch at offset {start}, count: {len(batch)}",
                len(batch),
            )

        return result

    async def _upload(self, batch: list[dict[str, Any]]) -> Any:
        async def upload() -> bool:
            try:
                await self.adapter.upload(batch)
            except Exception as e:
                raise UpstreamOperationError(
                    str(e), stage="upload", connector_id=self.connector.id
                ) from e
            return True

        def report(attempt: int, error: Exception) -> None:
            self.log(EventType.ERROR, f"Attempt {attempt} failed in upload: {error}")

        return await with_retries(
            upload, self.error_handling, on_attempt_failure=report, sleep=self._sleep
        )
