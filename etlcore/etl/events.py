"""Lifecycle event emission for pipeline runs.

Every event goes to the pipeline's ``logging`` hook and is mirrored to the
``etlcore.etl.pipeline`` logger, so runs without a hook stay observable.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from ..connectors.models import EventType, PipelineEvent
from ..utils.sanitization import sanitize_error_message

logger = logging.getLogger("etlcore.etl.pipeline")

_LEVELS = {
    EventType.ERROR: logging.ERROR,
    EventType.INFO: logging.DEBUG,
}


class EventEmitter:
    """Builds timestamped events and fans them out to the hook and logger."""

    def __init__(
        self,
        pipeline_id: str,
        hook: Callable[[PipelineEvent], Any] | None = None,
    ) -> None:
        self.pipeline_id = pipeline_id
        self.hook = hook
        self.count = 0

    def __call__(
        self,
        event_type: EventType | str,
        message: str,
        data_count: int | None = None,
    ) -> PipelineEvent:
        event = PipelineEvent(
            type=EventType(event_type),
            message=sanitize_error_message(message),
            data_count=data_count,
        )
        self.count += 1

        suffix = f" ({data_count} records)" if data_count is not None else ""
        logger.log(
            _LEVELS.get(event.type, logging.INFO),
            f"[{self.pipeline_id}] {event.type.value}: {event.message}{suffix}",
        )

        if self.hook:
            self.hook(event)
        return event

    def error(self, message: str) -> PipelineEvent:
        return self(EventType.ERROR, message)

    def info(self, message: str) -> PipelineEvent:
        return self(EventType.INFO, message)


EventLog = Callable[..., Any]
