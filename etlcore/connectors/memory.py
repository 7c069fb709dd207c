"""In-memory adapter.

Serves records from a Python list and collects uploaded batches. Useful
for wiring pipelines in tests, for staging data between runs, and as the
reference implementation of the adapter contract.
"""

from __future__ import annotations

import logging
from typing import Any

from .base import BaseAdapter
from .filters import get_field, matches
from .models import (
    AdapterAction,
    AdapterDescriptor,
    ConfigField,
    Connector,
    Credential,
    EndpointDescriptor,
    EndpointSettings,
    Page,
    PageOptions,
    PaginationConfig,
    PaginationStyle,
)

logger = logging.getLogger(__name__)

MEMORY_ADAPTER_ID = "memory"

MEMORY_DESCRIPTOR = AdapterDescriptor(
    id=MEMORY_ADAPTER_ID,
    name="In-memory dataset",
    type="memory",
    action=[AdapterAction.DOWNLOAD, AdapterAction.UPLOAD],
    config=[ConfigField(name="dataset", required=False, default="default")],
    endpoints=[
        EndpointDescriptor(
            id="records",
            description="Offset-paginated records",
            supported_actions=[AdapterAction.DOWNLOAD, AdapterAction.UPLOAD],
            settings=EndpointSettings(
                pagination=PaginationConfig(type=PaginationStyle.OFFSET)
            ),
        ),
        EndpointDescriptor(
            id="stream",
            description="Cursor-paginated records",
            supported_actions=[AdapterAction.DOWNLOAD],
            settings=EndpointSettings(
                pagination=PaginationConfig(type=PaginationStyle.CURSOR)
            ),
        ),
        EndpointDescriptor(
            id="snapshot",
            description="Whole dataset in a single call",
            supported_actions=[AdapterAction.DOWNLOAD, AdapterAction.UPLOAD],
            settings=EndpointSettings(pagination=False),
        ),
    ],
)


class MemoryStore:
    """Named datasets shared by memory adapter instances."""

    def __init__(self, datasets: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.datasets: dict[str, list[dict[str, Any]]] = datasets if datasets is not None else {}

    def get(self, name: str) -> list[dict[str, Any]]:
        return self.datasets.setdefault(name, [])

    def extend(self, name: str, records: list[dict[str, Any]]) -> None:
        self.get(name).extend(records)


class MemoryAdapter(BaseAdapter):
    """Adapter backed by a ``MemoryStore`` dataset.

    Honours the connector's ``fields``, ``filters`` and ``sort``. The
    ``records`` endpoint pages by numeric offset, ``stream`` by an opaque
    string cursor, and ``snapshot`` returns everything at once.
    """

    def __init__(
        self,
        connector: Connector,
        credential: Credential,
        store: MemoryStore | None = None,
    ) -> None:
        super().__init__(connector, credential)
        self.store = store or MemoryStore()
        self.dataset = connector.config.get("dataset", "default")
        self.download_calls: list[PageOptions] = []
        self.uploaded_batches: list[list[dict[str, Any]]] = []

    def get_config(self) -> AdapterDescriptor:
        return MEMORY_DESCRIPTOR

    async def download(self, page_options: PageOptions) -> Page:
        self.download_calls.append(page_options)
        records = self._select()

        if self.connector.endpoint_id == "stream":
            start = _decode_cursor(page_options.offset)
            end = len(records) if page_options.limit is None else start + page_options.limit
            next_offset = _encode_cursor(end) if end < len(records) else None
            return Page(data=records[start:end], options={"nextOffset": next_offset})

        start = _to_offset(page_options.offset)
        if page_options.limit is None:
            return Page(data=records[start:])
        return Page(data=records[start : start + page_options.limit])

    async def upload(self, data: list[dict[str, Any]]) -> None:
        batch = [dict(record) for record in data]
        self.uploaded_batches.append(batch)
        self.store.extend(self.dataset, batch)
        self._log("debug", f"Stored {len(batch)} records in {self.dataset}")

    def _select(self) -> list[dict[str, Any]]:
        records = [r for r in self.store.get(self.dataset) if matches(r, self.connector.filters)]

        for sort in reversed(self.connector.sort):
            records.sort(
                key=lambda r: (get_field(r, sort.field) is None, get_field(r, sort.field)),
                reverse=sort.type == "desc",
            )

        if self.connector.fields:
            records = [
                {name: get_field(r, name) for name in self.connector.fields}
                for r in records
            ]
        return records


def _to_offset(offset: int | str | None) -> int:
    if offset is None:
        return 0
    try:
        return int(offset)
    except (TypeError, ValueError):
        return 0


def _encode_cursor(position: int) -> str:
    return f"pos-{position}"


def _decode_cursor(cursor: int | str | None) -> int:
    if isinstance(cursor, str) and cursor.startswith("pos-"):
        cursor = cursor[4:]
    return _to_offset(cursor)


def memory_adapter_factory(store: MemoryStore):
    """Build a registry factory whose adapters share ``store``."""

    def factory(connector: Connector, credential: Credential) -> MemoryAdapter:
        return MemoryAdapter(connector, credential, store=store)

    return factory
