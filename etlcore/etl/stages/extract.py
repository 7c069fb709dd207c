"""Extract stage for ETL pipeline.

Drives a source adapter's ``download`` page by page:
- Pagination resolved once, before the first fetch
- Offset pages advance by the page size, cursor pages adopt ``next_offset``
- Rate limiting between pages
- Bounded retries per page through ``with_retries``

The loop stops on the first of: timeout (checked between pages), result
cap reached, cursor exhausted, short offset page, or an unpaginated
single fetch. Records past the cap are truncated.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from ...config import DEFAULT_TIMEOUT_MS, DEFAULT_TOTAL_ITEMS_LIMIT
from ...connectors.models import (
    Connector,
    ErrorHandling,
    EventType,
    Page,
    PageOptions,
    PaginationStyle,
    RateLimiting,
)
from ...errors import TimeoutExceeded, UpstreamOperationError
from ..events import EventLog
from ..pagination import PaginationSettings, get_descriptor, resolve_pagination
from ..retry import NO_RESULT, RateLimiter, Sleep, with_retries

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Result from an extraction run."""

    records: list[dict[str, Any]]
    pages: int
    stop_reason: str
    pagination: PaginationSettings


class ExtractStage:
    """Extract stage pulling every page from a source adapter."""

    def __init__(
        self,
        adapter: Any,
        connector: Connector,
        error_handling: ErrorHandling,
        rate_limiting: RateLimiting,
        log: EventLog,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the extract stage.

        Args:
            adapter: Connected source adapter
            connector: Source connector
            error_handling: Retry policy applied to each page
            rate_limiting: Request pacing between pages
            log: Event sink called as ``log(type, message, data_count)``
            sleep: Awaitable sleep in seconds
            clock: Monotonic clock in seconds
        """
        self.adapter = adapter
        self.connector = connector
        self.error_handling = error_handling
        self.log = log
        self._sleep = sleep
        self._clock = clock
        self.rate_limiter = RateLimiter(rate_limiting.requests_per_second, sleep=sleep, clock=clock)

        self.total_limit = connector.limit or DEFAULT_TOTAL_ITEMS_LIMIT
        self.timeout_ms = connector.timeout or DEFAULT_TIMEOUT_MS

    async def extract(self) -> ExtractionResult:
        """Fetch pages until a stop condition is met.

        Returns:
            ExtractionResult with the accumulated (capped) records

        Raises:
            ConfigurationError: If the endpoint is unknown to the adapter
            UpstreamOperationError: If a page fails under fail-fast policy
        """
        descriptor = get_descriptor(self.adapter, self.connector)
        settings = resolve_pagination(
            self.connector,
            descriptor,
            self.connector.requested_items_per_page,
            log=self.log,
        )

        started = self._clock()
        records: list[dict[str, Any]] = []
        offset = self._initial_offset(settings)
        page: Page | None = None
        pages = 0

        while True:
            if page is not None:
                offset = self._next_offset(settings, offset, page)
                await self._pace()

            try:
                self._check_timeout(started)
            except TimeoutExceeded as e:
                self.log(EventType.INFO, str(e))
                return self._finish(records, pages, "timeout", settings, page)

            self.rate_limiter.mark()
            page = await self._fetch(settings, offset)
            pages += 1
            records.extend(page.data)

            if settings.is_paginated:
                if settings.style == PaginationStyle.CURSOR and page.options.next_offset is not None:
                    where = f" with cursor {page.options.next_offset}"
                else:
                    where = f" at offset {offset}"
                self.log(EventType.EXTRACT, f"Extracted page{where}", len(page.data))

            reason = self._stop_reason(settings, records, page)
            if reason:
                return self._finish(records, pages, reason, settings, page)

    def _initial_offset(self, settings: PaginationSettings) -> int | str | None:
        start = self.connector.start_offset
        if settings.style == PaginationStyle.CURSOR:
            return start
        if settings.style == PaginationStyle.OFFSET:
            return _as_int(start)
        return None

    def _next_offset(
        self, settings: PaginationSettings, offset: int | str | None, page: Page
    ) -> int | str | None:
        if settings.style == PaginationStyle.CURSOR:
            offset = page.options.next_offset
            self.log(EventType.INFO, f"Next cursor set to {offset}")
        else:
            offset = _as_int(offset) + (settings.items_per_page or 0)
            self.log(EventType.INFO, f"Next offset incremented to {offset}")
        return offset

    async def _pace(self) -> None:
        delay = self.rate_limiter.remaining()
        if delay > 0:
            self.log(EventType.INFO, f"Rate limiting: waiting {delay * 1000:.0f}ms")
            await self.rate_limiter.wait()

    def _check_timeout(self, started: float) -> None:
        elapsed_ms = (self._clock() - started) * 1000
        if elapsed_ms >= self.timeout_ms:
            raise TimeoutExceeded(self.timeout_ms)

    async def _fetch(self, settings: PaginationSettings, offset: int | str | None) -> Page:
        options = PageOptions(limit=settings.items_per_page, offset=offset)

        async def download() -> Page:
            try:
                result = await self.adapter.download(options)
            except Exception as e:
                raise UpstreamOperationError(
                    str(e), stage="download", connector_id=self.connector.id
                ) from e
            return Page.coerce(result)

        def report(attempt: int, error: Exception) -> None:
            self.log(EventType.ERROR, f"Attempt {attempt} failed in download: {error}")

        result = await with_retries(
            download, self.error_handling, on_attempt_failure=report, sleep=self._sleep
        )
        if result is NO_RESULT:
            logger.warning(
                f"Giving up on page at offset {offset} for {self.connector.id}; "
                "treating it as empty"
            )
            return Page()
        return result

    def _stop_reason(
        self, settings: PaginationSettings, records: list[dict[str, Any]], page: Page
    ) -> str | None:
        if not settings.is_paginated:
            return "unpaginated"
        if len(records) >= self.total_limit:
            return "limit"
        if settings.style == PaginationStyle.CURSOR:
            return "cursor_exhausted" if page.options.next_offset is None else None
        if len(page.data) < (settings.items_per_page or 0):
            return "last_page"
        return None

    def _finish(
        self,
        records: list[dict[str, Any]],
        pages: int,
        reason: str,
        settings: PaginationSettings,
        last_page: Page | None,
    ) -> ExtractionResult:
        if len(records) > self.total_limit:
            del records[self.total_limit :]

        if reason == "unpaginated":
            self.log(EventType.INFO, "Search without pagination finished")
        elif reason == "limit":
            self.log(EventType.INFO, f"Reached total items limit of {self.total_limit}")
        elif reason == "cursor_exhausted":
            self.log(EventType.INFO, "No more data to fetch")
        elif reason == "last_page" and last_page is not None:
            if not last_page.data:
                self.log(EventType.INFO, "No more data to fetch")
            else:
                self.log(
                    EventType.INFO,
                    f"Received {len(last_page.data)} items, less than "
                    f"{settings.items_per_page}, so it's the last page",
                )

        logger.debug(
            f"Extraction of {self.connector.id} stopped ({reason}) after {pages} page(s), "
            f"{len(records)} records"
        )
        return ExtractionResult(
            records=records, pages=pages, stop_reason=reason, pagination=settings
        )


def _as_int(offset: int | str | None) -> int:
    """Numeric offset; missing or non-numeric offsets count as 0."""
    if offset is None or isinstance(offset, bool):
        return 0
    if isinstance(offset, int):
        return offset
    try:
        return int(str(offset).strip())
    except ValueError:
        return 0
