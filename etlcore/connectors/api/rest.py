"""Generic REST API adapter.

Provides JSON-over-HTTP extraction and delivery for pipelines with
support for offset and cursor pagination and nested response payloads.
"""

from __future__ import annotations

import base64
import logging
from typing import Any

import httpx

from ..base import BaseAdapter
from ..filters import get_field, walk_filters
from ..models import (
    AdapterAction,
    AdapterDescriptor,
    ApiKeyCredential,
    BasicCredential,
    ConfigField,
    Connector,
    Credential,
    EndpointDescriptor,
    EndpointSettings,
    Filter,
    OAuth2Credential,
    Page,
    PageOptions,
    PaginationConfig,
    PaginationStyle,
)
from ..registry import register_adapter

logger = logging.getLogger(__name__)

REST_ADAPTER_ID = "rest"

DEFAULT_TIMEOUT_SECONDS = 30.0


class RESTRequestError(Exception):
    """Raised when the API answers with an error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RESTAdapter(BaseAdapter):
    """Adapter for generic JSON REST APIs.

    Connector config keys:
        - base_url: API base URL (required)
        - path: Resource path (default: /<endpoint_id>)
        - pagination_type: none, offset, cursor (default: none)
        - max_items_per_page: Largest page the API serves
        - limit_param: Query param for page size (default: limit)
        - pagination_param: Query param for offset or cursor
        - data_path: Dotted path to the records array (e.g. data.items)
        - next_cursor_path: Dotted path to the next cursor (default: next_cursor)
        - params: Static query params
        - api_key_header: Header carrying the API key (default: X-API-Key)
        - upload_path: Path receiving POSTed batches (default: path)
        - upload_key: Wrap batches as {upload_key: [...]} instead of a bare list

    Top-level ``=`` filters are sent as query params; ``fields`` as a
    comma-separated ``fields`` param.
    """

    def __init__(
        self,
        connector: Connector,
        credential: Credential,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(connector, credential)
        self.config = connector.config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def path(self) -> str:
        return self.config.get("path") or f"/{self.connector.endpoint_id}"

    @property
    def pagination_style(self) -> PaginationStyle | None:
        style = self.config.get("pagination_type", "none")
        return None if style in (None, "none") else PaginationStyle(style)

    def get_config(self) -> AdapterDescriptor:
        style = self.pagination_style
        pagination = (
            PaginationConfig(type=style, max_items_per_page=self.config.get("max_items_per_page"))
            if style
            else False
        )
        return AdapterDescriptor(
            id=REST_ADAPTER_ID,
            name="REST API",
            type="http",
            action=[AdapterAction.DOWNLOAD, AdapterAction.UPLOAD],
            base_url=self.config.get("base_url"),
            config=[
                ConfigField(name="base_url", required=True),
                ConfigField(name="limit_param", default="limit"),
                ConfigField(name="next_cursor_path", default="next_cursor"),
                ConfigField(name="api_key_header", default="X-API-Key"),
            ],
            endpoints=[
                EndpointDescriptor(
                    id=self.connector.endpoint_id,
                    path=self.path,
                    method="GET",
                    supported_actions=[AdapterAction.DOWNLOAD, AdapterAction.UPLOAD],
                    settings=EndpointSettings(pagination=pagination),
                )
            ],
        )

    async def connect(self) -> None:
        """Open the HTTP client."""
        if self._client is not None:
            return

        base_url = self.config.get("base_url")
        if not base_url:
            raise ValueError("base_url is required")

        timeout = self.credential.timeout or self.config.get("timeout", DEFAULT_TIMEOUT_SECONDS)
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
            verify=self.config.get("verify_ssl", True),
            follow_redirects=True,
            transport=self._transport,
        )
        await super().connect()
        self._log("info", f"Connected to API: {base_url}")

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        await super().disconnect()

    def _get_auth_headers(self) -> dict[str, str]:
        """Get authentication headers for the connector's credential."""
        headers: dict[str, str] = {}
        credential = self.credential

        if isinstance(credential, ApiKeyCredential):
            header_name = self.config.get("api_key_header", "X-API-Key")
            headers[header_name] = credential.credentials.api_key

        elif isinstance(credential, BasicCredential):
            secrets = credential.credentials
            encoded = base64.b64encode(f"{secrets.username}:{secrets.password}".encode()).decode()
            headers["Authorization"] = f"Basic {encoded}"

        elif isinstance(credential, OAuth2Credential):
            token = credential.credentials.access_token
            if token:
                headers["Authorization"] = f"Bearer {token}"

        return headers

    def _build_params(self, page_options: PageOptions) -> dict[str, Any]:
        params: dict[str, Any] = dict(self.config.get("params", {}))

        for depth, item in walk_filters(self.connector.filters):
            if depth == 0 and isinstance(item, Filter) and item.operator in ("=", "==", "eq"):
                params[item.field] = item.value
            elif depth == 0:
                self._log("debug", f"Filter not sent as query param: {item}")

        if self.connector.fields:
            params["fields"] = ",".join(self.connector.fields)

        if page_options.limit is not None:
            params[self.config.get("limit_param", "limit")] = page_options.limit

        style = self.pagination_style
        if style == PaginationStyle.OFFSET:
            params[self.config.get("pagination_param", "offset")] = page_options.offset or 0
        elif style == PaginationStyle.CURSOR and page_options.offset is not None:
            params[self.config.get("pagination_param", "cursor")] = page_options.offset

        return params

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Make an HTTP request with auth headers.

        Raises:
            RESTRequestError: If the API answers with a 4xx/5xx status
        """
        if self._client is None:
            await self.connect()
        assert self._client is not None

        headers = self._get_auth_headers()
        headers.update(kwargs.pop("headers", {}) or {})

        response = await self._client.request(method, url, headers=headers, **kwargs)

        if response.status_code == 429:
            raise RESTRequestError(
                f"Rate limit exceeded (Retry-After: {response.headers.get('Retry-After', 'n/a')})",
                status_code=429,
            )
        if response.status_code >= 400:
            raise RESTRequestError(
                f"{method} {url} returned {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    async def download(self, page_options: PageOptions) -> Page:
        """Fetch one page of records from the configured path."""
        response = await self._request("GET", self.path, params=self._build_params(page_options))
        payload = response.json()

        records = self._extract_records(payload, self.config.get("data_path"))

        next_offset = None
        if self.pagination_style == PaginationStyle.CURSOR:
            if isinstance(payload, dict):
                next_offset = get_field(payload, self.config.get("next_cursor_path", "next_cursor"))
            if next_offset == "":
                next_offset = None

        return Page(data=records, options={"nextOffset": next_offset})

    async def upload(self, data: list[dict[str, Any]]) -> None:
        """POST one batch of records as JSON."""
        upload_key = self.config.get("upload_key")
        body: Any = {upload_key: data} if upload_key else data
        await self._request("POST", self.config.get("upload_path") or self.path, json=body)
        self._log("debug", f"Uploaded {len(data)} records")

    def _extract_records(self, payload: Any, data_path: str | None) -> list[dict[str, Any]]:
        """Extract the records array from a response payload.

        Args:
            payload: Parsed JSON response
            data_path: Dotted path to the records (None for the payload itself)

        Returns:
            List of records; a single object becomes a one-record list
        """
        data = get_field(payload, data_path) if data_path and isinstance(payload, dict) else payload

        if data is None:
            return []
        if isinstance(data, list):
            return [item if isinstance(item, dict) else {"value": item} for item in data]
        if isinstance(data, dict):
            return [data]
        self._log("warning", f"Unexpected payload type at {data_path}: {type(data).__name__}")
        return []


# Auto-register on import
register_adapter(REST_ADAPTER_ID, RESTAdapter)
