"""Pydantic models for connectors, credentials and pipelines.

Defines the data structures shared by adapters, the credential vault and
the pipeline engine.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Callable, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

from ..config import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_INTERVAL_MS


class CredentialType(str, Enum):
    """Kinds of credentials stored in a vault."""

    API_KEY = "api_key"
    OAUTH2 = "oauth2"
    BASIC = "basic"


class AdapterAction(str, Enum):
    """Operations an adapter endpoint may support."""

    DOWNLOAD = "download"
    UPLOAD = "upload"
    SYNC = "sync"


class PaginationStyle(str, Enum):
    """How an endpoint pages through results."""

    OFFSET = "offset"
    CURSOR = "cursor"


class EventType(str, Enum):
    """Lifecycle event types emitted by a pipeline run."""

    START = "start"
    EXTRACT = "extract"
    TRANSFORM = "transform"
    LOAD = "load"
    ERROR = "error"
    COMPLETE = "complete"
    INFO = "info"


# --- Credential Models ---


class ApiKeySecrets(BaseModel):
    """Secret material for API key authentication."""

    model_config = ConfigDict(extra="allow", validate_assignment=True)

    api_key: str
    api_secret: str | None = None


class OAuth2Secrets(BaseModel):
    """Secret material for OAuth2 authentication."""

    model_config = ConfigDict(extra="allow", validate_assignment=True)

    client_id: str | None = None
    client_secret: str | None = None
    refresh_token: str | None = None
    access_token: str | None = None
    token_url: str | None = None


class BasicSecrets(BaseModel):
    """Secret material for username/password authentication."""

    model_config = ConfigDict(extra="allow", validate_assignment=True)

    username: str
    password: str
    host: str | None = None
    port: str | None = None
    database: str | None = None

    @field_validator("port", mode="before")
    @classmethod
    def coerce_port(cls, v: Any) -> Any:
        """Accept numeric ports from config files."""
        return str(v) if isinstance(v, int) else v


class BaseCredential(BaseModel):
    """Fields shared by every credential kind."""

    model_config = ConfigDict(validate_assignment=True)

    id: str
    name: str | None = None
    provider: str | None = None
    environment: Literal["production", "staging", "development"] | None = None
    timeout: float | None = None
    expires_at: datetime | None = None

    @field_validator("expires_at")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Treat naive expiry timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether ``expires_at`` is missing or not in the future."""
        if self.expires_at is None:
            return True
        return self.expires_at <= (now or datetime.now(timezone.utc))


class ApiKeyCredential(BaseCredential):
    type: Literal["api_key"] = "api_key"
    credentials: ApiKeySecrets


class OAuth2Credential(BaseCredential):
    type: Literal["oauth2"] = "oauth2"
    credentials: OAuth2Secrets
    scopes: list[str] = []


class BasicCredential(BaseCredential):
    type: Literal["basic"] = "basic"
    credentials: BasicSecrets


Credential = Annotated[
    Union[ApiKeyCredential, OAuth2Credential, BasicCredential],
    Field(discriminator="type"),
]

_credential_adapter: TypeAdapter[Any] = TypeAdapter(Credential)


def parse_credential(data: dict[str, Any]) -> Credential:
    """Validate a raw mapping into the matching credential model."""
    return _credential_adapter.validate_python(data)


# --- Connector Models ---


class Filter(BaseModel):
    """A single field predicate."""

    field: str
    operator: str
    value: Any = None


class FilterGroup(BaseModel):
    """A boolean group of filters, possibly nested."""

    op: Literal["AND", "OR"] = "AND"
    filters: list[Union[Filter, FilterGroup]] = []


FilterGroup.model_rebuild()


class Sort(BaseModel):
    """Sort specification for one field."""

    type: Literal["asc", "desc"] = "asc"
    field: str


class Transformation(BaseModel):
    """A declarative field operation applied after extraction."""

    type: str
    options: dict[str, Any] = {}


class PaginationHint(BaseModel):
    """Caller-side pagination request for a connector."""

    model_config = ConfigDict(populate_by_name=True)

    items_per_page: int | None = Field(default=None, alias="itemsPerPage", gt=0)
    page_offset_key: int | str | None = Field(default=None, alias="pageOffsetKey")


class Connector(BaseModel):
    """Binding of a pipeline endpoint to an adapter and credential."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    adapter_id: str
    endpoint_id: str
    credential_id: str
    config: dict[str, Any] = {}
    fields: list[str] = []
    filters: list[Union[Filter, FilterGroup]] = []
    sort: list[Sort] = []
    transform: list[Transformation] = []
    limit: int | None = Field(default=None, gt=0)  # Total items to fetch
    timeout: float | None = Field(default=None, gt=0)  # Milliseconds
    pagination: PaginationHint | None = None
    debug: bool = False  # Promote adapter debug logs to INFO

    @property
    def requested_items_per_page(self) -> int | None:
        return self.pagination.items_per_page if self.pagination else None

    @property
    def start_offset(self) -> int | str | None:
        return self.pagination.page_offset_key if self.pagination else None


# --- Adapter Descriptor Models ---


class PaginationConfig(BaseModel):
    """Pagination declared by an adapter or one of its endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    type: PaginationStyle
    max_items_per_page: int | None = Field(default=None, alias="maxItemsPerPage", gt=0)


PaginationDeclaration = Union[PaginationConfig, Literal[False], None]


class EndpointSettings(BaseModel):
    pagination: PaginationDeclaration = None


class EndpointDescriptor(BaseModel):
    """One endpoint exposed by an adapter."""

    id: str
    path: str | None = None
    method: str | None = None
    query_type: str | None = None
    description: str | None = None
    supported_actions: list[AdapterAction] = []
    settings: EndpointSettings = Field(default_factory=EndpointSettings)


class ConfigField(BaseModel):
    """A connector config key understood by an adapter."""

    name: str
    required: bool = False
    default: Any = None


class AdapterDescriptor(BaseModel):
    """Static description returned by ``get_config()``."""

    id: str
    name: str
    type: str = "http"  # http, database, file, memory
    action: list[AdapterAction] = []
    credential_type: CredentialType | None = None
    base_url: str | None = None
    config: list[ConfigField] = []
    endpoints: list[EndpointDescriptor] = []
    pagination: PaginationDeclaration = None
    metadata: dict[str, Any] = {}

    def get_endpoint(self, endpoint_id: str) -> EndpointDescriptor | None:
        for endpoint in self.endpoints:
            if endpoint.id == endpoint_id:
                return endpoint
        return None


# --- Paging Models ---


class PageOptions(BaseModel):
    """Window requested from an adapter's ``download``."""

    model_config = ConfigDict(frozen=True)

    limit: int | None = None
    offset: int | str | None = None


class PageInfo(BaseModel):
    """Continuation metadata returned with a page."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    next_offset: int | str | None = Field(default=None, alias="nextOffset")


class Page(BaseModel):
    """One unit returned by ``download``."""

    data: list[dict[str, Any]] = []
    options: PageInfo = Field(default_factory=PageInfo)

    @field_validator("options", mode="before")
    @classmethod
    def default_options(cls, v: Any) -> Any:
        return {} if v is None else v

    @classmethod
    def coerce(cls, value: Any) -> "Page":
        """Normalise an adapter return value into a Page."""
        if isinstance(value, Page):
            return value
        if value is None:
            return cls()
        if isinstance(value, list):
            return cls(data=value)
        return cls.model_validate(value)


# --- Pipeline Models ---


class ErrorHandling(BaseModel):
    """Retry and failure policy for one run."""

    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    retry_interval: float = Field(default=DEFAULT_RETRY_INTERVAL_MS, ge=0)  # ms
    fail_on_error: bool = True


class RateLimiting(BaseModel):
    """Request pacing for the extraction loop."""

    requests_per_second: float = Field(default=math.inf, gt=0)


class Schedule(BaseModel):
    frequency: Literal["hourly", "daily", "weekly"]
    at: str


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PipelineEvent(BaseModel):
    """Immutable lifecycle event streamed to the logging hook."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    message: str
    timestamp: str = Field(default_factory=_utc_now_iso)
    data_count: int | None = None


class Pipeline(BaseModel):
    """A single execution unit combining source, target and policies."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    source: Connector | None = None
    target: Connector | None = None
    data: list[dict[str, Any]] | None = None
    schedule: Schedule | None = None
    error_handling: ErrorHandling = Field(default_factory=ErrorHandling)
    rate_limiting: RateLimiting = Field(default_factory=RateLimiting)

    # Hooks
    logging: Callable[[PipelineEvent], Any] | None = None
    onload: Callable[[list[dict[str, Any]]], Any] | None = None
    onbeforesend: Callable[[list[dict[str, Any]]], Any] | None = None
    onupload: Callable[[], Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def default_policies(cls, values: Any) -> Any:
        """Treat explicit nulls for policies as defaults."""
        if isinstance(values, dict):
            for key in ("error_handling", "rate_limiting"):
                if key in values and values[key] is None:
                    values = {k: v for k, v in values.items() if k != key}
        return values
