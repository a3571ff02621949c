"""Canonical Pydantic models shared across all offsync modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`CacheConfig`, :class:`RoutingConfig`,
    :class:`SyncConfig`, :class:`OutputConfig` and :class:`GlobalConfig`.

**Runtime models** -- produced and consumed by the interception layer:
    :class:`RouteClass`, :class:`StoreName`, :class:`CacheEntry`,
    :class:`OperationKind`, :class:`PendingOperation`, :class:`SyncTag`,
    :class:`SyncReport`, :class:`ControlMessage`, :class:`WorkerState` and
    :class:`OfflineStatus`.

All models use Pydantic v2. Cache entries are frozen: a stored response is
never mutated, only replaced.
"""

from __future__ import annotations

import base64
import enum
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


def utcnow() -> datetime:
    """Timezone-aware current time used for every stored timestamp."""
    return datetime.now(timezone.utc)


# --- Configuration ---


DEFAULT_PRECACHE = [
    "/",
    "/static/js/bundle.js",
    "/static/css/main.css",
    "/manifest.json",
    "/favicon.ico",
    "/logo192.png",
    "/logo512.png",
]

DEFAULT_API_PATTERNS = [
    r"/api/auth/login",
    r"/api/users",
    r"/api/teams",
    r"/api/evaluations",
    r"/scoring/categories",
]


class RequestConfig(BaseModel):
    """Default HTTP settings for requests the layer issues on its own behalf."""

    timeout: int = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(
        default=2, description="Retry attempts when replaying or refreshing"
    )


class CacheConfig(BaseModel):
    """Cache generation, bounds and strategy timing.

    The three store names of a generation are derived from ``prefix`` and
    ``generation``; bumping ``generation`` retires every older store on the
    next activation.
    """

    enabled: bool = Field(default=True, description="Serve and store cached responses")
    prefix: str = Field(default="offsync", description="Store name prefix")
    generation: str = Field(default="v1", description="Cache generation identifier")
    max_dynamic_entries: int = Field(
        default=50, ge=1, description="Entry bound of the dynamic store (FIFO)"
    )
    api_timeout_ms: int = Field(
        default=5000, ge=1, description="Network race timeout for API routes"
    )
    precache: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PRECACHE),
        description="Paths fetched into the static store at install time",
    )
    skip_waiting: bool = Field(
        default=True, description="Activate a freshly installed generation immediately"
    )


class RoutingConfig(BaseModel):
    """Rules the route selector uses to classify intercepted requests."""

    static_prefixes: list[str] = Field(default_factory=lambda: ["/static/"])
    static_extensions: list[str] = Field(
        default_factory=lambda: [
            ".js", ".css", ".png", ".jpg", ".jpeg", ".gif", ".svg",
            ".ico", ".woff", ".woff2", ".ttf", ".eot",
        ]
    )
    api_prefixes: list[str] = Field(default_factory=lambda: ["/api/", "/scoring/"])
    api_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_API_PATTERNS),
        description="Regular expressions searched in the request path",
    )
    image_extensions: list[str] = Field(
        default_factory=lambda: ["jpg", "jpeg", "png", "gif", "webp", "svg", "ico"]
    )


class SyncConfig(BaseModel):
    """Mutation replay and read-through refresh settings."""

    evaluation_endpoint: str = Field(
        default="/api/evaluations",
        description="POSTs to this path are queued as evaluation submissions",
    )
    user_update_prefixes: list[str] = Field(
        default_factory=lambda: ["/api/users", "/api/teams"],
        description="Writes under these paths are queued as user updates",
    )
    refresh_urls: list[str] = Field(
        default_factory=lambda: ["/api/teams", "/api/users", "/scoring/categories"],
        description="Dynamic-store entries refreshed on every background sync",
    )
    probe_url: Optional[str] = Field(
        default=None, description="URL probed by the connectivity monitor"
    )
    probe_interval: float = Field(
        default=30.0, gt=0, description="Seconds between connectivity probes"
    )


class OutputConfig(BaseModel):
    """Default output format preferences."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/offsync/config.json``.

    Loaded and saved by :func:`~offsync.config.load_global_config` and
    :func:`~offsync.config.save_global_config`. See
    :func:`~offsync.config.resolve_config` for the precedence chain.
    """

    base_url: Optional[str] = Field(
        default=None, description="Origin that relative paths resolve against"
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Runtime models ---


class RouteClass(str, enum.Enum):
    """Category of an intercepted request; selects the caching strategy.

    ``PASSTHROUGH`` is assigned to every non-GET request. Such requests are
    forwarded and never cached.
    """

    STATIC_ASSET = "static-asset"
    API = "api"
    NAVIGATION = "navigation"
    IMAGE = "image"
    OTHER = "other"
    PASSTHROUGH = "passthrough"


class StoreName(str, enum.Enum):
    """The three reserved stores of a cache generation."""

    STATIC = "static"
    DYNAMIC = "dynamic"
    OFFLINE = "offline"


class CacheEntry(BaseModel):
    """A stored response, keyed by canonical request identity.

    ``key`` is ``"GET <absolute-url>"``. ``headers`` keeps repeated header
    fields as ordered ``(name, value)`` pairs. Entries are immutable; writing
    the same key again replaces the entry.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    status_code: int = 200
    headers: list[tuple[str, str]] = Field(default_factory=list)
    body: bytes = b""
    stored_at: datetime = Field(default_factory=utcnow)
    store_name: StoreName


class OperationKind(str, enum.Enum):
    """What a queued write does; decides which queue it is replayed from."""

    EVALUATION_SUBMIT = "evaluation-submit"
    USER_UPDATE = "user-update"
    GENERIC = "generic"


class PendingOperation(BaseModel):
    """A write that could not reach the network, waiting for replay.

    ``body`` is opaque. In the JSON form written to the offline store it is
    base64 encoded; a ``str`` value is always read back as that encoding.
    """

    id: str
    kind: OperationKind
    endpoint: str
    method: str = "POST"
    auth_token: Optional[str] = None
    body: bytes = b""
    content_type: str = "application/json"
    enqueued_at: datetime = Field(default_factory=utcnow)
    attempts: int = 0
    last_error: Optional[str] = None

    @field_serializer("body", when_used="json")
    def _encode_body(self, body: bytes) -> str:
        return base64.b64encode(body).decode("ascii")

    @field_validator("body", mode="before")
    @classmethod
    def _decode_body(cls, value: Any) -> Any:
        if isinstance(value, str):
            return base64.b64decode(value)
        return value


class SyncTag(str, enum.Enum):
    """Tags carried by a connectivity-restore trigger."""

    BACKGROUND_SYNC = "background-sync"
    SYNC_EVALUATIONS = "sync-evaluations"
    SYNC_USER_DATA = "sync-user-data"


class SyncReport(BaseModel):
    """Outcome of one sync pass.

    ``replayed`` and ``failed`` hold operation ids, ``refreshed`` holds the
    URLs whose cache entry was renewed, and ``skipped`` names queues that
    were already being replayed by another pass.
    """

    tag: SyncTag
    replayed: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    refreshed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)

    def merge(self, other: SyncReport) -> SyncReport:
        """Return a report combining this one with *other* (tag kept)."""
        return SyncReport(
            tag=self.tag,
            replayed=self.replayed + other.replayed,
            failed=self.failed + other.failed,
            refreshed=self.refreshed + other.refreshed,
            skipped=self.skipped + other.skipped,
        )


class ControlMessage(str, enum.Enum):
    """Out-of-band messages accepted from the host application."""

    SKIP_WAITING = "SKIP_WAITING"
    GET_VERSION = "GET_VERSION"


class WorkerState(str, enum.Enum):
    """Lifecycle of an :class:`~offsync.worker.OfflineWorker`."""

    NEW = "new"
    INSTALLED = "installed"
    ACTIVATED = "activated"
    CLOSED = "closed"


class OfflineStatus(BaseModel):
    """Snapshot reported by :meth:`~offsync.worker.OfflineWorker.status`."""

    generation: str
    state: WorkerState
    online: Optional[bool] = None
    pending_evaluations: int = 0
    pending_updates: int = 0
    total_pending: int = 0
    stores: dict[str, int] = Field(default_factory=dict)
