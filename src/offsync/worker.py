"""The worker: explicit state object for one interception layer instance.

An :class:`OfflineWorker` owns everything the layer needs -- the cache
generation, the network path, the route selector, the strategy executor,
the sync coordinator and (optionally) the connectivity monitor -- and
dispatches events to them through a table keyed by event type:

================  ============================================================
Event             Handler result
================  ============================================================
FetchEvent        :class:`httpx.Response` for the intercepted request
SyncEvent         :class:`~offsync.models.SyncReport`
MessageEvent      ``{"version": ...}`` for ``GET_VERSION``, ``None`` otherwise
InstallEvent      ``True`` when every static asset was precached
ActivateEvent     names of the retired store directories
================  ============================================================

Events are either awaited directly with :meth:`OfflineWorker.dispatch` or
posted with :meth:`OfflineWorker.post` and picked up by the intake loop
(:meth:`OfflineWorker.run`), which starts a task per event in arrival order.

The worker assumes a single event loop on a single thread. A host that
shares one worker between threads must serialise access itself.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import httpx

from offsync.cache.fallbacks import fallback_response, queued_response
from offsync.cache.generations import CacheStorage
from offsync.cache.strategies import StrategyExecutor
from offsync.client.network import Network
from offsync.client.transport import OfflineTransport
from offsync.config import get_stores_dir
from offsync.events import (
    ActivateEvent,
    Event,
    FetchEvent,
    InstallEvent,
    MessageEvent,
    SyncEvent,
)
from offsync.exceptions import InvalidUsageError, NetworkError, StoreError
from offsync.models import (
    ControlMessage,
    GlobalConfig,
    OfflineStatus,
    RouteClass,
    SyncReport,
    SyncTag,
    WorkerState,
)
from offsync.routing import RouteSelector
from offsync.sync.connectivity import ConnectivityMonitor
from offsync.sync.coordinator import SyncCoordinator
from offsync.sync.queue import (
    EVALUATIONS_QUEUE,
    MUTATING_METHODS,
    USER_UPDATES_QUEUE,
    bearer_token,
    classify_write,
    merge_records,
    queue_for,
)

logger = logging.getLogger(__name__)

_HTTP_SCHEMES = ("http", "https")


def _settle(future: asyncio.Future, task: asyncio.Task) -> None:
    if future.done():
        return
    if task.cancelled():
        future.cancel()
    elif task.exception() is not None:
        future.set_exception(task.exception())
    else:
        future.set_result(task.result())


class OfflineWorker:
    """Offline-first interception layer for one cache generation.

    Args:
        config: Resolved configuration.
        storage_root: Directory holding the stores. Defaults to
            :func:`~offsync.config.get_stores_dir`.
        transport: Inner transport to the real network. Defaults to
            :class:`httpx.AsyncHTTPTransport`.

    Example::

        async with OfflineWorker(config) as worker:
            await worker.install()
            async with httpx.AsyncClient(transport=worker.transport()) as client:
                resp = await client.get("https://app.example.com/api/teams")
    """

    def __init__(
        self,
        config: Optional[GlobalConfig] = None,
        storage_root: Optional[str | Path] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or GlobalConfig()
        root = storage_root if storage_root is not None else get_stores_dir()
        self.storage = CacheStorage.from_config(root, self.config.cache)
        self.network = Network(transport, self.config.request, base_url=self.config.base_url)
        self.selector = RouteSelector(self.config.routing)
        self.executor = StrategyExecutor(self.storage, self.network, self.config.cache)
        self.coordinator = SyncCoordinator(self.storage, self.network, self.config.sync)
        self.monitor: Optional[ConnectivityMonitor] = None
        if self.config.sync.probe_url:
            self.monitor = ConnectivityMonitor(
                self.network,
                self.config.sync.probe_url,
                interval=self.config.sync.probe_interval,
                on_restore=self._on_restore,
            )
        self.state = WorkerState.NEW
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._handlers = {
            FetchEvent: self._on_fetch,
            SyncEvent: self._on_sync,
            MessageEvent: self._on_message,
            InstallEvent: self._on_install,
            ActivateEvent: self._on_activate,
        }

    @property
    def version(self) -> str:
        return self.storage.version

    def transport(self) -> OfflineTransport:
        """An interception transport bound to this worker."""
        return OfflineTransport(self)

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    async def dispatch(self, event: Event) -> Any:
        """Handle *event* and return the handler's result.

        Raises:
            InvalidUsageError: For an unknown event type or a closed worker.
        """
        handler = self._handlers.get(type(event))
        if handler is None:
            raise InvalidUsageError(f"No handler for event {type(event).__name__}")
        if self.state is WorkerState.CLOSED:
            raise InvalidUsageError("Worker is closed")
        return await handler(event)

    def post(self, event: Event) -> asyncio.Future:
        """Queue *event* for the intake loop; the future carries the result."""
        future = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait((event, future))
        return future

    async def run(self) -> None:
        """Intake loop: dispatch posted events until :meth:`stop` is called.

        Each event runs in its own task so a slow fetch does not hold up
        the events behind it. The loop waits for those tasks before
        returning.
        """
        tasks: set[asyncio.Task] = set()
        while True:
            item = await self._inbox.get()
            if item is None:
                break
            event, future = item
            task = asyncio.ensure_future(self.dispatch(event))
            tasks.add(task)
            task.add_done_callback(tasks.discard)
            task.add_done_callback(lambda t, f=future: _settle(f, t))
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def stop(self) -> None:
        """Ask :meth:`run` to return once the events before this call are started."""
        self._inbox.put_nowait(None)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def install(self) -> bool:
        """Precache the configured static assets, then activate if
        ``skip_waiting`` is set.

        Precache is all-or-nothing; a failure is logged and the worker is
        installed anyway, serving the static assets from the network.
        """
        return await self.dispatch(InstallEvent())

    async def activate(self) -> list[str]:
        """Retire older generations, carrying pending writes forward."""
        return await self.dispatch(ActivateEvent())

    async def sync(self, tag: SyncTag | str = SyncTag.BACKGROUND_SYNC) -> SyncReport:
        return await self.dispatch(SyncEvent(tag))

    async def message(self, message: ControlMessage | str) -> Optional[dict[str, str]]:
        return await self.dispatch(MessageEvent(message))

    async def watch(self, stop: asyncio.Event) -> None:
        """Run the connectivity monitor until *stop* is set.

        Raises:
            InvalidUsageError: If no ``sync.probe_url`` is configured.
        """
        if self.monitor is None:
            raise InvalidUsageError("No probe_url configured; set sync.probe_url to watch")
        await self.monitor.run(stop)

    def status(self) -> OfflineStatus:
        """Snapshot of generation, lifecycle, connectivity and queue sizes."""
        counts = self.coordinator.pending_counts()
        return OfflineStatus(
            generation=self.version,
            state=self.state,
            online=self.monitor.online if self.monitor else None,
            pending_evaluations=counts[EVALUATIONS_QUEUE],
            pending_updates=counts[USER_UPDATES_QUEUE],
            total_pending=sum(counts.values()),
            stores=self.storage.stats(),
        )

    async def aclose(self) -> None:
        """Wait for background work, then release the network and the stores."""
        if self.state is WorkerState.CLOSED:
            return
        await self.executor.drain()
        await self.network.aclose()
        self.storage.close()
        self.state = WorkerState.CLOSED

    async def __aenter__(self) -> OfflineWorker:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    async def _on_install(self, event: InstallEvent) -> bool:
        precache = self.config.cache.precache
        if not precache:
            ok = True
        elif self.network.base_url is None:
            logger.warning("No base_url configured, skipping precache of %d assets", len(precache))
            ok = False
        else:
            ok = await self.executor.precache(precache)
        self.state = WorkerState.INSTALLED
        logger.info("Installed %s", self.version)
        if self.config.cache.skip_waiting:
            await self.activate()
        return ok

    async def _on_activate(self, event: ActivateEvent) -> list[str]:
        retired = self.storage.activate(merge=merge_records)
        self.state = WorkerState.ACTIVATED
        logger.info("Activated %s", self.version)
        return retired

    async def _on_message(self, event: MessageEvent) -> Optional[dict[str, str]]:
        try:
            message = ControlMessage(event.message)
        except ValueError:
            raise InvalidUsageError(f"Unknown control message {event.message!r}") from None
        if message is ControlMessage.GET_VERSION:
            return {"version": self.version}
        if self.state is not WorkerState.ACTIVATED:
            await self.activate()
        return None

    async def _on_sync(self, event: SyncEvent) -> SyncReport:
        return await self.coordinator.handle(event.tag)

    async def _on_restore(self) -> None:
        await self.dispatch(SyncEvent(SyncTag.BACKGROUND_SYNC))

    async def _on_fetch(self, event: FetchEvent) -> httpx.Response:
        request = event.request
        if request.url.scheme not in _HTTP_SCHEMES:
            return await self.network.fetch(request)
        route = self.selector.classify(request)
        logger.debug("%s %s -> %s", request.method, request.url, route.value)
        if route is RouteClass.PASSTHROUGH:
            return await self._forward(request)
        return await self.executor.execute(route, request)

    async def _forward(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        try:
            return await self.network.fetch(request)
        except NetworkError as exc:
            if request.method not in MUTATING_METHODS:
                logger.info("Network failed for %s %s: %s", request.method, request.url, exc)
                return fallback_response(RouteClass.PASSTHROUGH, request)
            return self._enqueue(request, exc)

    def _enqueue(self, request: httpx.Request, cause: NetworkError) -> httpx.Response:
        kind = classify_write(request.method, request.url.path, self.config.sync)
        queue = self.coordinator.queue(queue_for(kind))
        try:
            operation = queue.enqueue(
                kind,
                str(request.url),
                method=request.method,
                body=request.content,
                auth_token=bearer_token(request.headers),
                content_type=request.headers.get("content-type", "application/json"),
            )
        except StoreError as exc:
            logger.error(
                "Could not queue %s %s, the write is lost: %s", request.method, request.url, exc
            )
            return fallback_response(RouteClass.PASSTHROUGH, request)
        logger.info("Network failed for %s %s, stored offline: %s", request.method, request.url, cause)
        return queued_response(request, operation.id, queue.name)
