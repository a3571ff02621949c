"""The five caching strategies and their dispatch table.

=========================  ==============  ================================
Strategy                   Route class     Store
=========================  ==============  ================================
cache-first                static-asset    static
network-first-with-timeout api             dynamic
network-first-with-fallback navigation     dynamic, then cached root page
cache-first-with-fallback  image           static
stale-while-revalidate     other           dynamic
=========================  ==============  ================================

Every strategy is total: :class:`~offsync.exceptions.NetworkError` and
:class:`~offsync.exceptions.NotFoundError` are recovered inside the strategy
into the route's fallback response (:mod:`offsync.cache.fallbacks`).
:class:`~offsync.exceptions.StoreError` on a read is treated as a miss and
on a write is logged; the network response is still returned.

Only 2xx responses are stored. Other statuses are returned to the caller
unchanged and leave the cache alone.

Work that outlives the request -- a revalidation, or a fetch that lost the
API timeout race -- runs as a tracked background task. :meth:`drain` waits
for all of them. A fetch that lost the race is never written to the cache
when it eventually completes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional

import httpx

from offsync.cache.fallbacks import fallback_response
from offsync.cache.generations import CacheStorage
from offsync.cache.store import cache_key, entry_from_response, make_key, response_from_entry
from offsync.client.network import Network
from offsync.exceptions import InvalidUsageError, NetworkError, NotFoundError, StoreError
from offsync.models import CacheConfig, CacheEntry, RouteClass, StoreName

logger = logging.getLogger(__name__)

Strategy = Callable[[httpx.Request], Awaitable[httpx.Response]]


def _discard_abandoned(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Abandoned fetch failed: %s", task.exception())


class StrategyExecutor:
    """Produces a response for a classified request.

    Args:
        storage: The active cache generation.
        network: The network path.
        config: Cache settings (``enabled``, ``api_timeout_ms``).
    """

    def __init__(
        self,
        storage: CacheStorage,
        network: Network,
        config: Optional[CacheConfig] = None,
    ) -> None:
        self._storage = storage
        self._network = network
        self._config = config or CacheConfig()
        self._background: set[asyncio.Task] = set()
        self._strategies: dict[RouteClass, Strategy] = {
            RouteClass.STATIC_ASSET: self.cache_first,
            RouteClass.API: self.network_first_with_timeout,
            RouteClass.NAVIGATION: self.network_first_with_fallback,
            RouteClass.IMAGE: self.cache_first_with_fallback,
            RouteClass.OTHER: self.stale_while_revalidate,
        }

    @property
    def pending_tasks(self) -> int:
        """Number of background tasks still running."""
        return len(self._background)

    async def execute(self, route: RouteClass, request: httpx.Request) -> httpx.Response:
        """Serve *request* with the strategy registered for *route*.

        With caching disabled the request goes to the network and only the
        fallback policy applies.

        Raises:
            InvalidUsageError: For ``PASSTHROUGH``, which has no strategy.
        """
        strategy = self._strategies.get(route)
        if strategy is None:
            raise InvalidUsageError(f"No caching strategy for route class {route.value!r}")
        if not self._config.enabled:
            try:
                return await self._network.fetch(request)
            except NetworkError as exc:
                logger.info("Network failed for %s: %s", request.url, exc)
                return fallback_response(route, request)
        return await strategy(request)

    # ------------------------------------------------------------------ #
    # Strategies
    # ------------------------------------------------------------------ #

    async def cache_first(self, request: httpx.Request) -> httpx.Response:
        """Static assets: a cached copy short-circuits the network entirely."""
        return await self._cache_first(request, RouteClass.STATIC_ASSET)

    async def cache_first_with_fallback(self, request: httpx.Request) -> httpx.Response:
        """Images: cache-first, degrading to a transparent placeholder."""
        return await self._cache_first(request, RouteClass.IMAGE)

    async def network_first_with_timeout(self, request: httpx.Request) -> httpx.Response:
        """API calls: race the network against ``api_timeout_ms``.

        The fetch that loses the race keeps running in the background but
        its result is dropped.
        """
        key = cache_key(request)
        fetch = asyncio.ensure_future(self._network.fetch(request))
        self._track(fetch)
        try:
            done, _ = await asyncio.wait({fetch}, timeout=self._config.api_timeout_ms / 1000)
        except asyncio.CancelledError:
            self._abandon(fetch)
            raise

        if fetch not in done:
            self._abandon(fetch)
            logger.info(
                "Network timed out after %dms for %s, trying cache",
                self._config.api_timeout_ms, request.url,
            )
            return self._from_cache(StoreName.DYNAMIC, request, RouteClass.API)

        self._background.discard(fetch)
        try:
            response = fetch.result()
        except NetworkError as exc:
            logger.info("Network failed for %s, trying cache: %s", request.url, exc)
            return self._from_cache(StoreName.DYNAMIC, request, RouteClass.API)

        self._remember(StoreName.DYNAMIC, key, response)
        return response

    async def network_first_with_fallback(self, request: httpx.Request) -> httpx.Response:
        """Navigations: network, then the cached page, then the cached root
        document, then the inline offline page."""
        key = cache_key(request)
        try:
            response = await self._network.fetch(request)
        except NetworkError as exc:
            logger.info("Network failed for %s, trying cache: %s", request.url, exc)
            entry = self._lookup(StoreName.DYNAMIC, key) or self._root_document(request)
            if entry is None:
                return fallback_response(RouteClass.NAVIGATION, request)
            return response_from_entry(entry, request)

        self._remember(StoreName.DYNAMIC, key, response)
        return response

    async def stale_while_revalidate(self, request: httpx.Request) -> httpx.Response:
        """Everything else: answer from cache now, refresh for next time.

        Without a cached entry the revalidation itself is the response.
        """
        key = cache_key(request)
        entry = self._lookup(StoreName.DYNAMIC, key)
        if entry is not None:
            self._track(asyncio.ensure_future(self._revalidate_quietly(request, key)))
            return response_from_entry(entry, request)

        try:
            return await self._revalidate(request, key)
        except NetworkError as exc:
            logger.info("Network failed for %s with nothing cached: %s", request.url, exc)
            return fallback_response(RouteClass.OTHER, request)

    # ------------------------------------------------------------------ #
    # Install-time precache
    # ------------------------------------------------------------------ #

    async def precache(self, urls: list[str]) -> bool:
        """Fetch *urls* into the static store, all or nothing.

        If any URL fails (network error or non-2xx), nothing is stored.

        Returns:
            ``True`` when every URL was cached.
        """
        requests = [self._network.build_request("GET", url) for url in urls]
        results = await asyncio.gather(
            *(self._network.fetch(r) for r in requests), return_exceptions=True
        )
        for request, result in zip(requests, results):
            if isinstance(result, NetworkError):
                logger.error("Failed to cache static assets: %s", result)
                return False
            if isinstance(result, BaseException):
                raise result
            if not result.is_success:
                logger.error(
                    "Failed to cache static assets: %s returned %d",
                    request.url, result.status_code,
                )
                return False

        for request, result in zip(requests, results):
            self._remember(StoreName.STATIC, cache_key(request), result)
        logger.info("Cached %d static assets", len(requests))
        return True

    async def drain(self) -> None:
        """Wait until every background task has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _cache_first(self, request: httpx.Request, route: RouteClass) -> httpx.Response:
        key = cache_key(request)
        entry = self._lookup(StoreName.STATIC, key)
        if entry is not None:
            return response_from_entry(entry, request)

        try:
            response = await self._network.fetch(request)
        except NetworkError as exc:
            logger.warning("Cache first strategy failed for %s: %s", request.url, exc)
            return fallback_response(route, request)

        self._remember(StoreName.STATIC, key, response)
        return response

    async def _revalidate(self, request: httpx.Request, key: str) -> httpx.Response:
        response = await self._network.fetch(request)
        self._remember(StoreName.DYNAMIC, key, response)
        return response

    async def _revalidate_quietly(self, request: httpx.Request, key: str) -> None:
        try:
            await self._revalidate(request, key)
        except NetworkError as exc:
            logger.debug("Revalidation of %s failed, keeping cached copy: %s", request.url, exc)

    def _root_document(self, request: httpx.Request) -> Optional[CacheEntry]:
        root_key = make_key("GET", request.url.join("/"))
        return self._lookup(StoreName.STATIC, root_key) or self._lookup(
            StoreName.DYNAMIC, root_key
        )

    def _cached(self, name: StoreName, request: httpx.Request) -> httpx.Response:
        entry = self._lookup(name, cache_key(request))
        if entry is None:
            raise NotFoundError(f"No cached response for {request.url}")
        return response_from_entry(entry, request)

    def _from_cache(
        self, name: StoreName, request: httpx.Request, route: RouteClass
    ) -> httpx.Response:
        try:
            return self._cached(name, request)
        except NotFoundError as exc:
            logger.info("%s", exc)
            return fallback_response(route, request)

    def _lookup(self, name: StoreName, key: str) -> Optional[CacheEntry]:
        store = self._storage.store(name)
        try:
            return store.get(key)
        except StoreError as exc:
            logger.warning("Cache read from %s failed: %s", store.name, exc)
            return None

    def _remember(self, name: StoreName, key: str, response: httpx.Response) -> None:
        if not response.is_success:
            return
        store = self._storage.store(name)
        try:
            store.put(entry_from_response(key, response, name))
        except StoreError as exc:
            logger.warning("Cache write to %s failed: %s", store.name, exc)

    def _track(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _abandon(self, task: asyncio.Task) -> None:
        task.add_done_callback(_discard_abandoned)
