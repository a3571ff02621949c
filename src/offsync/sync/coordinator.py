"""Replay of queued writes and refresh of read-through data.

:class:`SyncCoordinator` runs when a connectivity-restore trigger arrives.
The trigger's tag selects the work:

=====================  ===================================================
Tag                    Work
=====================  ===================================================
``background-sync``    replay both queues and refresh the read-through
                       URLs, all three concurrently
``sync-evaluations``   replay the evaluations queue
``sync-user-data``     replay the user-updates queue
=====================  ===================================================

Within one queue operations are replayed strictly one after another, in
enqueue order. An operation is removed only after the server answered 2xx;
any other outcome leaves it where it is, so delivery is at-least-once. A
queue that is already being replayed is skipped by a second trigger.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional

from offsync.cache.generations import CacheStorage
from offsync.cache.store import cache_key, entry_from_response
from offsync.client.network import Network
from offsync.exceptions import InvalidUsageError, NetworkError, StoreError
from offsync.models import PendingOperation, StoreName, SyncConfig, SyncReport, SyncTag
from offsync.sync.queue import EVALUATIONS_QUEUE, USER_UPDATES_QUEUE, MutationQueue

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Consumes the mutation queues through the network path.

    Args:
        storage: The active cache generation; queues live in its offline
            store and refreshed data goes to its dynamic store.
        network: Network path used for replay (with retry) and refresh.
        config: Sync settings (refresh URL list).
    """

    def __init__(
        self,
        storage: CacheStorage,
        network: Network,
        config: Optional[SyncConfig] = None,
    ) -> None:
        self._storage = storage
        self._network = network
        self._config = config or SyncConfig()
        self._queues = {
            name: MutationQueue(storage.offline, name)
            for name in (EVALUATIONS_QUEUE, USER_UPDATES_QUEUE)
        }
        self._locks = {name: asyncio.Lock() for name in self._queues}
        self._handlers: dict[SyncTag, Callable[[], Awaitable[SyncReport]]] = {
            SyncTag.BACKGROUND_SYNC: self.background_sync,
            SyncTag.SYNC_EVALUATIONS: self.sync_evaluations,
            SyncTag.SYNC_USER_DATA: self.sync_user_data,
        }

    @property
    def queues(self) -> dict[str, MutationQueue]:
        return dict(self._queues)

    def queue(self, name: str) -> MutationQueue:
        """Return the queue called *name*.

        Raises:
            InvalidUsageError: For an unknown queue name.
        """
        try:
            return self._queues[name]
        except KeyError:
            raise InvalidUsageError(
                f"Unknown queue {name!r}; expected one of: {', '.join(self._queues)}"
            ) from None

    async def handle(self, tag: SyncTag | str) -> SyncReport:
        """Run the sync pass registered for *tag*.

        Raises:
            InvalidUsageError: For a tag that has no handler.
        """
        try:
            tag = SyncTag(tag)
        except ValueError:
            raise InvalidUsageError(f"Unknown sync tag {tag!r}") from None
        logger.info("Sync event: %s", tag.value)
        report = await self._handlers[tag]()
        logger.info(
            "Sync %s finished: %d replayed, %d failed, %d refreshed",
            tag.value, len(report.replayed), len(report.failed), len(report.refreshed),
        )
        return report

    # --- Handlers ---

    async def background_sync(self) -> SyncReport:
        results = await asyncio.gather(
            self.replay(EVALUATIONS_QUEUE),
            self.replay(USER_UPDATES_QUEUE),
            self.refresh(),
        )
        report = SyncReport(tag=SyncTag.BACKGROUND_SYNC)
        for result in results:
            report = report.merge(result)
        return report

    async def sync_evaluations(self) -> SyncReport:
        return await self.replay(EVALUATIONS_QUEUE, SyncTag.SYNC_EVALUATIONS)

    async def sync_user_data(self) -> SyncReport:
        return await self.replay(USER_UPDATES_QUEUE, SyncTag.SYNC_USER_DATA)

    # --- Replay ---

    async def replay(self, name: str, tag: SyncTag = SyncTag.BACKGROUND_SYNC) -> SyncReport:
        """Replay every operation of queue *name* in enqueue order."""
        report = SyncReport(tag=tag)
        lock = self._locks[name]
        if lock.locked():
            logger.info("Queue %s is already being replayed, skipping", name)
            report.skipped.append(name)
            return report

        async with lock:
            queue = self._queues[name]
            try:
                operations = queue.list()
            except StoreError as exc:
                logger.error("Cannot read queue %s: %s", name, exc)
                return report
            for operation in operations:
                if await self._replay_one(queue, operation):
                    report.replayed.append(operation.id)
                else:
                    report.failed.append(operation.id)
        return report

    async def _replay_one(self, queue: MutationQueue, operation: PendingOperation) -> bool:
        headers = {"content-type": operation.content_type}
        if operation.auth_token:
            headers["authorization"] = f"Bearer {operation.auth_token}"

        try:
            response = await self._network.send(
                operation.method,
                operation.endpoint,
                headers=headers,
                content=operation.body or None,
            )
        except NetworkError as exc:
            self._record_failure(queue, operation, str(exc))
            return False

        if not response.is_success:
            self._record_failure(queue, operation, f"HTTP {response.status_code}")
            return False

        try:
            queue.remove(operation.id)
        except StoreError as exc:
            logger.error("Synced %s but could not dequeue it, it will be sent again: %s",
                         operation.id, exc)
        else:
            logger.info("Synced %s %s", operation.kind.value, operation.id)
        return True

    def _record_failure(self, queue: MutationQueue, operation: PendingOperation, error: str) -> None:
        logger.warning("Failed to sync %s: %s", operation.id, error)
        try:
            queue.mark_failed(operation.id, error)
        except StoreError as exc:
            logger.warning("Could not record failure of %s: %s", operation.id, exc)

    # --- Read-through refresh ---

    async def refresh(self) -> SyncReport:
        """Fetch every refresh URL and overwrite its dynamic-store entry."""
        report = SyncReport(tag=SyncTag.BACKGROUND_SYNC)
        urls = list(self._config.refresh_urls)
        if not urls:
            return report
        results = await asyncio.gather(*(self._refresh_one(url) for url in urls))
        report.refreshed.extend(url for url, ok in zip(urls, results) if ok)
        return report

    async def _refresh_one(self, url: str) -> bool:
        try:
            request = self._network.build_request("GET", url)
            response = await self._network.fetch(request)
        except NetworkError as exc:
            logger.warning("Failed to update cached data for %s: %s", url, exc)
            return False
        if not response.is_success:
            logger.warning("Failed to update cached data for %s: HTTP %d", url, response.status_code)
            return False
        try:
            self._storage.dynamic.put(
                entry_from_response(cache_key(request), response, StoreName.DYNAMIC)
            )
        except StoreError as exc:
            logger.warning("Could not store refreshed data for %s: %s", url, exc)
            return False
        return True

    def pending_counts(self) -> dict[str, int]:
        """Number of pending operations per queue."""
        return {name: len(queue) for name, queue in self._queues.items()}
