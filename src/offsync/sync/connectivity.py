"""Connectivity probing.

:class:`ConnectivityMonitor` stands in for the host's online/offline
notifications: it probes a URL on an interval, and when the probe starts
succeeding after having failed it fires the restore callback -- normally
posting ``SyncEvent(background-sync)`` to the worker.

Any HTTP response counts as online; only a transport failure is offline.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional

from offsync.client.network import Network
from offsync.exceptions import InvalidUsageError, NetworkError

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Tracks whether the network is reachable.

    Args:
        network: Network path the probe goes through.
        probe_url: URL requested with ``HEAD``; relative URLs resolve
            against the network's base URL.
        interval: Seconds between probes in :meth:`run`.
        on_restore: Awaited on every offline-to-online transition.

    Raises:
        InvalidUsageError: If *interval* is not positive.
    """

    def __init__(
        self,
        network: Network,
        probe_url: str,
        interval: float = 30.0,
        on_restore: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        if interval <= 0:
            raise InvalidUsageError(f"Probe interval must be positive, got {interval:g}")
        self._network = network
        self._probe_url = probe_url
        self._interval = interval
        self._on_restore = on_restore
        self.online: Optional[bool] = None

    async def check(self) -> bool:
        """Probe once, update :attr:`online` and fire the restore callback."""
        try:
            await self._network.fetch(self._network.build_request("HEAD", self._probe_url))
            online = True
        except NetworkError as exc:
            logger.debug("Connectivity probe failed: %s", exc)
            online = False

        previous, self.online = self.online, online
        if previous is False and online:
            logger.info("Connection restored")
            if self._on_restore is not None:
                await self._on_restore()
        elif previous is not False and not online:
            logger.warning("Connection lost")
        return online

    async def run(self, stop: asyncio.Event) -> None:
        """Probe every ``interval`` seconds until *stop* is set."""
        while not stop.is_set():
            await self.check()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue
