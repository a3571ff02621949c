"""The interception boundary.

:class:`OfflineTransport` is the only piece an application has to touch:
install it as the transport of an :class:`httpx.AsyncClient` and every
request that client sends becomes a
:class:`~offsync.events.FetchEvent` handled by an
:class:`~offsync.worker.OfflineWorker`.

GET requests always get a response -- from the network, the cache or a
fallback. Writes that fail are answered ``202`` with the queued operation
id. Requests with a non-HTTP scheme are forwarded, and their transport
errors surface as :class:`~offsync.exceptions.NetworkError`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from offsync.events import FetchEvent

if TYPE_CHECKING:
    from offsync.worker import OfflineWorker


class OfflineTransport(httpx.AsyncBaseTransport):
    """Routes requests through an :class:`~offsync.worker.OfflineWorker`.

    Closing the transport does not close the worker; the worker owns the
    stores and the inner network transport.
    """

    def __init__(self, worker: OfflineWorker) -> None:
        self._worker = worker

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._worker.dispatch(FetchEvent(request))
