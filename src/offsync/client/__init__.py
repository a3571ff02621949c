"""HTTP plumbing for offsync.

Classes:
    :class:`Network` -- single-attempt fetch and retrying send over the
    real network, mapping transport failures to
    :class:`~offsync.exceptions.NetworkError`.
    :class:`OfflineTransport` -- the interception boundary; install it into
    an :class:`httpx.AsyncClient` to route every request through an
    :class:`~offsync.worker.OfflineWorker`.

Example::

    from offsync.client import OfflineTransport

    async with httpx.AsyncClient(transport=OfflineTransport(worker)) as client:
        resp = await client.get("https://app.example.com/api/teams")
"""

from offsync.client.network import Network
from offsync.client.transport import OfflineTransport

__all__ = ["Network", "OfflineTransport"]
