"""Offline writes and their replay.

* :mod:`~offsync.sync.queue` -- :class:`MutationQueue`, the durable FIFO of
  :class:`~offsync.models.PendingOperation` kept in the offline store.
* :mod:`~offsync.sync.coordinator` -- :class:`SyncCoordinator`, which
  replays the queues and refreshes read-through data on a sync trigger.
* :mod:`~offsync.sync.connectivity` -- :class:`ConnectivityMonitor`, which
  turns an offline-to-online transition into a sync trigger.
"""

from offsync.sync.connectivity import ConnectivityMonitor
from offsync.sync.coordinator import SyncCoordinator
from offsync.sync.queue import EVALUATIONS_QUEUE, USER_UPDATES_QUEUE, MutationQueue

__all__ = [
    "EVALUATIONS_QUEUE",
    "USER_UPDATES_QUEUE",
    "ConnectivityMonitor",
    "MutationQueue",
    "SyncCoordinator",
]
