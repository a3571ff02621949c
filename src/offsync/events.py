"""Events accepted by :meth:`~offsync.worker.OfflineWorker.dispatch`.

Each event type has exactly one handler in the worker's dispatch table.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import httpx

from offsync.models import ControlMessage, SyncTag


@dataclass(frozen=True)
class FetchEvent:
    """An intercepted outgoing request; the handler returns its response."""

    request: httpx.Request


@dataclass(frozen=True)
class SyncEvent:
    """A connectivity-restore trigger; the handler returns a
    :class:`~offsync.models.SyncReport`."""

    tag: Union[SyncTag, str] = SyncTag.BACKGROUND_SYNC


@dataclass(frozen=True)
class MessageEvent:
    """An out-of-band control message from the host application."""

    message: Union[ControlMessage, str]


@dataclass(frozen=True)
class InstallEvent:
    """Precache static assets for the configured generation."""


@dataclass(frozen=True)
class ActivateEvent:
    """Retire older generations and start serving from this one."""


Event = Union[FetchEvent, SyncEvent, MessageEvent, InstallEvent, ActivateEvent]
