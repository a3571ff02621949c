"""Durable FIFO queues of writes that could not reach the network.

Two queues exist, each persisted as a single JSON record in the offline
store of the active cache generation:

==========================  ============================================
Queue                       Record key
==========================  ============================================
``pending-evaluations``     ``/offline-data/pending-evaluations``
``pending-user-updates``    ``/offline-data/pending-user-updates``
==========================  ============================================

Evaluation submissions go to the first queue; user updates and every other
write go to the second. Because the records live under
:data:`~offsync.cache.generations.OFFLINE_DATA_PREFIX` they survive a cache
generation bump; :func:`merge_records` combines two copies of a queue when
both the retired and the current generation hold one.

Store calls are synchronous, so each read-modify-write below completes
without yielding to the event loop.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Mapping
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from offsync.cache.generations import OFFLINE_DATA_PREFIX
from offsync.cache.store import Store
from offsync.exceptions import StoreError
from offsync.models import CacheEntry, OperationKind, PendingOperation, StoreName, SyncConfig

logger = logging.getLogger(__name__)

EVALUATIONS_QUEUE = "pending-evaluations"
USER_UPDATES_QUEUE = "pending-user-updates"

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
"""Methods whose failed requests are diverted to a queue."""

_QUEUE_FOR_KIND = {
    OperationKind.EVALUATION_SUBMIT: EVALUATIONS_QUEUE,
    OperationKind.USER_UPDATE: USER_UPDATES_QUEUE,
    OperationKind.GENERIC: USER_UPDATES_QUEUE,
}

_ID_PREFIX = {
    OperationKind.EVALUATION_SUBMIT: "eval",
    OperationKind.USER_UPDATE: "update",
    OperationKind.GENERIC: "op",
}

_operations = TypeAdapter(list[PendingOperation])


# --- Classification helpers ---


def queue_for(kind: OperationKind) -> str:
    """Name of the queue an operation of *kind* is stored in."""
    return _QUEUE_FOR_KIND[kind]


def classify_write(method: str, path: str, config: Optional[SyncConfig] = None) -> OperationKind:
    """Decide the :class:`~offsync.models.OperationKind` of a write.

    ``POST`` to the evaluation endpoint is an evaluation submission; any
    write at or below a user-data prefix is a user update; everything else
    is generic.
    """
    config = config or SyncConfig()
    if method.upper() == "POST" and path.rstrip("/") == config.evaluation_endpoint.rstrip("/"):
        return OperationKind.EVALUATION_SUBMIT
    for prefix in config.user_update_prefixes:
        prefix = prefix.rstrip("/")
        if path == prefix or path.startswith(prefix + "/"):
            return OperationKind.USER_UPDATE
    return OperationKind.GENERIC


def bearer_token(headers: Mapping[str, str]) -> Optional[str]:
    """Extract the opaque token from an ``Authorization: Bearer`` header."""
    value = headers.get("authorization")
    if not value:
        return None
    scheme, _, token = value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def new_operation_id(kind: OperationKind) -> str:
    """``<prefix>_<epoch-ms>_<random>``, e.g. ``eval_1718000000000_9f2c4e1a7b``."""
    return f"{_ID_PREFIX[kind]}_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def record_key(name: str) -> str:
    return f"{OFFLINE_DATA_PREFIX}{name}"


# --- Record encoding ---


def _encode(key: str, operations: list[PendingOperation]) -> CacheEntry:
    return CacheEntry(
        key=key,
        headers=[("content-type", "application/json")],
        body=_operations.dump_json(operations),
        store_name=StoreName.OFFLINE,
    )


def _decode(entry: CacheEntry) -> list[PendingOperation]:
    try:
        return _operations.validate_json(entry.body)
    except ValidationError as exc:
        raise StoreError(f"Queue record {entry.key} is corrupt: {exc}") from exc


def merge_records(old: CacheEntry, current: CacheEntry) -> CacheEntry:
    """Combine a queue record from a retired generation with the current one.

    Operations from *old* come first since they were enqueued earlier;
    operations already present by id are not duplicated.
    """
    carried = _decode(old)
    seen = {op.id for op in carried}
    merged = carried + [op for op in _decode(current) if op.id not in seen]
    return _encode(current.key, merged)


class MutationQueue:
    """One named queue of :class:`~offsync.models.PendingOperation`.

    Args:
        store: The offline store of the active generation.
        name: :data:`EVALUATIONS_QUEUE` or :data:`USER_UPDATES_QUEUE`.

    Example::

        queue = MutationQueue(storage.offline, EVALUATIONS_QUEUE)
        op = queue.enqueue(OperationKind.EVALUATION_SUBMIT, url, body=payload)
        ...
        queue.remove(op.id)
    """

    def __init__(self, store: Store, name: str) -> None:
        self.store = store
        self.name = name
        self.key = record_key(name)

    def list(self) -> list[PendingOperation]:
        """All pending operations in enqueue order."""
        entry = self.store.get(self.key)
        if entry is None:
            return []
        return _decode(entry)

    def _save(self, operations: list[PendingOperation]) -> None:
        if operations:
            self.store.put(_encode(self.key, operations))
        else:
            self.store.delete(self.key)

    def enqueue(
        self,
        kind: OperationKind,
        endpoint: str,
        *,
        method: str = "POST",
        body: bytes = b"",
        auth_token: Optional[str] = None,
        content_type: str = "application/json",
    ) -> PendingOperation:
        """Append a new operation and persist the queue.

        Raises:
            StoreError: If the queue record cannot be written.
        """
        operation = PendingOperation(
            id=new_operation_id(kind),
            kind=kind,
            endpoint=endpoint,
            method=method.upper(),
            body=body,
            auth_token=auth_token,
            content_type=content_type,
        )
        operations = self.list()
        operations.append(operation)
        self._save(operations)
        logger.info("Queued %s %s for %s %s", kind.value, operation.id, operation.method, endpoint)
        return operation

    def get(self, operation_id: str) -> Optional[PendingOperation]:
        for operation in self.list():
            if operation.id == operation_id:
                return operation
        return None

    def remove(self, operation_id: str) -> bool:
        """Drop an operation after its replay succeeded."""
        operations = self.list()
        remaining = [op for op in operations if op.id != operation_id]
        if len(remaining) == len(operations):
            return False
        self._save(remaining)
        return True

    def mark_failed(self, operation_id: str, error: str) -> Optional[PendingOperation]:
        """Record a failed replay; the operation keeps its position."""
        operations = self.list()
        for index, operation in enumerate(operations):
            if operation.id == operation_id:
                updated = operation.model_copy(
                    update={"attempts": operation.attempts + 1, "last_error": error}
                )
                operations[index] = updated
                self._save(operations)
                return updated
        return None

    def clear(self) -> int:
        """Discard every pending operation and return how many there were."""
        count = len(self.list())
        self.store.delete(self.key)
        return count

    def __len__(self) -> int:
        return len(self.list())

    def __repr__(self) -> str:
        return f"MutationQueue(name={self.name!r}, store={self.store.name!r})"
