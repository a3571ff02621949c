"""Named, durable key -> :class:`~offsync.models.CacheEntry` stores.

Each :class:`Store` is a :class:`diskcache.Index` living in its own
directory. ``Index`` keeps keys in insertion order and never culls, so:

* :meth:`Store.keys` lists entries oldest-first;
* writing a key again is a delete followed by an insert, which moves the
  entry to the end of the order;
* a store with ``max_entries`` runs a FIFO compaction pass after every
  insertion, deleting the earliest ``count - max_entries`` keys. Reads
  never reorder anything, so this is insertion-order eviction, not LRU;
* unbounded stores only fail when the disk does, and that surfaces as
  :class:`~offsync.exceptions.StoreError`.

Store and queue calls are synchronous SQLite operations and run on the
calling thread, event loop included. Each read or write is one atomic
step with no await inside it, so a slow disk blocks the loop for the
duration of that call. Hosts on slow or network-mounted disks should
keep ``storage_root`` local.

The module also owns the conversions between :class:`httpx.Response` and
:class:`~offsync.models.CacheEntry` and the canonical cache key.
"""

from __future__ import annotations

import logging
import shutil
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import diskcache
import httpx
from pydantic import ValidationError

from offsync.exceptions import StoreError
from offsync.models import CacheEntry, StoreName

logger = logging.getLogger(__name__)

SOURCE_EXTENSION = "offsync.source"
"""Response extension naming where a response came from: cache or fallback."""

# Framing headers describe the wire encoding, not the decoded body we keep.
_UNSTORED_HEADERS = frozenset(
    {"content-encoding", "content-length", "transfer-encoding", "connection", "keep-alive"}
)


def make_key(method: str, url: httpx.URL | str) -> str:
    """Canonical request identity: ``"<METHOD> <absolute-url>"`` without fragment."""
    absolute = str(httpx.URL(url)).split("#", 1)[0]
    return f"{method.upper()} {absolute}"


def cache_key(request: httpx.Request) -> str:
    return make_key(request.method, request.url)


def entry_from_response(
    key: str, response: httpx.Response, store_name: StoreName
) -> CacheEntry:
    """Snapshot a fully read *response* as a :class:`CacheEntry`."""
    headers = [
        (name, value)
        for name, value in response.headers.multi_items()
        if name.lower() not in _UNSTORED_HEADERS
    ]
    return CacheEntry(
        key=key,
        status_code=response.status_code,
        headers=headers,
        body=response.content,
        store_name=store_name,
    )


def response_from_entry(entry: CacheEntry, request: httpx.Request) -> httpx.Response:
    """Rebuild an :class:`httpx.Response` for *request* from a stored entry."""
    return httpx.Response(
        status_code=entry.status_code,
        headers=entry.headers,
        content=entry.body,
        request=request,
        extensions={SOURCE_EXTENSION: "cache"},
    )


class Store:
    """A named, persistent, insertion-ordered mapping of cache entries.

    Args:
        name: Store name, e.g. ``offsync-dynamic-v1``.
        directory: Directory holding the store's SQLite database.
        max_entries: Entry bound enforced by FIFO compaction after each
            insertion; ``None`` leaves the store unbounded.
    """

    def __init__(
        self, name: str, directory: str | Path, max_entries: Optional[int] = None
    ) -> None:
        self.name = name
        self.directory = Path(directory)
        self.max_entries = max_entries
        with self._errors("open"):
            self._index = diskcache.Index(str(self.directory))

    @contextmanager
    def _errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except (sqlite3.Error, OSError, diskcache.Timeout) as exc:
            raise StoreError(f"Store '{self.name}' failed to {action}: {exc}") from exc

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry stored under *key*, or ``None``."""
        with self._errors("read"):
            raw = self._index.get(key)
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate(raw)
        except ValidationError as exc:
            raise StoreError(f"Store '{self.name}' holds a corrupt entry for {key}") from exc

    def put(self, entry: CacheEntry) -> None:
        """Insert *entry*, replacing any entry with the same key.

        For bounded stores a compaction pass follows; a failure during that
        pass is logged and does not undo the write.
        """
        with self._errors("write"):
            self._index.pop(entry.key, None)
            self._index[entry.key] = entry.model_dump()
        if self.max_entries is not None:
            try:
                self.compact()
            except StoreError as exc:
                logger.warning("Compaction of %s failed: %s", self.name, exc)

    def delete(self, key: str) -> bool:
        """Remove *key*; returns whether an entry was removed."""
        with self._errors("delete"):
            return self._index.pop(key, None) is not None

    def keys(self) -> list[str]:
        """All keys, oldest insertion first."""
        with self._errors("list keys"):
            return list(self._index.keys())

    def compact(self) -> int:
        """Evict the oldest entries until the store is within ``max_entries``.

        Returns:
            The number of evicted entries.
        """
        if self.max_entries is None:
            return 0
        keys = self.keys()
        excess = len(keys) - self.max_entries
        if excess <= 0:
            return 0
        with self._errors("evict"):
            for key in keys[:excess]:
                self._index.pop(key, None)
        logger.info("Evicted %d old entries from %s", excess, self.name)
        return excess

    def clear(self) -> int:
        """Remove every entry and return how many there were."""
        with self._errors("clear"):
            count = len(self._index)
            self._index.clear()
        return count

    def close(self) -> None:
        """Release the underlying database connection."""
        self._index.cache.close()

    def destroy(self) -> None:
        """Close the store and delete its directory wholesale."""
        self.close()
        with self._errors("delete directory"):
            shutil.rmtree(self.directory, ignore_errors=False)

    def __len__(self) -> int:
        with self._errors("count"):
            return len(self._index)

    def __contains__(self, key: object) -> bool:
        with self._errors("read"):
            return key in self._index

    def __repr__(self) -> str:
        return f"Store(name={self.name!r}, max_entries={self.max_entries!r})"
