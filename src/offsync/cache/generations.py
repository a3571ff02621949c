"""Cache generations: the static, dynamic and offline stores of one version.

A generation is identified by ``<prefix>-<generation>`` (for example
``offsync-v1``) and owns three stores under a shared root directory::

    <root>/offsync-static-v1/
    <root>/offsync-dynamic-v1/    (bounded, FIFO)
    <root>/offsync-offline-v1/

Activating a generation deletes every other ``<prefix>-*`` store directory
wholesale. Records under :data:`OFFLINE_DATA_PREFIX` in a retired offline
store are carried into the current offline store first, so that a version
bump does not drop writes still waiting for replay.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from offsync.cache.store import Store
from offsync.exceptions import StoreError
from offsync.models import CacheConfig, CacheEntry, StoreName

logger = logging.getLogger(__name__)

OFFLINE_DATA_PREFIX = "/offline-data/"
"""Key prefix of records in the offline store that survive activation."""

MergeRecords = Callable[[CacheEntry, CacheEntry], CacheEntry]
"""Combines an offline record from a retired store with the current one."""


class CacheStorage:
    """The explicit state object for one cache generation.

    Constructed on process start (or when a new generation is installed),
    activated with :meth:`activate`, and torn down with :meth:`close`.

    Args:
        root: Directory that holds every generation's stores.
        prefix: Store name prefix.
        generation: Generation identifier, e.g. ``"v1"``.
        max_dynamic_entries: Entry bound of the dynamic store.
    """

    def __init__(
        self,
        root: str | Path,
        prefix: str = "offsync",
        generation: str = "v1",
        max_dynamic_entries: int = 50,
    ) -> None:
        self.root = Path(root)
        self.prefix = prefix
        self.generation = generation
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"Cannot create store root {self.root}: {exc}") from exc
        self._name_re = re.compile(rf"^{re.escape(prefix)}-(static|dynamic|offline)-(.+)$")
        self._stores = {
            StoreName.STATIC: self._open(StoreName.STATIC),
            StoreName.DYNAMIC: self._open(StoreName.DYNAMIC, max_dynamic_entries),
            StoreName.OFFLINE: self._open(StoreName.OFFLINE),
        }

    @classmethod
    def from_config(cls, root: str | Path, config: CacheConfig) -> CacheStorage:
        return cls(
            root,
            prefix=config.prefix,
            generation=config.generation,
            max_dynamic_entries=config.max_dynamic_entries,
        )

    def _open(self, name: StoreName, max_entries: Optional[int] = None) -> Store:
        store_name = self.store_name(name)
        return Store(store_name, self.root / store_name, max_entries=max_entries)

    @property
    def version(self) -> str:
        """Generation identifier reported to the host application."""
        return f"{self.prefix}-{self.generation}"

    def store_name(self, name: StoreName) -> str:
        return f"{self.prefix}-{name.value}-{self.generation}"

    def store(self, name: StoreName) -> Store:
        return self._stores[name]

    @property
    def static(self) -> Store:
        return self._stores[StoreName.STATIC]

    @property
    def dynamic(self) -> Store:
        return self._stores[StoreName.DYNAMIC]

    @property
    def offline(self) -> Store:
        return self._stores[StoreName.OFFLINE]

    def list_store_dirs(self) -> list[str]:
        """Names of every store directory under the root, any generation."""
        try:
            return sorted(
                p.name for p in self.root.iterdir() if p.is_dir() and self._name_re.match(p.name)
            )
        except OSError as exc:
            raise StoreError(f"Cannot list stores in {self.root}: {exc}") from exc

    def activate(self, merge: Optional[MergeRecords] = None) -> list[str]:
        """Retire every other generation and compact the dynamic store.

        Args:
            merge: Called when a carried offline record collides with one
                already in the current offline store; its result is kept.
                Without it the current record wins.

        Returns:
            Names of the retired store directories.
        """
        current = {store.name for store in self._stores.values()}
        retired: list[str] = []
        for dirname in self.list_store_dirs():
            if dirname in current:
                continue
            match = self._name_re.match(dirname)
            old = Store(dirname, self.root / dirname)
            try:
                if match and match.group(1) == StoreName.OFFLINE.value:
                    self._carry_offline_data(old, merge)
                old.destroy()
            except StoreError as exc:
                logger.error("Could not retire store %s: %s", dirname, exc)
                old.close()
                continue
            logger.info("Deleted old cache %s", dirname)
            retired.append(dirname)

        try:
            self.dynamic.compact()
        except StoreError as exc:
            logger.warning("Compaction of %s failed: %s", self.dynamic.name, exc)
        return retired

    def _carry_offline_data(self, old: Store, merge: Optional[MergeRecords]) -> None:
        for key in old.keys():
            if not key.startswith(OFFLINE_DATA_PREFIX):
                continue
            record = old.get(key)
            if record is None:
                continue
            existing = self.offline.get(key)
            if existing is not None:
                if merge is None:
                    continue
                record = merge(record, existing)
            self.offline.put(record.model_copy(update={"store_name": StoreName.OFFLINE}))
            logger.info("Carried %s forward from %s", key, old.name)

    def stats(self) -> dict[str, int]:
        """Entry count per store of this generation."""
        return {store.name: len(store) for store in self._stores.values()}

    def close(self) -> None:
        for store in self._stores.values():
            store.close()
