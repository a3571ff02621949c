"""Persistent response caching for offsync.

This package holds the three layers of the cache:

* :mod:`~offsync.cache.store` -- :class:`Store`, a named, insertion-ordered
  mapping of :class:`~offsync.models.CacheEntry` backed by
  :class:`diskcache.Index`, with FIFO compaction for bounded stores.
* :mod:`~offsync.cache.generations` -- :class:`CacheStorage`, the static,
  dynamic and offline stores of one cache generation and its activation.
* :mod:`~offsync.cache.strategies` -- :class:`StrategyExecutor`, the five
  caching strategies, with the fallback policy from
  :mod:`~offsync.cache.fallbacks`.
"""

from offsync.cache.fallbacks import fallback_response, queued_response
from offsync.cache.generations import OFFLINE_DATA_PREFIX, CacheStorage
from offsync.cache.store import Store, cache_key, make_key
from offsync.cache.strategies import StrategyExecutor

__all__ = [
    "OFFLINE_DATA_PREFIX",
    "CacheStorage",
    "Store",
    "StrategyExecutor",
    "cache_key",
    "fallback_response",
    "make_key",
    "queued_response",
]
