"""
Service state flags guarded by the shared lock.

Invariants:
    - ready is true only while the cache store is open
    - data_loaded is true only after a full reload committed every batch
    - failed is terminal: once the store failed to open, ready stays false
    - Setters are only called by holders of the shared write lock

How to change safely:
    - Holders of the lock must read the properties, never is_ready() or
      is_data_loaded(), the lock is not re-entrant
"""

from __future__ import annotations

import logging

from .locks import ReadWriteLock

logger = logging.getLogger(__name__)


class StateTracker:
    """The ready / data-loaded flags of one service instance."""

    def __init__(self, lock: ReadWriteLock) -> None:
        self._lock = lock
        self._ready = False
        self._data_loaded = False
        self._failed = False

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def data_loaded(self) -> bool:
        return self._data_loaded

    @property
    def failed(self) -> bool:
        return self._failed

    async def is_ready(self) -> bool:
        """Whether the store is open and reads can be served."""
        async with self._lock.read():
            return self._ready

    async def is_data_loaded(self) -> bool:
        """Whether at least one full reload has completed."""
        async with self._lock.read():
            return self._data_loaded

    def set_ready(self, value: bool) -> None:
        if value and self._failed:
            raise RuntimeError("Cannot become ready after a failed store open")
        self._ready = value

    def set_data_loaded(self, value: bool) -> None:
        self._data_loaded = value

    def mark_failed(self) -> None:
        logger.error("Cache store failed to open, service will stay unavailable")
        self._failed = True
        self._ready = False
        self._data_loaded = False
