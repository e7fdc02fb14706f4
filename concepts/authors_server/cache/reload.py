"""
Full reload of the author cache.

The ReloadCoordinator rebuilds the cache from the primary source:
- Opens the store (first run) and recreates the bucket
- Fetches pages from the source, transforming each page into authors
- Hands each page to a batch writer task that commits it transactionally
- Waits for every batch to be committed before reporting completion
- Runs the curated overlay, then marks the data as loaded

Invariants:
    - data_loaded is false from the start of a run until every batch of that
      run has been committed and the overlay has run
    - The cursor advances by the page size, not by the number of terms returned
    - A fetch failure aborts the run; batches already committed stay in the
      store and data_loaded stays false
    - A store open failure is terminal for the service

How to change safely:
    - Keep the drain barrier: the writer must be awaited on every exit path
    - Never hold the write lock across a source fetch
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from ..model import Author
from ..source.base import TermSource
from ..store.cache_store import CacheStore, StoreIOError
from ..transform.transformer import transform_author
from .curated import CuratedFetchError, OverrideMerger
from .locks import ReadWriteLock
from .state import StateTracker

logger = logging.getLogger(__name__)

_END_OF_PAGES = None


class ReloadState(Enum):
    """Lifecycle of the reload coordinator."""

    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass
class ReloadResult:
    """Outcome of a successful reload.

    Attributes:
        pages: Number of non-empty pages fetched
        stored: Number of authors committed from the primary source
        merged: Number of curated records overlaid (None if no overlay ran)
    """

    pages: int
    stored: int
    merged: int | None = None


class ReloadCoordinator:
    """Drives full rebuilds of the author cache.

    Thread safety:
        run() is not re-entrant; the service serializes runs.

    Example:
        >>> coordinator = ReloadCoordinator(source, store, state, lock, "Authors", 10000)
        >>> result = await coordinator.run()
        >>> print(f"Stored {result.stored} authors")
    """

    def __init__(
        self,
        source: TermSource,
        store: CacheStore,
        state: StateTracker,
        lock: ReadWriteLock,
        taxonomy: str,
        page_size: int,
        merger: OverrideMerger | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            source: Primary paginated source
            store: Cache store to rebuild
            state: Service state flags
            lock: Shared readers-writer lock
            taxonomy: TME taxonomy name used to derive identifiers
            page_size: Cursor stride between page fetches
            merger: Curated overlay to run after each successful reload
        """
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.source = source
        self.store = store
        self.state = state
        self.lock = lock
        self.taxonomy = taxonomy
        self.page_size = page_size
        self.merger = merger
        self.status = ReloadState.NOT_LOADED

    async def run(self) -> ReloadResult:
        """Run one full reload.

        Returns:
            ReloadResult of the run

        Raises:
            StoreIOError: If the store cannot be opened or a batch write fails
            SourceFetchError: If the primary source fails
        """
        if self.status == ReloadState.FAILED:
            raise StoreIOError("Cache store failed to open, reload refused")

        logger.info("Loading DB...")
        await self._prepare_store()
        self.status = ReloadState.LOADING

        queue: asyncio.Queue[list[Author] | None] = asyncio.Queue()
        writer = asyncio.create_task(self._write_batches(queue))
        pages = 0
        try:
            cursor = 0
            while True:
                terms = await self.source.fetch_page(cursor)
                if not terms:
                    logger.info("Finished fetching authors from TME. Waiting for batch writer.")
                    break
                queue.put_nowait([transform_author(term, self.taxonomy) for term in terms])
                pages += 1
                cursor += self.page_size
        except Exception as e:
            logger.error(f"Reload aborted while fetching authors: {e}", extra={"cursor": cursor})
            raise
        finally:
            queue.put_nowait(_END_OF_PAGES)
            await asyncio.wait({writer})

        stored, failed_batches = writer.result()
        if failed_batches:
            raise StoreIOError(f"{failed_batches} batches failed to commit during reload")

        result = ReloadResult(pages=pages, stored=stored)
        if self.merger is not None:
            try:
                merge = await self.merger.merge()
                result.merged = merge.merged + merge.synthesized
            except (CuratedFetchError, StoreIOError) as e:
                logger.error(f"Curated authors not merged: {e}")

        async with self.lock.write():
            if self.state.ready:
                self.state.set_data_loaded(True)
        self.status = ReloadState.LOADED
        logger.info(
            "Finished loading authors",
            extra={"pages": result.pages, "stored": result.stored, "merged": result.merged},
        )
        return result

    async def _prepare_store(self) -> None:
        async with self.lock.write():
            self.state.set_data_loaded(False)
            if not self.store.is_open:
                try:
                    await self.store.open()
                except StoreIOError:
                    self.state.mark_failed()
                    self.status = ReloadState.FAILED
                    raise
            await self.store.recreate_bucket()
            self.state.set_ready(True)

    async def _write_batches(self, queue: asyncio.Queue[list[Author] | None]) -> tuple[int, int]:
        stored = 0
        failed = 0
        while True:
            authors = await queue.get()
            if authors is _END_OF_PAGES:
                break
            logger.info(f"Processing batch of {len(authors)} authors.")
            entries = {author.uuid: author.to_json() for author in authors}
            try:
                async with self.lock.write():
                    stored += await self.store.put_batch(entries)
            except StoreIOError as e:
                failed += 1
                logger.error(f"ERROR storing to cache: {e}")
        logger.info("Finished processing all authors.")
        return stored, failed
