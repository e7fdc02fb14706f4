"""
Authors cache service facade.

AuthorService wires the cache components together and is the only object
the HTTP adapter and the process entry point talk to:

    TermSource --> ReloadCoordinator --> CacheStore <-- StreamExporter
                          |                  ^
                          v                  |
                    OverrideMerger ----------+

All components share one ReadWriteLock and one StateTracker.

Invariants:
    - At most one reload runs at a time, later triggers queue behind it
    - Background reload failures are logged, never raised to the trigger caller
    - shutdown() never waits for the shared lock

How to change safely:
    - Keep reload scheduling here, the coordinator assumes it is not re-entered
    - Anything that must survive shutdown() has to live outside this object
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from ..model import Author
from ..source.base import TermSource
from ..store.cache_store import DEFAULT_BUCKET, CacheStore, StoreNotOpenError
from .curated import OverrideMerger
from .export import ExportStream, ServiceUnavailableError, StreamExporter
from .locks import ReadWriteLock
from .reload import ReloadCoordinator, ReloadResult
from .state import StateTracker

logger = logging.getLogger(__name__)

__all__ = ["AuthorService", "ServiceUnavailableError"]


class AuthorService:
    """Cache of TME authors with background reloads.

    Example:
        >>> service = AuthorService(source, "Authors", 10000, "cache.db", base_url)
        >>> service.start()
        >>> async with await service.list_all() as stream:
        ...     async for chunk in stream:
        ...         ...
        >>> await service.shutdown()
    """

    def __init__(
        self,
        source: TermSource,
        taxonomy: str,
        page_size: int,
        cache_file: str,
        base_url: str,
        curated_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        open_timeout_ms: int = 1000,
        bucket: str = DEFAULT_BUCKET,
    ) -> None:
        """Initialize the service.

        Args:
            source: Primary term source
            taxonomy: TME taxonomy name
            page_size: Cursor stride of the reload loop
            cache_file: Path of the cache database
            base_url: Public base URL used to build author links
            curated_url: Curated dataset URL; None disables the overlay
            http_client: Client used for the curated dataset
            open_timeout_ms: Maximum time to wait for the cache file lock
            bucket: Name of the cache bucket
        """
        if curated_url and http_client is None:
            raise ValueError("http_client is required when curated_url is set")

        self.source = source
        self.lock = ReadWriteLock()
        self.state = StateTracker(self.lock)
        self.store = CacheStore(cache_file, bucket=bucket, open_timeout_ms=open_timeout_ms)
        self.merger = (
            OverrideMerger(self.store, self.lock, curated_url, http_client)
            if curated_url and http_client is not None
            else None
        )
        self.coordinator = ReloadCoordinator(
            source,
            self.store,
            self.state,
            self.lock,
            taxonomy,
            page_size,
            merger=self.merger,
        )
        self.exporter = StreamExporter(self.store, self.state, self.lock, base_url)
        self._reload_guard = asyncio.Lock()
        self._tasks: set[asyncio.Task[ReloadResult | None]] = set()
        self._closed = False

    def start(self) -> asyncio.Task[ReloadResult | None]:
        """Schedule the initial load and return immediately."""
        logger.info("Starting authors service")
        return self.trigger_reload()

    async def reload(self) -> ReloadResult:
        """Run one full reload and wait for it.

        Raises:
            StoreIOError: If the store cannot be opened or a batch fails
            SourceFetchError: If the primary source fails
        """
        async with self._reload_guard:
            return await self.coordinator.run()

    def trigger_reload(self) -> asyncio.Task[ReloadResult | None]:
        """Start a reload in the background.

        Returns:
            The task running the reload; it never raises
        """
        task = asyncio.create_task(self._background_reload())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _background_reload(self) -> ReloadResult | None:
        try:
            return await self.reload()
        except asyncio.CancelledError:
            raise
        except StoreNotOpenError as e:
            if self._closed:
                logger.info(f"Reload interrupted by shutdown: {e}")
            else:
                logger.error(f"Error reloading authors: {e}", exc_info=True)
        except Exception as e:
            logger.error(f"Error reloading authors: {e}", exc_info=True)
        return None

    async def list_all(self) -> ExportStream:
        """Stream all authors as newline-delimited JSON."""
        return await self.exporter.export_all()

    async def list_ids(self) -> ExportStream:
        """Stream {"ID": uuid} lines."""
        return await self.exporter.export_ids()

    async def list_links(self) -> ExportStream:
        """Stream one JSON array of author links."""
        return await self.exporter.export_links()

    async def get_by_id(self, uuid: str) -> Author | None:
        """Get one author by UUID."""
        return await self.exporter.get(uuid)

    async def count(self) -> int:
        """Number of cached authors."""
        return await self.exporter.count()

    async def is_ready(self) -> bool:
        return await self.state.is_ready()

    async def is_data_loaded(self) -> bool:
        return await self.state.is_data_loaded()

    async def shutdown(self) -> None:
        """Stop background reloads and close the store.

        In-flight reads and reloads fail with StoreNotOpenError.
        """
        logger.info("Shutting down authors service")
        self._closed = True
        self.state.set_data_loaded(False)
        self.state.set_ready(False)

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()

        if self.store.is_open:
            await self.store.close()
        else:
            logger.warning("Cache store was not open at shutdown")

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.source.close()
        logger.info("Authors service stopped")
