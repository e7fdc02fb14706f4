"""
Streaming reads of the author cache.

Listing endpoints stream the whole bucket. Each stream is produced by its
own task that holds the shared read lock from the moment the stream is
handed out until production ends or the consumer closes it, so a reload
cannot rebuild the bucket under a running traversal.

Invariants:
    - A stream sees the entries of one completed reload, in key order
    - The read lock is released exactly once per stream
    - At most one chunk is buffered ahead of the consumer

How to change safely:
    - Consumers must close streams they stop reading (async with / aclose()),
      an abandoned stream keeps the read lock and blocks reloads
    - Renderers must close the store iterator they wrap, it owns a snapshot
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import closing

from ..model import Author, AuthorId, AuthorLink
from ..store.cache_store import CacheStore
from .locks import ReadWriteLock
from .state import StateTracker

logger = logging.getLogger(__name__)

_EOF = object()


class ServiceUnavailableError(Exception):
    """The cache store is not open, reads cannot be served."""

    pass


class _Failure:
    def __init__(self, error: BaseException) -> None:
        self.error = error


class ExportStream:
    """Async iterator of byte chunks produced under the shared read lock.

    Example:
        >>> async with await exporter.export_all() as stream:
        ...     async for chunk in stream:
        ...         response.write(chunk)
    """

    def __init__(
        self,
        chunks: Iterable[bytes] | None = None,
        release: Callable[[], None] | None = None,
    ) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=1)
        self._release = release
        self._done = chunks is None
        self._producer: asyncio.Task[None] | None = None
        if chunks is not None:
            self._producer = asyncio.create_task(self._produce(chunks))
        else:
            self._release_lock()

    @classmethod
    def empty(cls) -> ExportStream:
        """A stream with no chunks."""
        return cls()

    async def _produce(self, chunks: Iterable[bytes]) -> None:
        try:
            for chunk in chunks:
                await self._queue.put(chunk)
            await self._queue.put(_EOF)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Export stream failed: {e}")
            await self._queue.put(_Failure(e))
        finally:
            close = getattr(chunks, "close", None)
            if close is not None:
                close()
            self._release_lock()

    def _release_lock(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()

    def __aiter__(self) -> ExportStream:
        return self

    async def __anext__(self) -> bytes:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _EOF:
            self._done = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._done = True
            raise item.error
        return item  # type: ignore[return-value]

    async def read_all(self) -> bytes:
        """Consume the rest of the stream into one buffer."""
        return b"".join([chunk async for chunk in self])

    async def aclose(self) -> None:
        """Stop production and release the read lock."""
        self._done = True
        producer, self._producer = self._producer, None
        if producer is not None and not producer.done():
            producer.cancel()
            try:
                await producer
            except asyncio.CancelledError:
                pass
        self._release_lock()

    async def __aenter__(self) -> ExportStream:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


def _render_values(rows: Iterator[tuple[str, bytes]]) -> Iterator[bytes]:
    with closing(rows):
        for _, value in rows:
            yield value + b"\n"


def _render_ids(rows: Iterator[tuple[str, bytes]]) -> Iterator[bytes]:
    with closing(rows):
        for key, _ in rows:
            yield AuthorId(uuid=key).model_dump_json(by_alias=True).encode("utf-8") + b"\n"


def _render_links(rows: Iterator[tuple[str, bytes]], base_url: str) -> Iterator[bytes]:
    with closing(rows):
        yield b"["
        separator = b""
        for key, _ in rows:
            link = AuthorLink(api_url=f"{base_url}/{key}")
            yield separator + link.model_dump_json(by_alias=True).encode("utf-8")
            separator = b","
        yield b"]"


class StreamExporter:
    """Read side of the author cache.

    Attributes:
        store: Cache store to read from
        state: Service state flags
        lock: Shared readers-writer lock
        base_url: Public base URL used to build author links
    """

    def __init__(
        self,
        store: CacheStore,
        state: StateTracker,
        lock: ReadWriteLock,
        base_url: str,
    ) -> None:
        self.store = store
        self.state = state
        self.lock = lock
        self.base_url = base_url.rstrip("/")

    async def _open_stream(
        self, render: Callable[[Iterator[tuple[str, bytes]]], Iterator[bytes]]
    ) -> ExportStream:
        await self.lock.acquire_read()
        if not self.state.ready:
            self.lock.release_read()
            raise ServiceUnavailableError("Service Unavailable")
        if not self.state.data_loaded:
            self.lock.release_read()
            return ExportStream.empty()
        return ExportStream(render(self.store.iterate()), release=self.lock.release_read)

    async def export_all(self) -> ExportStream:
        """Stream every stored author as newline-delimited JSON.

        Raises:
            ServiceUnavailableError: If the store is not open
        """
        return await self._open_stream(_render_values)

    async def export_ids(self) -> ExportStream:
        """Stream {"ID": uuid} lines for every stored author.

        Raises:
            ServiceUnavailableError: If the store is not open
        """
        return await self._open_stream(_render_ids)

    async def export_links(self) -> ExportStream:
        """Stream one JSON array of author links.

        Raises:
            ServiceUnavailableError: If the store is not open
        """
        return await self._open_stream(lambda rows: _render_links(rows, self.base_url))

    async def get(self, key: str) -> Author | None:
        """Get one author.

        Args:
            key: Author UUID

        Returns:
            The author, or None if absent or not loaded yet

        Raises:
            ServiceUnavailableError: If the store is not open
            EntityDecodeError: If the stored entry is not a valid author
        """
        async with self.lock.read():
            if not self.state.ready:
                raise ServiceUnavailableError("Service Unavailable")
            if not self.state.data_loaded:
                return None
            value = await self.store.get(key)
        if value is None:
            return None
        return Author.from_json(value)

    async def count(self) -> int:
        """Number of cached authors, 0 until the first reload completed.

        Raises:
            ServiceUnavailableError: If the store is not open
        """
        async with self.lock.read():
            if not self.state.ready:
                raise ServiceUnavailableError("Service Unavailable")
            if not self.state.data_loaded:
                return 0
            return await self.store.count()
