"""
Asyncio readers-writer lock.

Many readers may hold the lock together; a writer holds it alone. Waiters
are served in arrival order and a waiting writer blocks readers that arrive
after it, so a stream of readers cannot starve a reload forever (a reader
that never releases still can).

Invariants:
    - Never a writer together with readers, never two writers
    - Release is synchronous, so it is safe in finally blocks of cancelled tasks
    - A waiter cancelled before being granted leaves no trace

How to change safely:
    - The lock is not re-entrant: a holder must not acquire it again
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class ReadWriteLock:
    """FIFO, writer-preferring readers-writer lock for one event loop.

    Example:
        >>> lock = ReadWriteLock()
        >>> async with lock.read():
        ...     ...  # shared access
        >>> async with lock.write():
        ...     ...  # exclusive access
    """

    def __init__(self) -> None:
        self._readers = 0
        self._writer = False
        self._waiters: deque[tuple[bool, asyncio.Future[None]]] = deque()

    @property
    def readers(self) -> int:
        """Number of readers currently holding the lock."""
        return self._readers

    @property
    def write_locked(self) -> bool:
        """Whether a writer currently holds the lock."""
        return self._writer

    async def acquire_read(self) -> None:
        """Acquire the lock for shared access."""
        if not self._writer and not self._waiters:
            self._readers += 1
            return
        await self._wait(is_writer=False)

    def release_read(self) -> None:
        """Release shared access."""
        if self._readers <= 0:
            raise RuntimeError("release_read() called without a reader")
        self._readers -= 1
        self._wake()

    async def acquire_write(self) -> None:
        """Acquire the lock for exclusive access."""
        if not self._writer and self._readers == 0 and not self._waiters:
            self._writer = True
            return
        await self._wait(is_writer=True)

    def release_write(self) -> None:
        """Release exclusive access."""
        if not self._writer:
            raise RuntimeError("release_write() called without a writer")
        self._writer = False
        self._wake()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        """Hold shared access for the duration of the block."""
        await self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        """Hold exclusive access for the duration of the block."""
        await self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    async def _wait(self, is_writer: bool) -> None:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        entry = (is_writer, future)
        self._waiters.append(entry)
        try:
            await future
        except asyncio.CancelledError:
            if future.done() and not future.cancelled():
                # Granted just before the cancellation landed: give it back.
                if is_writer:
                    self.release_write()
                else:
                    self.release_read()
            else:
                if entry in self._waiters:
                    self._waiters.remove(entry)
                self._wake()
            raise

    def _wake(self) -> None:
        while self._waiters:
            is_writer, future = self._waiters[0]
            if future.done():
                self._waiters.popleft()
                continue
            if is_writer:
                if self._writer or self._readers:
                    return
                self._waiters.popleft()
                self._writer = True
                future.set_result(None)
                return
            if self._writer:
                return
            self._waiters.popleft()
            self._readers += 1
            future.set_result(None)
