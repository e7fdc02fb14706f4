"""
Unit tests for the asyncio readers-writer lock.

Tests cover:
- Shared and exclusive access
- Writer preference over later readers
- FIFO grants
- Cancellation of waiters
"""

import asyncio

import pytest

from concepts.authors_server.cache import ReadWriteLock


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


class TestReadWriteLock:
    """Tests for ReadWriteLock."""

    @pytest.mark.asyncio
    async def test_readers_share(self):
        """Several readers hold the lock together."""
        lock = ReadWriteLock()

        await lock.acquire_read()
        await lock.acquire_read()

        assert lock.readers == 2
        lock.release_read()
        lock.release_read()
        assert lock.readers == 0

    @pytest.mark.asyncio
    async def test_writer_waits_for_readers(self):
        """A writer is granted once the last reader leaves."""
        lock = ReadWriteLock()
        await lock.acquire_read()

        writer = asyncio.create_task(lock.acquire_write())
        await _settle()
        assert not writer.done()

        lock.release_read()
        await writer
        assert lock.write_locked is True
        lock.release_write()

    @pytest.mark.asyncio
    async def test_waiting_writer_blocks_new_readers(self):
        """Readers arriving after a waiting writer queue behind it."""
        lock = ReadWriteLock()
        order = []
        await lock.acquire_read()

        async def write():
            async with lock.write():
                order.append("writer")

        async def read():
            async with lock.read():
                order.append("reader")

        writer = asyncio.create_task(write())
        await _settle()
        reader = asyncio.create_task(read())
        await _settle()
        assert order == []

        lock.release_read()
        await asyncio.gather(writer, reader)
        assert order == ["writer", "reader"]

    @pytest.mark.asyncio
    async def test_readers_after_writer_are_granted_together(self):
        """Consecutive queued readers are released as one group."""
        lock = ReadWriteLock()
        await lock.acquire_write()

        readers = [asyncio.create_task(lock.acquire_read()) for _ in range(3)]
        await _settle()
        lock.release_write()
        await asyncio.gather(*readers)

        assert lock.readers == 3

    @pytest.mark.asyncio
    async def test_writers_are_exclusive(self):
        """Two writers never hold the lock at the same time."""
        lock = ReadWriteLock()
        active = 0
        peak = 0

        async def write():
            nonlocal active, peak
            async with lock.write():
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0)
                active -= 1

        await asyncio.gather(*(write() for _ in range(5)))
        assert peak == 1

    @pytest.mark.asyncio
    async def test_cancelled_waiter_leaves_no_trace(self):
        """Cancelling a queued writer lets later readers through."""
        lock = ReadWriteLock()
        await lock.acquire_read()

        writer = asyncio.create_task(lock.acquire_write())
        await _settle()
        writer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await writer

        await asyncio.wait_for(lock.acquire_read(), timeout=1)
        assert lock.readers == 2
        assert lock.write_locked is False

    @pytest.mark.asyncio
    async def test_release_without_holder(self):
        """Releasing an unheld lock is an error."""
        lock = ReadWriteLock()

        with pytest.raises(RuntimeError):
            lock.release_read()
        with pytest.raises(RuntimeError):
            lock.release_write()

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_error(self):
        """The lock is released when the block raises."""
        lock = ReadWriteLock()

        with pytest.raises(ValueError):
            async with lock.write():
                raise ValueError("boom")

        assert lock.write_locked is False
