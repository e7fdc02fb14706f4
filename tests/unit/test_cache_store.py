"""
Unit tests for the SQLite author cache store.

Tests cover:
- Open and close lifecycle
- Bucket recreation
- Transactional batch writes
- Point reads and counts
- Ordered snapshot iteration
"""

import os

import pytest

from concepts.authors_server.store import (
    BucketNotFoundError,
    CacheStore,
    StoreIOError,
    StoreNotOpenError,
)


class TestCacheStore:
    """Tests for CacheStore."""

    @pytest.fixture
    async def store(self, cache_file):
        """Create an open store with an empty bucket."""
        store = CacheStore(cache_file)
        await store.open()
        await store.recreate_bucket()
        yield store
        if store.is_open:
            await store.close()

    @pytest.mark.asyncio
    async def test_open_creates_file(self, cache_file):
        """Opening a missing file creates it."""
        store = CacheStore(cache_file)
        assert store.is_open is False

        await store.open()

        assert store.is_open is True
        assert os.path.exists(cache_file)
        await store.close()
        assert store.is_open is False

    @pytest.mark.asyncio
    async def test_open_directory_fails(self, data_dir):
        """A path that cannot hold a database is an I/O error."""
        store = CacheStore(data_dir)

        with pytest.raises(StoreIOError):
            await store.open()
        assert store.is_open is False

    @pytest.mark.asyncio
    async def test_close_twice_fails(self, store):
        """Closing a closed store is reported."""
        await store.close()

        with pytest.raises(StoreNotOpenError):
            await store.close()

    @pytest.mark.asyncio
    async def test_invalid_bucket_name(self, cache_file):
        """Bucket names must be identifiers."""
        with pytest.raises(ValueError):
            CacheStore(cache_file, bucket="author; DROP TABLE x")

    @pytest.mark.asyncio
    async def test_put_and_get(self, store):
        """Written entries can be read back."""
        written = await store.put_batch({"a": b'{"uuid":"a"}', "b": b'{"uuid":"b"}'})

        assert written == 2
        assert await store.get("a") == b'{"uuid":"a"}'
        assert await store.get("missing") is None
        assert await store.count() == 2

    @pytest.mark.asyncio
    async def test_put_overwrites(self, store):
        """Writing an existing key replaces its value."""
        await store.put_batch({"a": b"1"})
        await store.put_batch({"a": b"2"})

        assert await store.get("a") == b"2"
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_failed_batch_is_rolled_back(self, store):
        """A batch with an invalid value leaves nothing behind."""
        await store.put_batch({"kept": b"1"})

        with pytest.raises(StoreIOError):
            await store.put_batch({"a": b"1", "b": object()})

        assert await store.get("a") is None
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_recreate_bucket_empties_it(self, store):
        """Recreating the bucket drops previous entries."""
        await store.put_batch({"a": b"1"})

        await store.recreate_bucket()

        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_missing_bucket(self, cache_file):
        """Reading before the bucket exists is reported."""
        store = CacheStore(cache_file)
        await store.open()
        try:
            with pytest.raises(BucketNotFoundError):
                await store.count()
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_operations_on_closed_store(self, cache_file):
        """Operations on a store that was never opened fail."""
        store = CacheStore(cache_file)

        with pytest.raises(StoreNotOpenError):
            await store.get("a")
        with pytest.raises(StoreNotOpenError):
            await store.put_batch({"a": b"1"})
        with pytest.raises(StoreNotOpenError):
            list(store.iterate())

    @pytest.mark.asyncio
    async def test_iterate_in_key_order(self, store):
        """Iteration yields entries in byte order of their keys."""
        await store.put_batch({"b": b"2", "a": b"1", "B": b"0"})

        assert list(store.iterate()) == [("B", b"0"), ("a", b"1"), ("b", b"2")]

    @pytest.mark.asyncio
    async def test_iterate_reads_a_snapshot(self, store):
        """Writes committed mid-iteration are not seen by the iterator."""
        await store.put_batch({"a": b"1", "c": b"3"})

        rows = store.iterate()
        first = next(rows)
        await store.put_batch({"b": b"2", "d": b"4"})
        rest = list(rows)

        assert first == ("a", b"1")
        assert rest == [("c", b"3")]
        assert await store.count() == 4

    @pytest.mark.asyncio
    async def test_close_interrupts_iteration(self, store):
        """Closing the store ends open iterators with an error."""
        await store.put_batch({"a": b"1", "b": b"2"})
        rows = store.iterate()
        next(rows)

        await store.close()

        with pytest.raises(StoreNotOpenError):
            next(rows)

    @pytest.mark.asyncio
    async def test_reopen_keeps_entries(self, cache_file):
        """Entries survive closing and reopening the file."""
        store = CacheStore(cache_file)
        await store.open()
        await store.recreate_bucket()
        await store.put_batch({"a": b"1"})
        await store.close()

        await store.open()
        try:
            assert await store.get("a") == b"1"
        finally:
            await store.close()
