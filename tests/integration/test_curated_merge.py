"""
Integration tests for the curated author overlay.

Tests cover:
- Overlay onto authors loaded from TME
- Synthesis of authors TME does not know
- Idempotency of the merge
- Per-record failures
- Curated fetch failures
"""

import asyncio
import json

import httpx
import pytest

from concepts.authors_server.cache import (
    AuthorService,
    CuratedFetchError,
    OverrideMerger,
    ReadWriteLock,
)
from concepts.authors_server.model import Author
from concepts.authors_server.source import InMemoryTermSource, Term
from concepts.authors_server.store import CacheStore, StoreIOError
from concepts.authors_server.transform import build_tme_identifier, derive_uuid

BERTHA_URL = "http://bertha.test/authors"
BOB_UUID = "be2e7e2b-0fa2-3969-a69b-74c46e754032"
TERRY_UUID = "e807f1fc-f82d-332f-9bb0-18ca6738a19f"

TERRY = {
    "name": "Terry",
    "email": "terry@orange.com",
    "twitterhandle": "@terryorange",
    "facebookprofile": "/terryorange",
    "linkedinprofile": "terryorange",
    "biography": "<h1>A test biography</h1>",
    "imageurl": "image-of-terry.jpg",
    "tmeidentifier": "1234567890",
}

ROBERT = {
    "name": "Robert",
    "email": "bob@example.com",
    "tmeidentifier": build_tme_identifier("bob", "taxonomy_string"),
}


def _bertha_client(records=None, status=200, calls=None):
    calls = calls if calls is not None else []

    def handler(request):
        calls.append(request)
        if status != 200:
            return httpx.Response(status)
        return httpx.Response(200, json=records)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestCuratedReload:
    """Curated overlay as part of a full reload."""

    @pytest.fixture
    def source(self):
        """Source serving Bob and Fred."""
        return InMemoryTermSource(
            [Term(raw_id="bob", canonical_name="Bob"), Term(raw_id="fred", canonical_name="Fred")],
            page_size=1,
        )

    @pytest.mark.asyncio
    async def test_reload_merges_curated_authors(self, source, cache_file):
        """Curated data is overlaid and unknown authors are synthesized."""
        calls = []
        async with _bertha_client([ROBERT, TERRY], calls=calls) as client:
            service = AuthorService(
                source,
                "taxonomy_string",
                1,
                cache_file,
                "/base/url",
                curated_url=BERTHA_URL,
                http_client=client,
            )
            try:
                result = await service.reload()

                assert result.stored == 2
                assert result.merged == 2
                assert await service.count() == 3

                bob = await service.get_by_id(BOB_UUID)
                assert bob.pref_label == "Robert"
                assert bob.name == "Robert"
                assert bob.email_address == "bob@example.com"
                assert bob.type == "Person"

                terry = await service.get_by_id(TERRY_UUID)
                assert terry.description == "****************\nA test biography\n****************"
                assert terry.alternative_identifiers.tme == ["1234567890"]
                assert len(calls) == 1
            finally:
                await service.shutdown()

    @pytest.mark.asyncio
    async def test_curated_fetch_failure_keeps_reload(self, source, cache_file):
        """An unreachable curated source does not undo the reload."""
        async with _bertha_client(status=500) as client:
            service = AuthorService(
                source,
                "taxonomy_string",
                1,
                cache_file,
                "/base/url",
                curated_url=BERTHA_URL,
                http_client=client,
            )
            try:
                result = await service.reload()

                assert result.merged is None
                assert await service.is_data_loaded() is True
                assert await service.count() == 2
                assert (await service.get_by_id(BOB_UUID)).name is None
            finally:
                await service.shutdown()

    @pytest.mark.asyncio
    async def test_curated_commit_failure_keeps_reload(self, source, cache_file, monkeypatch):
        """A failed curated commit does not undo the committed TME authors."""
        async with _bertha_client([TERRY]) as client:
            service = AuthorService(
                source,
                "taxonomy_string",
                1,
                cache_file,
                "/base/url",
                curated_url=BERTHA_URL,
                http_client=client,
            )
            put_batch = service.store.put_batch

            async def failing_curated_commit(entries):
                if TERRY_UUID in entries:
                    raise StoreIOError("disk full")
                return await put_batch(entries)

            monkeypatch.setattr(service.store, "put_batch", failing_curated_commit)
            try:
                result = await service.reload()

                assert result.stored == 2
                assert result.merged is None
                assert await service.is_data_loaded() is True
                assert await service.count() == 2
                assert await service.get_by_id(TERRY_UUID) is None
            finally:
                await service.shutdown()

    def test_curated_url_requires_client(self, source, cache_file):
        """A curated URL without an HTTP client is a configuration error."""
        with pytest.raises(ValueError):
            AuthorService(source, "Authors", 1, cache_file, "/base/url", curated_url=BERTHA_URL)


class TestOverrideMerger:
    """Tests for OverrideMerger against a bare store."""

    @pytest.fixture
    async def store(self, cache_file):
        """Create an open store with an empty bucket."""
        store = CacheStore(cache_file)
        await store.open()
        await store.recreate_bucket()
        yield store
        await store.close()

    @pytest.mark.asyncio
    async def test_merge_is_idempotent(self, store):
        """Merging the same dataset twice yields the same contents."""
        async with _bertha_client([TERRY]) as client:
            merger = OverrideMerger(store, ReadWriteLock(), BERTHA_URL, client)

            first = await merger.merge()
            after_first = list(store.iterate())
            second = await merger.merge()
            after_second = list(store.iterate())

        assert first.synthesized == 1
        assert second.merged == 1
        assert after_first == after_second

    @pytest.mark.asyncio
    async def test_bad_record_is_skipped(self, store):
        """Undecodable or mismatched entries only skip their own record."""
        other = {"name": "Other", "tmeidentifier": "other"}
        await store.put_batch(
            {
                TERRY_UUID: b"not an author",
                derive_uuid("other"): Author(uuid="someone-else").to_json(),
            }
        )

        async with _bertha_client([TERRY, other, ROBERT]) as client:
            merger = OverrideMerger(store, ReadWriteLock(), BERTHA_URL, client)
            result = await merger.merge()

        assert result.failed == 2
        assert result.synthesized == 1
        assert await store.get(TERRY_UUID) == b"not an author"
        robert = Author.from_json(await store.get(BOB_UUID))
        assert robert.name == "Robert"

    @pytest.mark.asyncio
    async def test_invalid_payload(self, store):
        """A payload that is not a list of curated records is rejected."""
        async with _bertha_client({"name": "not a list"}) as client:
            merger = OverrideMerger(store, ReadWriteLock(), BERTHA_URL, client)
            with pytest.raises(CuratedFetchError):
                await merger.merge()

        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_merge_waits_for_readers(self, store):
        """The merge takes the write lock."""
        lock = ReadWriteLock()
        await lock.acquire_read()

        async with _bertha_client([TERRY]) as client:
            merger = OverrideMerger(store, lock, BERTHA_URL, client)
            task = asyncio.create_task(merger.merge())
            for _ in range(20):
                await asyncio.sleep(0)
            assert not task.done()
            assert await store.count() == 0

            lock.release_read()
            result = await task

        assert result.synthesized == 1
        assert json.loads(await store.get(TERRY_UUID))["name"] == "Terry"
