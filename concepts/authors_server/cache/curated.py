"""
Curated author overlay.

Curated author data (Bertha) is fetched as one JSON array and merged into
the freshly reloaded cache. Records for authors TME does not know about are
synthesized from the curated data alone.

Invariants:
    - The whole pass holds the write lock once and commits in one transaction
    - A bad record is skipped; the rest of the pass still commits
    - Running the merge twice yields the same cache contents

How to change safely:
    - Fetch before taking the lock, never hold the write lock across HTTP
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from ..model import Author, CuratedAuthor, EntityDecodeError, curated_authors_adapter
from ..store.cache_store import CacheStore
from ..transform.identifiers import derive_uuid
from ..transform.transformer import (
    CuratedValidationError,
    add_curated_information,
    curated_to_author,
)
from .locks import ReadWriteLock

logger = logging.getLogger(__name__)


class CuratedFetchError(Exception):
    """The curated dataset could not be fetched or decoded."""

    pass


@dataclass
class MergeResult:
    """Outcome of one merge pass.

    Attributes:
        merged: Curated records overlaid onto existing authors
        synthesized: Authors created from curated data alone
        failed: Records skipped because they could not be applied
    """

    merged: int = 0
    synthesized: int = 0
    failed: int = 0


class OverrideMerger:
    """Merges curated author data into the cache store.

    Example:
        >>> merger = OverrideMerger(store, lock, "https://bertha/authors", client)
        >>> result = await merger.merge()
        >>> print(f"Merged {result.merged} curated authors")
    """

    def __init__(
        self,
        store: CacheStore,
        lock: ReadWriteLock,
        url: str,
        client: httpx.AsyncClient,
    ) -> None:
        self.store = store
        self.lock = lock
        self.url = url
        self._client = client

    async def fetch(self) -> list[CuratedAuthor]:
        """Fetch the curated dataset.

        Returns:
            Curated records in dataset order

        Raises:
            CuratedFetchError: On transport errors, non-2xx statuses or an
                invalid payload
        """
        try:
            response = await self._client.get(self.url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise CuratedFetchError(f"Cannot fetch curated authors: {e}") from e

        try:
            return curated_authors_adapter.validate_json(response.content)
        except ValidationError as e:
            raise CuratedFetchError(f"Invalid curated authors payload: {e}") from e

    async def merge(self) -> MergeResult:
        """Fetch the curated dataset and overlay it onto the cache.

        Returns:
            MergeResult of the pass

        Raises:
            CuratedFetchError: If the dataset could not be fetched
            StoreIOError: If the final commit fails
        """
        records = await self.fetch()
        logger.info(f"Merging {len(records)} curated authors")

        result = MergeResult()
        async with self.lock.write():
            updated: dict[str, bytes] = {}
            for curated in records:
                try:
                    author, synthesized = await self._apply(curated, updated)
                except (CuratedValidationError, EntityDecodeError) as e:
                    result.failed += 1
                    logger.warning(
                        f"Skipping curated author: {e}",
                        extra={"tme_identifier": curated.tme_identifier},
                    )
                    continue
                if synthesized:
                    result.synthesized += 1
                else:
                    result.merged += 1
                updated[author.uuid] = author.to_json()

            await self.store.put_batch(updated)

        logger.info(
            "Finished merging curated authors",
            extra={"merged": result.merged, "synthesized": result.synthesized, "failed": result.failed},
        )
        return result

    async def _apply(
        self, curated: CuratedAuthor, pending: dict[str, bytes]
    ) -> tuple[Author, bool]:
        key = derive_uuid(curated.tme_identifier)
        stored = pending.get(key)
        if stored is None:
            stored = await self.store.get(key)
        if stored is None:
            return curated_to_author(curated), True
        return add_curated_information(Author.from_json(stored), curated), False
