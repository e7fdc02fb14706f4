"""
In-memory term source implementation for testing.

This module provides a simple in-memory primary source for:
- Unit tests
- Integration tests
- Local development without TME credentials

Invariants:
    - Pages are slices of the configured term list
    - Provides the same cursor contract as the TME source

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with TermSource protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import logging

from .base import SourceFetchError, Term

logger = logging.getLogger(__name__)


class InMemoryTermSource:
    """In-memory implementation of TermSource for testing.

    Attributes:
        terms: Terms served by the source (may be replaced between reloads)
        page_size: Number of terms per page
        fetched_cursors: Cursors requested so far, in order

    Testing helpers:
        gate: Fetches wait on this event; clear it to block the source
        fail_at(): Make the fetch at a given cursor raise

    Example:
        >>> source = InMemoryTermSource([Term("bob", "Bob")], page_size=1)
        >>> await source.fetch_page(0)
        [Term(raw_id='bob', canonical_name='Bob', aliases=[])]
    """

    def __init__(self, terms: list[Term] | None = None, page_size: int = 1) -> None:
        """Initialize the in-memory source.

        Args:
            terms: Terms to serve
            page_size: Number of terms per page
        """
        self.terms: list[Term] = list(terms or [])
        self.page_size = page_size
        self.fetched_cursors: list[int] = []
        self.gate = asyncio.Event()
        self.gate.set()
        self._failures: dict[int, Exception] = {}
        self.closed = False

    def fail_at(self, cursor: int, error: Exception | None = None) -> None:
        """Make the fetch at cursor raise (once)."""
        self._failures[cursor] = error or SourceFetchError(
            f"Injected failure at cursor {cursor}", cursor=cursor
        )

    async def fetch_page(self, cursor: int) -> list[Term]:
        """Return the slice of terms starting at cursor."""
        await self.gate.wait()
        self.fetched_cursors.append(cursor)
        error = self._failures.pop(cursor, None)
        if error is not None:
            raise error
        page = self.terms[cursor : cursor + self.page_size]
        logger.debug(
            "Served in-memory page",
            extra={"cursor": cursor, "terms": len(page)},
        )
        return page

    async def close(self) -> None:
        """Close (no-op for in-memory)."""
        self.closed = True
