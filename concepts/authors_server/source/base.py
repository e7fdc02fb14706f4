"""
Base protocol and types for the primary term source.

This module defines the TermSource protocol that every primary source must
implement, along with the raw Term record and source errors.

Invariants:
    - fetch_page(cursor) returns the terms starting at cursor
    - An empty page means the source is exhausted
    - Failures are raised as SourceFetchError, never returned as empty pages

How to change safely:
    - Protocol changes require updating all implementations
    - Keep the cursor contract: callers advance it by a fixed page size,
      not by the number of terms returned
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


class SourceError(Exception):
    """Base exception for term source operations."""

    pass


class SourceFetchError(SourceError):
    """A page could not be fetched or parsed."""

    def __init__(self, message: str, *, cursor: int | None = None) -> None:
        self.cursor = cursor
        super().__init__(message)


@dataclass
class Term:
    """A raw TME term.

    Attributes:
        raw_id: TME term id
        canonical_name: Canonical (preferred) name
        aliases: Variation names in source order
    """

    raw_id: str
    canonical_name: str
    aliases: list[str] = field(default_factory=list)


@runtime_checkable
class TermSource(Protocol):
    """Protocol for primary paginated term sources.

    Example:
        >>> source = TmeTermSource(config, client)
        >>> cursor = 0
        >>> while terms := await source.fetch_page(cursor):
        ...     handle(terms)
        ...     cursor += page_size
    """

    @abstractmethod
    async def fetch_page(self, cursor: int) -> list[Term]:
        """Fetch the page of terms starting at cursor.

        Args:
            cursor: Index of the first term of the page

        Returns:
            Terms of the page, empty once the source is exhausted

        Raises:
            SourceFetchError: If the page cannot be fetched
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release resources held by the source."""
        ...
