"""
Primary term source abstraction for the Authors Server.

This module provides a pluggable source interface supporting:
- TME authority files over HTTP (production)
- In-memory (for testing)

Invariants:
    - Sources return pages addressed by a cursor that advances by a fixed
      page size
    - An empty page ends a reload

How to change safely:
    - New sources must implement the TermSource protocol
"""

from .base import SourceError, SourceFetchError, Term, TermSource
from .memory import InMemoryTermSource
from .tme import TmeTermSource, parse_terms

__all__ = [
    # Protocol and types
    "TermSource",
    "Term",
    "SourceError",
    "SourceFetchError",
    # Implementations
    "TmeTermSource",
    "InMemoryTermSource",
    "parse_terms",
]
