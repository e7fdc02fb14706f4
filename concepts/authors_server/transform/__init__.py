"""
Transform module - TME terms and curated records into cached authors.

Invariants:
    - Author UUIDs are derived, never looked up
    - The same input always produces the same author
"""

from .html_text import html_to_text
from .identifiers import build_tme_identifier, derive_uuid
from .transformer import (
    CuratedValidationError,
    add_curated_information,
    build_alias_list,
    curated_to_author,
    transform_author,
)

__all__ = [
    "build_tme_identifier",
    "derive_uuid",
    "html_to_text",
    "transform_author",
    "build_alias_list",
    "curated_to_author",
    "add_curated_information",
    "CuratedValidationError",
]
