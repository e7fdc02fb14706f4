"""
TME term and curated record transformation.

This module turns raw TME terms into cached authors and overlays curated
(Bertha) author data onto them.

Invariants:
    - transform_author() is deterministic for a (term, taxonomy) pair
    - Curated overlays never touch type, aliases or alternative identifiers
    - Overlaying the same curated record twice yields the same author

How to change safely:
    - Identifier derivation lives in identifiers.py and is frozen
    - New curated fields must be optional on Author
"""

from __future__ import annotations

from ..model import AUTHOR_TYPE, AlternativeIdentifiers, Author, CuratedAuthor
from ..source.base import Term
from .html_text import html_to_text
from .identifiers import build_tme_identifier, derive_uuid


class CuratedValidationError(ValueError):
    """Curated record does not belong to the author it was matched with."""

    pass


def build_alias_list(term: Term) -> list[str]:
    """Aliases of a term, followed by its canonical name."""
    aliases = [alias for alias in term.aliases if alias]
    if term.canonical_name and term.canonical_name not in aliases:
        aliases.append(term.canonical_name)
    return aliases


def transform_author(term: Term, taxonomy: str) -> Author:
    """Transform a TME term into an author.

    Args:
        term: Raw TME term
        taxonomy: TME taxonomy name the term belongs to

    Returns:
        Author keyed by the UUID derived from the term's TME identifier
    """
    tme_identifier = build_tme_identifier(term.raw_id, taxonomy)
    author_uuid = derive_uuid(tme_identifier)
    return Author(
        uuid=author_uuid,
        pref_label=term.canonical_name,
        type=AUTHOR_TYPE,
        alternative_identifiers=AlternativeIdentifiers(
            tme=[tme_identifier],
            uuids=[author_uuid],
        ),
        aliases=build_alias_list(term) or None,
    )


def _curated_fields(curated: CuratedAuthor) -> dict[str, str | None]:
    biography = curated.biography or None
    return {
        "name": curated.name or None,
        "pref_label": curated.name,
        "email_address": curated.email or None,
        "twitter_handle": curated.twitter_handle or None,
        "facebook_profile": curated.facebook_profile or None,
        "linkedin_profile": curated.linkedin_profile or None,
        "description": html_to_text(biography) if biography else None,
        "description_xml": biography,
        "image_url": curated.image_url or None,
    }


def curated_to_author(curated: CuratedAuthor) -> Author:
    """Synthesize an author from a curated record alone."""
    author_uuid = derive_uuid(curated.tme_identifier)
    return Author(
        uuid=author_uuid,
        type=AUTHOR_TYPE,
        alternative_identifiers=AlternativeIdentifiers(
            tme=[curated.tme_identifier],
            uuids=[author_uuid],
        ),
        **_curated_fields(curated),
    )


def add_curated_information(author: Author, curated: CuratedAuthor) -> Author:
    """Overlay a curated record onto an existing author.

    Args:
        author: Author built from TME
        curated: Curated record for the same TME identifier

    Returns:
        A new author carrying the curated fields

    Raises:
        CuratedValidationError: If the curated UUID differs from the author's
    """
    if derive_uuid(curated.tme_identifier) != author.uuid:
        raise CuratedValidationError("Bertha UUID doesn't match author UUID")
    return author.model_copy(update=_curated_fields(curated))
