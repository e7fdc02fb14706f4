"""
Deterministic identifier derivation.

Author UUIDs are name-based MD5 UUIDs computed over the TME identifier with
an empty namespace: the name bytes are hashed on their own and the version
and variant bits are then set. This differs from uuid.uuid3(), which always
prepends a 16-byte namespace, and must not be replaced by it.

Invariants:
    - derive_uuid() is a pure function of its input
    - build_tme_identifier() concatenates base64(raw id), "-", base64(taxonomy)

How to change safely:
    - Do not. Published UUIDs depend on this exact algorithm and encoding.
"""

from __future__ import annotations

import base64
import hashlib
import uuid


def build_tme_identifier(raw_id: str, taxonomy: str) -> str:
    """Build the TME identifier for a raw term id within a taxonomy."""
    encoded_id = base64.b64encode(raw_id.encode("utf-8")).decode("ascii")
    encoded_taxonomy = base64.b64encode(taxonomy.encode("utf-8")).decode("ascii")
    return f"{encoded_id}-{encoded_taxonomy}"


def derive_uuid(name: str) -> str:
    """Derive the version 3 UUID for an identifier string.

    Args:
        name: Identifier to hash (a TME identifier)

    Returns:
        Canonical string form of the UUID
    """
    digest = hashlib.md5(name.encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest, version=3))
