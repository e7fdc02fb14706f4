"""
Store module - the embedded author cache.

The cache is a derived view of TME plus the curated dataset. It is rebuilt
from scratch on every full reload, so it can always be deleted safely while
the service is stopped.
"""

from .cache_store import (
    DEFAULT_BUCKET,
    BucketNotFoundError,
    CacheStore,
    StoreError,
    StoreIOError,
    StoreNotOpenError,
)

__all__ = [
    "CacheStore",
    "DEFAULT_BUCKET",
    "StoreError",
    "StoreIOError",
    "StoreNotOpenError",
    "BucketNotFoundError",
]
