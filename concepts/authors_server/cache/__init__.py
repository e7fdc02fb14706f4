"""
Author cache: reloads, curated overlay and streaming reads.

The reload coordinator rebuilds the store from the primary source, the
override merger overlays curated data, and the stream exporter serves
reads. AuthorService ties them together behind one readers-writer lock.
"""

from .curated import CuratedFetchError, MergeResult, OverrideMerger
from .export import ExportStream, ServiceUnavailableError, StreamExporter
from .locks import ReadWriteLock
from .reload import ReloadCoordinator, ReloadResult, ReloadState
from .service import AuthorService
from .state import StateTracker

__all__ = [
    "AuthorService",
    "ReloadCoordinator",
    "ReloadResult",
    "ReloadState",
    "OverrideMerger",
    "MergeResult",
    "CuratedFetchError",
    "StreamExporter",
    "ExportStream",
    "ServiceUnavailableError",
    "ReadWriteLock",
    "StateTracker",
]
