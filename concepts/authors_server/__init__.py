"""
Authors Server - cache and reconciliation layer for TME author terms.

This package pulls paginated author terms from TME, transforms them into the
UPP author model with deterministic UUIDs, caches them in an embedded SQLite
store, overlays curated author data on top, and serves point, list and export
reads while a background rebuild may be running.

Architecture:
    ┌─────────────┐    fetch_page()    ┌──────────────────┐
    │ TME source  │───────────────────▶│ ReloadCoordinator│
    └─────────────┘                    └────────┬─────────┘
                                                │ batches (queue)
                                                ▼
    ┌─────────────┐     overlay        ┌──────────────────┐
    │  Curated    │───────────────────▶│   CacheStore     │
    │  (Bertha)   │                    │   (SQLite)       │
    └─────────────┘                    └────────┬─────────┘
                                                │ read lock
                                                ▼
                                       ┌──────────────────┐
                                       │  StreamExporter  │──▶ HTTP API
                                       └──────────────────┘

Invariants:
    - Author UUIDs are derived deterministically from the TME identifier
    - Each full reload drops and recreates the cache bucket
    - data_loaded is only set once every batch of a reload is committed
    - The store handle and the state flags share one readers-writer lock

How to change safely:
    - Never change the UUID derivation, published identifiers depend on it
    - Keep wire field names in sync with the UPP author model
    - Test reloads with concurrent readers

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
