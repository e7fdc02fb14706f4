"""
Authors Server Test Suite.

This package contains:
- unit/: Unit tests (no I/O beyond temporary files)
- integration/: Integration tests (SQLite, in-memory source, HTTP)
"""
