"""
Shared test fixtures for the Authors Server.
"""

import asyncio
import tempfile
from pathlib import Path

import pytest


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def cache_file(data_dir):
    """Path of a cache database inside the temporary directory."""
    return str(Path(data_dir) / "cache.db")


@pytest.fixture
def wait_until():
    """Poll a condition until it holds or the timeout expires."""

    async def _wait_until(condition, timeout: float = 5.0, interval: float = 0.01):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            result = condition()
            if asyncio.iscoroutine(result):
                result = await result
            if result:
                return
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(interval)

    return _wait_until
