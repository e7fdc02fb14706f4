"""
API layer for the Authors Server.

This module provides the aiohttp application serving the author cache.
"""

from .http_server import create_http_app, start_http_server

__all__ = [
    "create_http_app",
    "start_http_server",
]
