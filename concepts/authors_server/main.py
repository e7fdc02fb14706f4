"""
Authors Server - Main entry point.

This module starts the Authors Server with all components:
- Shared HTTP client (TME and curated sources)
- AuthorService (cache store, reloads, curated overlay)
- HTTP server (REST API, health endpoints)

Usage:
    python -m concepts.authors_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The HTTP server starts before the initial load completes, endpoints
      answer 503 until the cache store is open
    - Graceful shutdown closes the cache store before the HTTP client

How to change safely:
    - Add new components to start() and mirror them in stop()
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

import httpx
import json_log_formatter
from aiohttp import web

from .api import start_http_server
from .cache import AuthorService
from .config import ServerConfig
from .source import TmeTermSource

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


class Server:
    """Authors Server orchestrator.

    Attributes:
        config: Server configuration
        client: Shared HTTP client
        service: Author cache service
        runner: aiohttp runner serving the API

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running
        >>> await server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.client: httpx.AsyncClient | None = None
        self.service: AuthorService | None = None
        self.runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start the server and wait for a shutdown request."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting Authors server")
        self.config.log_config()

        try:
            cache_dir = Path(self.config.storage.cache_file_name).parent
            cache_dir.mkdir(parents=True, exist_ok=True)

            self.client = httpx.AsyncClient(timeout=self.config.tme.request_timeout_s)
            source = TmeTermSource(self.config.tme, self.client)

            self.service = AuthorService(
                source=source,
                taxonomy=self.config.tme.taxonomy,
                page_size=self.config.tme.max_records,
                cache_file=self.config.storage.cache_file_name,
                base_url=self.config.http.base_url,
                curated_url=self.config.curated.source_url,
                http_client=self.client,
                open_timeout_ms=self.config.storage.open_timeout_ms,
                bucket=self.config.storage.bucket,
            )
            self._running = True

            self.runner = await start_http_server(self.service, self.config.http)
            self.service.start()
            logger.info("Authors server started successfully")

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running:
            return

        logger.info("Stopping Authors server")

        if self.runner:
            await self.runner.cleanup()

        if self.service:
            await self.service.shutdown()

        if self.client:
            await self.client.aclose()

        self._running = False
        logger.info("Authors server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    server = Server(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
