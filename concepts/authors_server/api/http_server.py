"""
HTTP server implementation for the Authors Server.

This module exposes the author cache over REST:
- Streaming listings of all authors, their IDs and their links
- Single author lookup by UUID
- Count and reload triggers
- Health, good-to-go, ping and build-info endpoints

Invariants:
    - Every data endpoint answers 503 while the cache store is not open
    - Error bodies are {"message": ...} JSON documents
    - Listing responses are streamed, the whole cache is never buffered

How to change safely:
    - Keep paths and messages stable, downstream clients depend on them
    - Streaming handlers must close their export stream on every path
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import partial
from typing import Any

from aiohttp import web

from .._version import __version__
from ..cache.export import ExportStream, ServiceUnavailableError
from ..cache.service import AuthorService
from ..config import HttpConfig
from ..model import EntityDecodeError
from ..store.cache_store import StoreIOError

logger = logging.getLogger(__name__)

ROOT_PATH = "/transformers/authors"
UUID_PATTERN = "[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
SERVICE_NAME = "v1-authors-transformer"


def json_message(message: str, status: int) -> web.Response:
    """Build a {"message": ...} response."""
    return web.json_response({"message": message}, status=status)


def create_http_app(service: AuthorService) -> web.Application:
    """Create the HTTP application.

    Args:
        service: Author service backing the endpoints

    Returns:
        aiohttp Application instance
    """
    app = web.Application()

    app.router.add_get(ROOT_PATH, partial(handle_authors, service=service))
    app.router.add_get(f"{ROOT_PATH}/__count", partial(handle_count, service=service))
    app.router.add_get(f"{ROOT_PATH}/__ids", partial(handle_ids, service=service))
    app.router.add_get(f"{ROOT_PATH}/__links", partial(handle_links, service=service))
    app.router.add_post(f"{ROOT_PATH}/__reload", partial(handle_reload, service=service))
    app.router.add_get(
        f"{ROOT_PATH}/{{uuid:{UUID_PATTERN}}}", partial(handle_get_author, service=service)
    )
    app.router.add_get("/__health", partial(handle_health, service=service))
    app.router.add_get("/__gtg", partial(handle_gtg, service=service))
    app.router.add_get("/__ping", handle_ping)
    app.router.add_get("/__build-info", handle_build_info)

    @web.middleware
    async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except ServiceUnavailableError:
            return json_message("Service Unavailable", 503)
        except (EntityDecodeError, StoreIOError) as e:
            logger.error(f"Error serving {request.path}: {e}")
            return json_message(str(e), 500)
        except Exception as e:
            logger.error(f"HTTP handler error: {e}", exc_info=True)
            return json_message(str(e), 500)

    app.middlewares.append(error_middleware)

    return app


async def _stream(request: web.Request, stream: ExportStream) -> web.StreamResponse:
    async with stream:
        response = web.StreamResponse(status=200, headers={"Content-Type": "application/json"})
        await response.prepare(request)
        try:
            async for chunk in stream:
                await response.write(chunk)
        except (StoreIOError, ConnectionResetError) as e:
            # Headers are already sent, the body is cut short
            logger.error(f"Stream to {request.path} interrupted: {e}")
            return response
        await response.write_eof()
    return response


async def _check_listable(service: AuthorService) -> web.Response | None:
    if not await service.is_ready():
        return json_message("Service Unavailable", 503)
    if await service.count() == 0:
        return json_message("Authors not found", 404)
    return None


async def handle_authors(request: web.Request, service: AuthorService) -> web.StreamResponse:
    """Handle GET /transformers/authors - Stream all authors."""
    refusal = await _check_listable(service)
    if refusal is not None:
        return refusal
    return await _stream(request, await service.list_all())


async def handle_ids(request: web.Request, service: AuthorService) -> web.StreamResponse:
    """Handle GET /transformers/authors/__ids - Stream author IDs."""
    refusal = await _check_listable(service)
    if refusal is not None:
        return refusal
    return await _stream(request, await service.list_ids())


async def handle_links(request: web.Request, service: AuthorService) -> web.StreamResponse:
    """Handle GET /transformers/authors/__links - Stream author links."""
    refusal = await _check_listable(service)
    if refusal is not None:
        return refusal
    return await _stream(request, await service.list_links())


async def handle_count(request: web.Request, service: AuthorService) -> web.Response:
    """Handle GET /transformers/authors/__count - Count cached authors."""
    if not await service.is_ready():
        return json_message("Service Unavailable", 503)
    count = await service.count()
    return web.Response(text=str(count))


async def handle_get_author(request: web.Request, service: AuthorService) -> web.Response:
    """Handle GET /transformers/authors/{uuid} - Get one author."""
    if not await service.is_ready():
        return json_message("Service Unavailable", 503)

    author = await service.get_by_id(request.match_info["uuid"])
    if author is None:
        return json_message("Author not found", 404)
    return web.Response(body=author.to_json(), content_type="application/json")


async def handle_reload(request: web.Request, service: AuthorService) -> web.Response:
    """Handle POST /transformers/authors/__reload - Rebuild the cache."""
    if not await service.is_ready() or not await service.is_data_loaded():
        return json_message("Service Unavailable", 503)

    service.trigger_reload()
    return json_message("Reloading authors", 202)


async def health(service: AuthorService) -> dict[str, Any]:
    """Build the health check document."""
    ready = await service.is_ready()
    check = {
        "name": "Check service has finished initialising.",
        "ok": ready,
        "severity": 1,
        "businessImpact": "Unable to respond to requests",
        "technicalSummary": "Cannot serve any content as data not loaded.",
        "checkOutput": "Service is up and running" if ready else "Service is initialising.",
    }
    return {
        "schemaVersion": 1,
        "name": SERVICE_NAME,
        "description": "Transforms TME authors into UPP representations",
        "ok": ready,
        "checks": [check],
    }


async def handle_health(request: web.Request, service: AuthorService) -> web.Response:
    """Handle GET /__health - Health check."""
    result = await health(service)
    return web.json_response(result)


async def handle_gtg(request: web.Request, service: AuthorService) -> web.Response:
    """Handle GET /__gtg - Good to go when ready and not empty."""
    try:
        good_to_go = await service.is_ready() and await service.count() > 0
    except (ServiceUnavailableError, StoreIOError):
        good_to_go = False
    if not good_to_go:
        return web.Response(text="Service is not ready", status=503)
    return web.Response(text="OK")


async def handle_ping(request: web.Request) -> web.Response:
    """Handle GET /__ping - Liveness."""
    return web.Response(text="pong")


async def handle_build_info(request: web.Request) -> web.Response:
    """Handle GET /__build-info - Service version."""
    return web.json_response({"name": SERVICE_NAME, "version": __version__})


async def start_http_server(
    service: AuthorService,
    config: HttpConfig,
) -> web.AppRunner:
    """Start serving the HTTP API.

    Args:
        service: Author service backing the endpoints
        config: HTTP server configuration

    Returns:
        The runner; call cleanup() on it to stop serving
    """
    app = create_http_app(service)

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, config.host, config.port)
    await site.start()

    logger.info(f"HTTP server running on http://{config.host}:{config.port}")
    return runner
