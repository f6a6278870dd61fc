"""HTTP surface: the SSE stream and a health check."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from aiohttp import web

from halocation.broadcast import EventStream
from halocation.client import Pinger
from halocation.exceptions import LocationError

_logger = logging.getLogger(__name__)

_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def access_log_middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        _logger.info("request URI=%s status=%d", request.path_qs, exc.status)
        raise
    _logger.info("request URI=%s status=%d", request.path_qs, response.status)
    return response


def create_app(stream: EventStream, pinger: Pinger) -> web.Application:
    """Build the application serving ``/sse`` and ``/health``."""

    async def health(_request: web.Request) -> web.Response:
        try:
            await pinger.ping()
        except LocationError as exc:
            return web.Response(status=424, text=str(exc), content_type="text/plain", charset="utf-8")
        return web.Response(status=200, text="ok", content_type="text/plain", charset="utf-8")

    app = web.Application(middlewares=[access_log_middleware])
    app.router.add_get("/sse", stream.handle)
    app.router.add_get("/health", health)
    return app
