"""HTTP surface of the broker (Starlette).

Routes:
    GET  /                -> UI shell
    POST /api/connect     -> {"success": true, "tools": [...]}
                             | {"redirect": url} | {"error": msg} (500)
    GET  /oauth/callback  -> HTML page after the authorization server redirect
    GET  /api/status      -> {"state": ..., "server_url": ...}

Redirects are returned as JSON data, never as 3xx responses: the caller
is the page's script, and it navigates the browser itself.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse
from starlette.routing import Route

from . import pages
from .config import BrokerConfig, load_config
from .connection import (
    ConnectionBootstrapper,
    Connected,
    ExchangeFailed,
    RedirectRequired,
    SessionRegistry,
    TransportFactory,
)

logger = logging.getLogger(__name__)


def request_base_url(request: Request) -> str:
    """Scheme and host the browser used to reach us."""
    return f"{request.url.scheme}://{request.url.netloc}"


def _bootstrapper(request: Request) -> ConnectionBootstrapper:
    state = request.app.state
    session = state.sessions.get_or_create(request_base_url(request))
    return ConnectionBootstrapper(state.config, session, state.transport_factory)


async def index(request: Request) -> HTMLResponse:
    config: BrokerConfig = request.app.state.config
    return HTMLResponse(pages.render_index(config.client_name, config.server_url))


async def api_connect(request: Request) -> JSONResponse:
    result = await _bootstrapper(request).connect()

    if isinstance(result, Connected):
        return JSONResponse(
            {"success": True, "tools": [tool.to_dict() for tool in result.tools]}
        )
    if isinstance(result, RedirectRequired):
        return JSONResponse({"redirect": result.url})
    return JSONResponse({"error": result.message}, status_code=500)


async def oauth_callback(request: Request) -> HTMLResponse:
    params = request.query_params

    error = params.get("error")
    if error:
        logger.warning(f"Authorization server returned error: {error}")
        return HTMLResponse(
            pages.render_authorization_denied(error, params.get("error_description"))
        )

    code = params.get("code")
    if not code:
        logger.warning("OAuth callback without an authorization code")
        return HTMLResponse(pages.render_missing_code())

    result = await _bootstrapper(request).complete_authorization(code)
    if isinstance(result, ExchangeFailed):
        return HTMLResponse(pages.render_exchange_failed(result.message))
    return HTMLResponse(pages.render_auth_success())


async def api_status(request: Request) -> JSONResponse:
    state = request.app.state
    session = state.sessions.get_or_create(request_base_url(request))
    return JSONResponse(
        {"state": session.state.value, "server_url": state.config.server_url}
    )


def create_app(
    config: BrokerConfig | None = None,
    transport_factory: TransportFactory | None = None,
) -> Starlette:
    """Build the broker application.

    Args:
        config: Broker configuration; loaded from the environment if omitted
        transport_factory: Builds the transport for a session (tests swap it)
    """
    config = config or load_config()
    sessions = SessionRegistry(config)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        logger.info(f"Broker ready for {config.server_url}")
        try:
            yield
        finally:
            sessions.close()

    app = Starlette(
        routes=[
            Route("/", index, methods=["GET"]),
            Route("/api/connect", api_connect, methods=["POST"]),
            Route("/api/status", api_status, methods=["GET"]),
            Route("/oauth/callback", oauth_callback, methods=["GET"]),
        ],
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.sessions = sessions
    app.state.transport_factory = transport_factory
    return app
