"""
Asana Connector FastAPI Bridge — wire the webhook endpoint into a FastAPI app.

The connector does not run its own HTTP stack. register_webhook_route() adds
``POST {webhook_path}`` to any FastAPI app or APIRouter the host already has;
create_app() builds a standalone app and serve() runs it under uvicorn.

Delivery handling:
    1. Convert the Starlette Request to a WebhookRequest
    2. AsanaConnector.accept() → handshake echo, 400 for a malformed batch,
       or an empty 200 acknowledgment
    3. Matching notifications are routed in a background task, after the
       acknowledgment has been sent
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional

from fastapi import FastAPI
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from asana_connector.connector import AsanaConnector
from asana_connector.engine.models import WebhookRequest, WebhookResponse

logger = logging.getLogger("asana_connector.bridge")


async def starlette_to_webhook_request(request: Request) -> WebhookRequest:
    """
    Convert a Starlette/FastAPI Request to a WebhookRequest.

    Handshake deliveries have an empty body; anything that is not JSON is
    passed through as text and rejected later by parse_notifications().
    """
    raw = await request.body()
    body: Any = None
    if raw:
        try:
            body = json.loads(raw)
        except ValueError:
            body = raw.decode("utf-8", errors="replace")

    return WebhookRequest(
        method=request.method,
        path=request.url.path,
        headers={k: v for k, v in request.headers.items()},
        body=body,
        client_ip=request.client.host if request.client else None,
    )


def to_starlette_response(
    response: WebhookResponse,
    background: Optional[BackgroundTask] = None,
) -> Response:
    """Empty body stays empty; anything else is sent as JSON."""
    if response.body is None:
        return Response(
            status_code=response.status_code,
            headers=dict(response.headers),
            background=background,
        )
    return JSONResponse(
        content=response.body,
        status_code=response.status_code,
        headers=dict(response.headers),
        background=background,
    )


def create_webhook_endpoint(connector: AsanaConnector) -> Callable:
    """Build the FastAPI endpoint handler bound to one connector."""

    async def endpoint(request: Request) -> Response:
        webhook_request = await starlette_to_webhook_request(request)
        response, notifications = connector.accept(webhook_request)

        background = None
        if notifications:
            background = BackgroundTask(connector.route, notifications)
        return to_starlette_response(response, background=background)

    return endpoint


def register_webhook_route(router: Any, connector: AsanaConnector) -> str:
    """
    Add ``POST {webhook_path}`` for ``connector`` to a FastAPI app or APIRouter.

    Returns:
        The registered path.
    """
    path = connector.webhook_path
    router.add_api_route(
        path,
        create_webhook_endpoint(connector),
        methods=["POST"],
        name=f"asana_connector_{connector.id}",
        include_in_schema=False,
    )
    logger.info(f"Registered Asana webhook route: POST {path}")
    return path


def create_app(connector: AsanaConnector) -> FastAPI:
    """Standalone FastAPI app serving only the connector's webhook endpoint."""
    app = FastAPI(title="Asana Connector", docs_url=None, redoc_url=None)
    register_webhook_route(app, connector)
    return app


async def serve(
    connector: AsanaConnector,
    host: str = "0.0.0.0",
    port: int = 8000,
    log_level: str = "info",
) -> None:
    """
    Run the webhook endpoint under uvicorn, then reconcile.

    Asana answers a create-webhook call only after the handshake POST to the
    target succeeded, so start() runs once uvicorn is accepting connections.
    A startup error shuts the server down and is re-raised.
    """
    import uvicorn

    app = create_app(connector)
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level=log_level))
    serve_task = asyncio.create_task(server.serve())

    try:
        while not server.started:
            if serve_task.done():
                await serve_task
                return
            await asyncio.sleep(0.05)

        try:
            await connector.start()
        except Exception:
            server.should_exit = True
            await serve_task
            raise

        await serve_task
    finally:
        await connector.close()
