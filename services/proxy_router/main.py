"""
Edge Proxy Router - single entry point for the client application

Classifies each inbound HTTP or WebSocket request and forwards it to one of
the backend services (general, group, notification, file, presence).
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Response, WebSocket

from services.common.core.logging_config import setup_logging

from .api.deps import ClientChannelDep, IncomingRequestDep, ProcessorDep, route_path
from .config import config
from .exceptions import register_exception_handlers
from .lifecycle import manage_lifespan
from .middleware import cors_middleware, request_context_middleware
from .models import IncomingRequest
from .services.client_channel import CLIENT_CLOSED_REQUEST
from .services.response_normalizer import render_outcome

# Logger setup
setup_logging(config.LOG_CONFIG_PATH, default_level=config.LOG_LEVEL)
logger = logging.getLogger("proxy_router.main")

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with manage_lifespan(app, config):
        yield


app = FastAPI(
    title="Edge Proxy Router", version="1.0.0", lifespan=lifespan, root_path=config.root_path
)

# Registered innermost first; the request context wraps CORS so preflights are logged.
app.middleware("http")(cors_middleware)
app.middleware("http")(request_context_middleware)

register_exception_handlers(app)


# ===========================================
# Endpoint definitions.
# ===========================================


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy_handler(
    incoming: IncomingRequestDep, channel: ClientChannelDep, processor: ProcessorDep
):
    """
    Catch-all route: classify, resolve and forward to the owning backend.

    A client disconnect cancels the upstream call; nobody reads the reply.
    """
    outcome = await channel.run(processor.process(incoming))
    if outcome is None:
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    return render_outcome(outcome)


@app.websocket("/{path:path}")
async def websocket_proxy(websocket: WebSocket):
    """
    Catch-all WebSocket route: relay frames to the owning backend.
    """
    processor = websocket.app.state.processor
    incoming = IncomingRequest.build(
        method="GET",
        path=route_path(websocket.scope),
        headers=websocket.headers,
        query=websocket.query_params,
    )
    await processor.open_websocket(websocket, incoming)


if __name__ == "__main__":
    import uvicorn

    host, _, port = config.UVICORN_BIND_ADDR.rpartition(":")
    uvicorn.run(app, host=host or "0.0.0.0", port=int(port), log_config=None)
