"""
Custom exception classes.

Represent failures of the router itself. Upstream non-2xx responses are not
exceptions; they are normalized and passed through.
"""

import logging
import traceback
from typing import Any, Dict

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import config

logger = logging.getLogger(__name__)


class ProxyError(Exception):
    """Base exception class for router failures."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


class UrlResolutionError(ProxyError):
    """Raised when no valid upstream URL can be built."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Cannot create a valid URL: {url}")


class RequestBodyError(ProxyError):
    """Raised when the inbound body cannot be buffered or serialized."""

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Failed to process request body: {cause}")


class UpstreamTransportError(ProxyError):
    """Raised when the backend cannot be reached or the stream breaks."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, url: str, cause: Exception, action: str = "forward request"):
        self.url = url
        self.cause = cause
        super().__init__(f"Failed to {action} to {url}: {cause}")


class WebSocketRelayError(ProxyError):
    """Raised when the upstream WebSocket handshake fails."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, url: str, cause: Exception):
        self.url = url
        self.cause = cause
        super().__init__(f"Failed to establish WebSocket connection to {url}: {cause}")


class MissingTokenError(ProxyError):
    """Raised when a WebSocket URL is requested without a token."""

    def __init__(self):
        super().__init__("No token provided for WebSocket connection")


def proxy_error_body(exc: BaseException, include_stack: bool) -> Dict[str, Any]:
    """
    Uniform body for router failures.

    The stack trace is only included outside production.
    """
    body: Dict[str, Any] = {"error": "Proxy Error", "message": str(exc)}
    if include_stack:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


# ===========================================
# Exception Handlers
# ===========================================


async def proxy_exception_handler(request: Request, exc: ProxyError):
    """
    Handler for router failures raised inside the pipeline.
    """
    logger.error(
        f"Proxy error: {exc}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=proxy_error_body(exc, include_stack=not config.is_production),
    )


async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler for unhandled exceptions.
    """
    logger.error(
        f"Global exception handler caught: {exc}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=proxy_error_body(exc, include_stack=not config.is_production),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Handler for HTTPException.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": True, "message": exc.detail, "status": exc.status_code},
        headers=getattr(exc, "headers", None),
    )
