"""
Where: services/proxy_router/middleware.py
What: HTTP middleware for CORS, request id propagation and access logging.
Why: Isolate cross-cutting request concerns from app assembly.
"""

import logging
import time

from fastapi import Request
from fastapi.responses import Response

from services.common.core.request_context import (
    clear_request_id,
    generate_request_id,
    set_request_id,
)

logger = logging.getLogger("proxy_router.main")

REQUEST_ID_HEADER = "X-Request-ID"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS, PATCH",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With, Accept",
    "Access-Control-Allow-Credentials": "true",
}

PREFLIGHT_MAX_AGE = "86400"


async def cors_middleware(request: Request, call_next):
    """Answer preflight requests locally and stamp CORS headers on every response."""
    if request.method == "OPTIONS":
        return Response(
            status_code=200,
            headers={**CORS_HEADERS, "Access-Control-Max-Age": PREFLIGHT_MAX_AGE},
        )

    response = await call_next(request)
    for key, value in CORS_HEADERS.items():
        response.headers[key] = value
    return response


async def request_context_middleware(request: Request, call_next):
    """Middleware for request id propagation and structured access logging."""
    start_time = time.perf_counter()

    request_id = request.headers.get(REQUEST_ID_HEADER)
    if request_id:
        try:
            request_id = set_request_id(request_id)
        except ValueError as exc:
            logger.warning("Rejected incoming %s: %s", REQUEST_ID_HEADER, exc)
            request_id = None
    if not request_id:
        request_id = generate_request_id()

    try:
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        process_time_ms = round((time.perf_counter() - start_time) * 1000, 2)

        logger.info(
            f"{request.method} {request.url.path} {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "query_params": str(request.query_params),
                "status": response.status_code,
                "latency_ms": process_time_ms,
                "user_agent": request.headers.get("user-agent"),
                "client_ip": request.client.host if request.client else None,
            },
        )

        return response
    finally:
        clear_request_id()
