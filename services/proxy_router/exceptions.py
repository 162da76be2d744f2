"""
Where: services/proxy_router/exceptions.py
What: Exception handler registration.
Why: Keep error handling setup isolated from route and lifecycle concerns.
"""

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.exceptions import (
    ProxyError,
    global_exception_handler,
    http_exception_handler,
    proxy_exception_handler,
)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(Exception, global_exception_handler)  # ty: ignore[invalid-argument-type]  # Starlette type stubs incomplete
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # ty: ignore[invalid-argument-type]  # Starlette type stubs incomplete
    app.add_exception_handler(ProxyError, proxy_exception_handler)  # ty: ignore[invalid-argument-type]  # Starlette type stubs incomplete
