"""
Dependency Injection for the proxy router API.

Manage request handler dependencies using FastAPI Depends.
"""

from typing import Annotated
from urllib.parse import quote

from fastapi import Depends, Request
from starlette.types import Scope

from ..models import IncomingRequest
from ..services.client_channel import ClientChannel
from ..services.processor import ProxyRequestProcessor

# RFC 3986 pchar delimiters, kept literal when re-encoding a decoded path.
_PATH_SAFE = "/:@!$&'()*+,;="


# ==========================================
# 1. Service Accessors
# ==========================================


def get_processor(request: Request) -> ProxyRequestProcessor:
    return request.app.state.processor


async def get_client_channel(request: Request) -> ClientChannel:
    return ClientChannel(request.receive)


# Service Dependency Type Aliases
ProcessorDep = Annotated[ProxyRequestProcessor, Depends(get_processor)]
ClientChannelDep = Annotated[ClientChannel, Depends(get_client_channel)]


# ==========================================
# 2. Request Snapshot
# ==========================================


def route_path(scope: Scope) -> str:
    """
    Path below ``root_path`` as the client sent it, without the leading slash.

    Escapes such as %2F, %3F and %23 stay escaped, so each segment reaches
    the upstream with the meaning it had for the client.
    """
    raw_path = scope.get("raw_path")
    if raw_path is not None:
        path = raw_path.decode("latin-1")
    else:
        path = quote(scope["path"], safe=_PATH_SAFE)

    root_path = scope.get("root_path", "")
    if root_path and (path == root_path or path.startswith(f"{root_path}/")):
        path = path[len(root_path) :]
    return path.lstrip("/")


async def build_incoming_request(request: Request, channel: ClientChannelDep) -> IncomingRequest:
    """
    Snapshot a FastAPI Request for the routing pipeline.

    The body is handed over as the channel's unread stream; the transport
    decides whether to buffer it.
    """
    return IncomingRequest.build(
        method=request.method,
        path=route_path(request.scope),
        headers=request.headers,
        query=request.query_params,
        body=channel.body(),
    )


IncomingRequestDep = Annotated[IncomingRequest, Depends(build_incoming_request)]
