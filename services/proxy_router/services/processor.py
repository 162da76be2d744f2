"""
Proxy Request Processor - Service Layer

Standardizes the flow: IncomingRequest -> RouteDecision -> UpstreamTarget -> ProxyOutcome.
"""

import logging
from typing import Any, Optional

import httpx
from fastapi import WebSocket

from services.proxy_router.core.classifier import classify
from services.proxy_router.core.credentials import (
    TOKEN_QUERY_PARAM,
    attach_credentials,
    check_token,
    websocket_authorization,
)
from services.proxy_router.core.exceptions import (
    MissingTokenError,
    ProxyError,
    UpstreamTransportError,
    WebSocketRelayError,
    proxy_error_body,
)
from services.proxy_router.core.url_resolver import UrlResolver
from services.proxy_router.models.context import IncomingRequest
from services.proxy_router.models.result import ProxyOutcome
from services.proxy_router.models.route import (
    RouteDecision,
    TransportMode,
    UpstreamServices,
    UpstreamTarget,
)
from services.proxy_router.services.body_transport import (
    build_json_payload,
    json_headers,
    multipart_headers,
    select_transport_mode,
    stream_body,
)
from services.proxy_router.services.response_normalizer import normalize_response
from services.proxy_router.services.websocket_relay import INTERNAL_ERROR, WebSocketRelay

logger = logging.getLogger("proxy_router.processor")

WEBSOCKET_DISCOVERY_MARKER = "presence/ws"


class ProxyRequestProcessor:
    """
    Orchestrates the request processing lifecycle.

    Header resolution completes before the body is transported, and the body
    is transported before the response is normalized. Exactly one
    ProxyOutcome is produced per request.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        upstreams: UpstreamServices,
        relay: Optional[WebSocketRelay] = None,
        include_stack: bool = True,
    ):
        self.client = client
        self.resolver = UrlResolver(upstreams)
        self.relay = relay or WebSocketRelay()
        self.include_stack = include_stack

    async def process(self, request: IncomingRequest) -> ProxyOutcome:
        """
        Process an HTTP request from IncomingRequest to ProxyOutcome.

        Router failures are converted to a Proxy Error outcome here; upstream
        non-2xx responses are not failures and pass through normalized.
        """
        try:
            return await self._dispatch(request)
        except ProxyError as e:
            logger.error(
                f"Proxy error: {e}",
                extra={
                    "path": request.path,
                    "method": request.method,
                    "error_type": type(e).__name__,
                },
            )
            return self.error_outcome(e, e.status_code)
        except Exception as e:
            logger.exception(f"Unexpected error in request processor: {e}")
            return self.error_outcome(e, 500)

    def error_outcome(self, exc: BaseException, status_code: int) -> ProxyOutcome:
        return ProxyOutcome.json(
            proxy_error_body(exc, include_stack=self.include_stack), status_code=status_code
        )

    async def _dispatch(self, request: IncomingRequest) -> ProxyOutcome:
        decision = classify(request.method, request.path_segments, request.headers, request.query)

        mode = select_transport_mode(
            decision.method, request.headers, decision.is_websocket_upgrade
        )
        if mode is TransportMode.WEBSOCKET:
            url = self.resolver.resolve_websocket(decision.service_id, decision.path, request.query)
            raise WebSocketRelayError(url, RuntimeError("upgrade was not negotiated by the server"))

        if WEBSOCKET_DISCOVERY_MARKER in decision.path:
            return self.websocket_discovery(request)

        # 1. Headers
        url = self.resolver.resolve(
            decision.service_id, decision.path, decision.method, request.query
        )
        authorization = attach_credentials(request.headers, decision.is_auth_endpoint)
        if not decision.is_auth_endpoint:
            check_token(authorization)

        # 2. Body
        content: Any = None
        if mode is TransportMode.MULTIPART:
            headers = multipart_headers(request.headers, authorization)
            content = stream_body(request.body)
        else:
            headers = json_headers(authorization)
            if mode is TransportMode.JSON:
                content = await build_json_payload(request, decision.is_auth_endpoint)

        target = UpstreamTarget(url=url, method=decision.method, headers=headers, mode=mode)
        logger.info(
            f"Forwarding {target.method} {decision.path} to {decision.service_id.value}",
            extra={"upstream_url": target.url, "transport": mode.value},
        )
        response = await self.send(target, content)

        # 3. Response
        return await normalize_response(response, decision)

    async def send(self, target: UpstreamTarget, content: Any = None) -> httpx.Response:
        """
        Issue the outbound request and return the response unread.

        Raises:
            UpstreamTransportError: the backend could not be reached
        """
        upstream_request = self.client.build_request(
            target.method, target.url, headers=target.headers, content=content
        )
        try:
            return await self.client.send(upstream_request, stream=True)
        except httpx.RequestError as e:
            action = (
                "proxy file upload"
                if target.mode is TransportMode.MULTIPART
                else "forward request"
            )
            logger.error(
                f"Upstream request failed: {e}",
                extra={
                    "upstream_url": target.url,
                    "error_type": type(e).__name__,
                    "transport": target.mode.value,
                },
            )
            raise UpstreamTransportError(target.url, e, action) from e

    def websocket_discovery(self, request: IncomingRequest) -> ProxyOutcome:
        """Tell a client where to open its presence socket directly."""
        token = request.query.get(TOKEN_QUERY_PARAM)
        if isinstance(token, list):
            token = token[0] if token else None
        if not token:
            raise MissingTokenError()
        return ProxyOutcome.json({"wsUrl": self.resolver.websocket_discovery_url(token)})

    def websocket_decision(self, request: IncomingRequest) -> RouteDecision:
        # The ASGI websocket scope is itself the negotiated upgrade.
        headers = {**request.headers, "connection": "upgrade", "upgrade": "websocket"}
        return classify(request.method, request.path_segments, headers, request.query)

    async def open_websocket(self, websocket: WebSocket, request: IncomingRequest) -> None:
        """
        Relay a client WebSocket to its upstream for the connection's lifetime.

        Failures close the client socket with 1011; they never propagate.
        """
        decision = self.websocket_decision(request)
        try:
            url = self.resolver.resolve_websocket(decision.service_id, decision.path, request.query)
        except ProxyError as e:
            logger.error(f"WebSocket proxy error: {e}", extra={"path": request.path})
            await websocket.accept()
            await websocket.close(
                code=INTERNAL_ERROR, reason="Failed to establish WebSocket connection"
            )
            return

        authorization = websocket_authorization(request.headers, request.query)
        await self.relay.relay(websocket, url, authorization)
