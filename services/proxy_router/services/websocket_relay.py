"""
WebSocket relay.

Terminates the client's upgrade, opens a matching upstream connection and
pumps frames both ways until either peer closes. Frame contents are never
inspected.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from ..core.exceptions import WebSocketRelayError

logger = logging.getLogger("proxy_router.websocket_relay")

# Reserved codes that may be observed but never sent in a close frame.
_UNSENDABLE_CLOSE_CODES = frozenset({1005, 1006, 1015})
NORMAL_CLOSURE = 1000
INTERNAL_ERROR = 1011


def _sendable_code(code: Optional[int]) -> int:
    if code is None or code in _UNSENDABLE_CLOSE_CODES:
        return NORMAL_CLOSURE
    return code


def requested_subprotocols(header: Optional[str]) -> List[str]:
    if not header:
        return []
    return [value.strip() for value in header.split(",") if value.strip()]


class DuplexPipe:
    """
    Bidirectional frame pump between a client WebSocket (Starlette) and an
    upstream connection (websockets).

    Both directions run as tasks; when either finishes the other is cancelled
    and both peers are closed, so one side closing always tears down the pair.
    """

    def __init__(self, client: WebSocket, upstream: Any):
        self.client = client
        self.upstream = upstream
        self.close_code: Optional[int] = None

    async def client_to_upstream(self) -> None:
        while True:
            message = await self.client.receive()
            if message["type"] == "websocket.disconnect":
                self.close_code = message.get("code", NORMAL_CLOSURE)
                return
            if message.get("text") is not None:
                await self.upstream.send(message["text"])
            elif message.get("bytes") is not None:
                await self.upstream.send(message["bytes"])

    async def upstream_to_client(self) -> None:
        try:
            async for message in self.upstream:
                if isinstance(message, (bytes, bytearray)):
                    await self.client.send_bytes(bytes(message))
                else:
                    await self.client.send_text(message)
        except ConnectionClosed:
            pass
        self.close_code = getattr(self.upstream, "close_code", None)

    async def run(self) -> None:
        tasks = [
            asyncio.create_task(self.client_to_upstream(), name="ws-client-to-upstream"),
            asyncio.create_task(self.upstream_to_client(), name="ws-upstream-to-client"),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                exc = task.exception()
                if exc is not None and not isinstance(exc, (ConnectionClosed, WebSocketDisconnect)):
                    logger.warning("WebSocket relay direction failed: %s", exc)
                    self.close_code = INTERNAL_ERROR
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self.close()

    async def close(self) -> None:
        code = _sendable_code(self.close_code)
        try:
            await self.upstream.close(code=code)
        except Exception as e:
            logger.debug("Upstream WebSocket close failed: %s", e)

        if (
            self.client.application_state == WebSocketState.CONNECTED
            and self.client.client_state == WebSocketState.CONNECTED
        ):
            try:
                await self.client.close(code=code)
            except RuntimeError as e:
                logger.debug("Client WebSocket already closed: %s", e)


class WebSocketRelay:
    """
    Opens upstream WebSocket connections and relays them to clients.
    """

    def __init__(self, connector: Callable[..., Any] = connect, open_timeout: float = 10.0):
        self.connector = connector
        self.open_timeout = open_timeout

    async def open_upstream(
        self,
        url: str,
        authorization: Optional[str],
        origin: Optional[str],
        subprotocols: List[str],
    ) -> Any:
        headers = {"Authorization": authorization} if authorization else {}
        try:
            return await self.connector(
                url,
                additional_headers=headers,
                origin=origin,
                subprotocols=subprotocols or None,
                open_timeout=self.open_timeout,
            )
        except (InvalidHandshake, InvalidURI, OSError, asyncio.TimeoutError) as e:
            raise WebSocketRelayError(url, e) from e

    async def relay(
        self,
        websocket: WebSocket,
        url: str,
        authorization: Optional[str] = None,
    ) -> None:
        """
        Proxy one client connection to ``url`` for its whole lifetime.

        A failed upstream handshake is reported to the client as close code
        1011 with a descriptive reason; it never propagates.
        """
        subprotocols = requested_subprotocols(websocket.headers.get("sec-websocket-protocol"))
        try:
            upstream = await self.open_upstream(
                url, authorization, websocket.headers.get("origin"), subprotocols
            )
        except WebSocketRelayError as e:
            logger.error("WebSocket proxy error: %s", e, extra={"upstream_url": url})
            await websocket.accept()
            await websocket.close(
                code=INTERNAL_ERROR, reason="Failed to establish WebSocket connection"
            )
            return

        logger.info("Proxying WebSocket", extra={"upstream_url": url})
        await websocket.accept(subprotocol=getattr(upstream, "subprotocol", None))
        await DuplexPipe(websocket, upstream).run()
