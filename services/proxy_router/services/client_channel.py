"""
Inbound client channel.

Owns the ASGI receive callable for one proxied HTTP exchange. Body chunks are
handed to the transport as they arrive, and a disconnect from the client
cancels the upstream call that is still in flight.
"""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Optional, TypeVar

from starlette.types import Receive

logger = logging.getLogger("proxy_router.client_channel")

T = TypeVar("T")

# nginx's "client closed request"; the client never sees it, the access log does.
CLIENT_CLOSED_REQUEST = 499

# A single chunk in flight keeps backpressure on the client.
_CHUNK_QUEUE_SIZE = 1


class ClientChannel:
    """
    Single reader of the inbound receive channel.

    ``watch`` is the only caller of ``receive``: it feeds request body chunks
    to ``body()`` and keeps listening after the body ends, so an
    ``http.disconnect`` is noticed whatever the exchange is waiting on.
    """

    def __init__(self, receive: Receive):
        self._receive = receive
        self._chunks: asyncio.Queue = asyncio.Queue(maxsize=_CHUNK_QUEUE_SIZE)
        self.disconnected = False

    async def body(self) -> AsyncIterator[bytes]:
        more_body = True
        while more_body:
            chunk, more_body = await self._chunks.get()
            if chunk:
                yield chunk

    async def watch(self) -> None:
        """Read receive until the client disconnects."""
        body_pending = True
        while True:
            message = await self._receive()
            if message["type"] == "http.disconnect":
                self.disconnected = True
                return
            if message["type"] == "http.request" and body_pending:
                body_pending = message.get("more_body", False)
                await self._chunks.put((message.get("body", b""), body_pending))

    async def run(self, work: Awaitable[T]) -> Optional[T]:
        """
        Await ``work`` while watching the client.

        Returns:
            The result of ``work``, or None when the client disconnected first
            and ``work`` was cancelled.
        """
        work_task = asyncio.ensure_future(work)
        watch_task = asyncio.create_task(self.watch(), name="client-disconnect-watch")
        tasks = [work_task, watch_task]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if not work_task.cancelled():
            return work_task.result()

        watch_error = None if watch_task.cancelled() else watch_task.exception()
        if watch_error is not None:
            raise watch_error
        logger.info("Client disconnected; upstream call cancelled")
        return None
