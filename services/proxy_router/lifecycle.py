"""
Where: services/proxy_router/lifecycle.py
What: Router startup/shutdown orchestration for shared resources.
Why: Keep main.py focused on app assembly while preserving lifecycle behavior.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from services.common.core.http_client import HttpClientFactory

from .config import RouterConfig
from .services.processor import ProxyRequestProcessor
from .services.websocket_relay import WebSocketRelay

logger = logging.getLogger("proxy_router.main")


@asynccontextmanager
async def manage_lifespan(app: FastAPI, router_config: RouterConfig) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    factory = HttpClientFactory(router_config)
    # Redirects are followed the way a browser fetch would follow them.
    client = factory.create_async_client(
        timeout=router_config.UPSTREAM_TIMEOUT, follow_redirects=True
    )

    try:
        upstreams = router_config.upstreams()
        for service_id, base_url in upstreams.base_urls.items():
            logger.info("Upstream %s -> %s", service_id.value, base_url)

        app.state.processor = ProxyRequestProcessor(
            client,
            upstreams,
            relay=WebSocketRelay(open_timeout=router_config.UPSTREAM_TIMEOUT),
            include_stack=not router_config.is_production,
        )

        logger.info("Proxy router initialized with shared resources.")
        yield
    finally:
        logger.info("Proxy router shutting down, closing http client.")
        await client.aclose()
