"""
Services package.

Provides the client channel, body transport, response normalization and
WebSocket relay used by the request processor.
"""

from .client_channel import ClientChannel
from .processor import ProxyRequestProcessor
from .websocket_relay import DuplexPipe, WebSocketRelay

__all__ = [
    "ClientChannel",
    "ProxyRequestProcessor",
    "DuplexPipe",
    "WebSocketRelay",
]
