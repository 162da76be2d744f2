"""
Core logic package.

Provides request classification, URL resolution and credential forwarding.
"""

from .classifier import classify, normalize_path
from .credentials import attach_credentials, check_token, inspect_token, websocket_authorization
from .url_resolver import UrlResolver, collapse_slashes, to_websocket_url

__all__ = [
    "classify",
    "normalize_path",
    "attach_credentials",
    "check_token",
    "inspect_token",
    "websocket_authorization",
    "UrlResolver",
    "collapse_slashes",
    "to_websocket_url",
]
