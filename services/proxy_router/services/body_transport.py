"""
Request body transport.

Chooses how a request body reaches the upstream:

- NONE: GET/HEAD/OPTIONS and upgrades never read a body
- JSON: body buffered, parsed and re-serialized before any network call
- MULTIPART: inbound byte stream forwarded untouched, never buffered
- WEBSOCKET: handled by the relay, no HTTP body
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, Mapping, Optional
from urllib.parse import parse_qs

from ..core.exceptions import RequestBodyError
from ..models.context import IncomingRequest
from ..models.route import TransportMode

logger = logging.getLogger("proxy_router.body_transport")

BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# Hop-by-hop headers that must be removed by proxies (RFC 2616)
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "host",
    }
)

# Set explicitly on multipart requests, never copied from the inbound request.
_MULTIPART_EXPLICIT = frozenset({"content-type", "content-length", "authorization"})


def is_multipart(content_type: Optional[str]) -> bool:
    return bool(content_type) and "multipart/form-data" in content_type.lower()


def select_transport_mode(
    method: str, headers: Mapping[str, str], is_websocket: bool = False
) -> TransportMode:
    """
    Pick exactly one transport mode for a request.

    Args:
        method: effective HTTP method
        headers: inbound headers (lower-cased keys)
        is_websocket: classifier's upgrade detection
    """
    if is_websocket:
        return TransportMode.WEBSOCKET
    if method.upper() not in BODY_METHODS:
        return TransportMode.NONE
    if is_multipart(headers.get("content-type")):
        return TransportMode.MULTIPART
    return TransportMode.JSON


def json_headers(authorization: Optional[str]) -> Dict[str, str]:
    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    if authorization:
        headers["Authorization"] = authorization
    return headers


def multipart_headers(inbound: Mapping[str, str], authorization: Optional[str]) -> Dict[str, str]:
    """
    Headers for a streamed multipart upload.

    End-to-end inbound headers are forwarded; Content-Type is copied verbatim
    so the boundary survives, Content-Length and Authorization are applied
    explicitly.
    """
    headers = {
        key: value
        for key, value in inbound.items()
        if key.lower() not in HOP_BY_HOP_HEADERS and key.lower() not in _MULTIPART_EXPLICIT
    }
    content_type = inbound.get("content-type")
    if content_type:
        headers["Content-Type"] = content_type
    content_length = inbound.get("content-length")
    if content_length:
        headers["Content-Length"] = content_length
    if authorization:
        headers["Authorization"] = authorization
    return headers


async def read_body(body: Any) -> bytes:
    """Buffer a body that may be bytes, an async byte stream or None."""
    if body is None:
        return b""
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    chunks = []
    async for chunk in body:
        chunks.append(chunk)
    return b"".join(chunks)


async def stream_body(body: Any) -> AsyncIterator[bytes]:
    """Yield the inbound body chunk by chunk without buffering it."""
    if body is None:
        return
    if isinstance(body, (bytes, bytearray)):
        if body:
            yield bytes(body)
        return
    async for chunk in body:
        if chunk:
            yield chunk


def _parse_body(raw: bytes, content_type: str) -> Any:
    text = raw.decode("utf-8")
    if "application/x-www-form-urlencoded" in content_type:
        form = parse_qs(text, keep_blank_values=True)
        return {key: values[0] if len(values) == 1 else values for key, values in form.items()}
    if "json" in content_type:
        return json.loads(text)
    # Untyped bodies: JSON when they parse, otherwise forwarded as a JSON string.
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


async def build_json_payload(
    request: IncomingRequest, is_auth_endpoint: bool = False
) -> Optional[bytes]:
    """
    Buffer and re-serialize the inbound body as JSON.

    Returns:
        Encoded JSON, or None when the request carried no body

    Raises:
        RequestBodyError: the body could not be read, decoded or serialized
    """
    try:
        raw = await read_body(request.body)
        if not raw.strip():
            return None
        payload = _parse_body(raw, (request.header("content-type") or "").lower())
        if is_auth_endpoint:
            log_auth_payload(payload)
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")
    except (ValueError, TypeError, UnicodeDecodeError) as e:
        logger.error("Error reading JSON body: %s", e)
        raise RequestBodyError(e) from e


def log_auth_payload(payload: Any) -> None:
    """
    Log login/register payloads with the password masked, and warn on common
    email domain typos. Advisory only.
    """
    if not isinstance(payload, dict) or not payload.get("email"):
        return

    masked = dict(payload)
    if masked.get("password"):
        masked["password"] = "********"
    logger.info("Auth request body", extra={"body": masked})

    email = str(payload["email"])
    if "@gmail.coma" in email:
        logger.warning("Email contains typo - @gmail.coma instead of @gmail.com")
    elif email.endswith(".coma"):
        logger.warning("Email contains typo - domain ends with .coma instead of .com")
    elif ".con" in email:
        logger.warning("Email contains typo - .con instead of .com")
