"""
Response normalization.

Converts an upstream httpx response into a ProxyOutcome, and a ProxyOutcome
into a Starlette Response.
"""

import json
import logging
from http import HTTPStatus
from typing import Any, Dict

import httpx
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from ..models.result import BodyKind, ProxyOutcome
from ..models.route import RouteDecision, ServiceId
from .body_transport import HOP_BY_HOP_HEADERS

logger = logging.getLogger("proxy_router.response_normalizer")

# Framing headers describe the upstream hop and are recomputed by the server.
# httpx decodes Content-Encoding, so the relayed bytes are the identity body.
_STREAM_SKIPPED_HEADERS = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}

_NO_BODY_STATUSES = frozenset({204, 304})


def is_json_content_type(content_type: str) -> bool:
    return "application/json" in content_type.lower()


def status_text(response: httpx.Response) -> str:
    """Backend reason phrase, falling back to the standard phrase for the code."""
    if response.reason_phrase:
        return response.reason_phrase
    try:
        return HTTPStatus(response.status_code).phrase
    except ValueError:
        return ""


def is_binary_download(response: httpx.Response, decision: RouteDecision) -> bool:
    return (
        decision.service_id is ServiceId.FILE
        and decision.method == "GET"
        and not is_json_content_type(response.headers.get("content-type", ""))
    )


def stream_headers(response: httpx.Response) -> Dict[str, str]:
    """Every backend header except hop-by-hop framing headers."""
    return {
        key: value
        for key, value in response.headers.items()
        if key.lower() not in _STREAM_SKIPPED_HEADERS
    }


async def normalize_error(response: httpx.Response) -> ProxyOutcome:
    """
    Pass a non-2xx upstream response through with its status preserved.

    JSON objects gain ``status`` and ``statusText``; anything else is wrapped
    as ``{error, message, status, statusText}``.
    """
    reason = status_text(response)
    content_type = response.headers.get("content-type", "")

    try:
        await response.aread()
        if is_json_content_type(content_type):
            body: Any = response.json()
        else:
            body = response.text
    except (httpx.HTTPError, ValueError, UnicodeDecodeError) as e:
        logger.warning("Error parsing upstream error response: %s", e)
        body = "Error parsing response"

    if isinstance(body, dict):
        payload = {**body, "status": response.status_code, "statusText": reason}
    else:
        message = body if isinstance(body, str) else json.dumps(body)
        payload = {
            "error": True,
            "message": message,
            "status": response.status_code,
            "statusText": reason,
        }

    logger.info(
        "Upstream returned %s",
        response.status_code,
        extra={"upstream_url": str(response.request.url), "status": response.status_code},
    )
    return ProxyOutcome.json(payload, status_code=response.status_code)


def parse_failure(response: httpx.Response) -> ProxyOutcome:
    return ProxyOutcome.json(
        {"error": "Failed to parse response"}, status_code=response.status_code
    )


async def normalize_success(response: httpx.Response) -> ProxyOutcome:
    content_type = response.headers.get("content-type", "")
    try:
        raw = await response.aread()
    except httpx.HTTPError as e:
        logger.error("Failed to read upstream response: %s", e)
        return parse_failure(response)

    if response.status_code in _NO_BODY_STATUSES or not raw:
        return ProxyOutcome(status_code=response.status_code, media_type=content_type or None)

    try:
        if is_json_content_type(content_type):
            return ProxyOutcome.json(json.loads(raw), status_code=response.status_code)
        return ProxyOutcome.plain(
            response.text, status_code=response.status_code, media_type=content_type or None
        )
    except (ValueError, UnicodeDecodeError) as e:
        logger.warning(
            "Failed to parse upstream response: %s",
            e,
            extra={"snippet": raw[:200].decode("utf-8", "replace"), "status": response.status_code},
        )
        return parse_failure(response)


async def normalize_response(response: httpx.Response, decision: RouteDecision) -> ProxyOutcome:
    """
    Turn a streamed upstream response into a ProxyOutcome.

    Buffered outcomes close the upstream response before returning. A binary
    download hands ownership of the open response to the outcome's closer.

    Args:
        response: response opened with ``send(stream=True)``
        decision: classification of the originating request
    """
    if not response.is_success:
        try:
            return await normalize_error(response)
        finally:
            await response.aclose()

    if is_binary_download(response, decision):
        logger.debug(
            "Streaming binary response",
            extra={"content_type": response.headers.get("content-type")},
        )
        return ProxyOutcome(
            status_code=response.status_code,
            headers=stream_headers(response),
            kind=BodyKind.STREAM,
            stream=response.aiter_bytes(),
            closer=response.aclose,
        )

    try:
        return await normalize_success(response)
    finally:
        await response.aclose()


def render_outcome(outcome: ProxyOutcome) -> Response:
    """Materialize a ProxyOutcome as a Starlette Response."""
    if outcome.kind is BodyKind.STREAM:
        return StreamingResponse(
            outcome.stream,
            status_code=outcome.status_code,
            headers=outcome.headers,
            background=BackgroundTask(outcome.closer) if outcome.closer else None,
        )
    if outcome.kind is BodyKind.JSON:
        return JSONResponse(
            content=outcome.json_body, status_code=outcome.status_code, headers=outcome.headers
        )
    if outcome.kind is BodyKind.TEXT:
        return Response(
            content=outcome.text,
            status_code=outcome.status_code,
            headers=outcome.headers,
            media_type=outcome.media_type or "text/plain",
        )
    return Response(
        status_code=outcome.status_code, headers=outcome.headers, media_type=outcome.media_type
    )
