"""
Credential forwarding.

Derives the outbound Authorization header from the inbound header or the
auth_token cookie, and runs an advisory JWT sanity check. The router never
rejects a request because of its token; backends are the authority.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Union

import jwt
from starlette.requests import cookie_parser

logger = logging.getLogger("proxy_router.credentials")

BEARER_PREFIX = "Bearer "
AUTH_COOKIE = "auth_token"
TOKEN_QUERY_PARAM = "token"


@dataclass(frozen=True)
class TokenInspection:
    """Outcome of the advisory token check."""

    well_formed: bool
    expired: bool = False
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.well_formed and not self.expired


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    name = name.lower()
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def normalize_bearer(value: str) -> str:
    """Ensure exactly one "Bearer " prefix."""
    if value.startswith(BEARER_PREFIX):
        return value
    return f"{BEARER_PREFIX}{value}"


def strip_bearer(value: str) -> str:
    return value[len(BEARER_PREFIX) :] if value.startswith(BEARER_PREFIX) else value


def parse_cookies(cookie_header: Optional[str]) -> Dict[str, str]:
    """Parse a Cookie header into a dict (same rules Starlette applies to requests)."""
    if not cookie_header:
        return {}
    return cookie_parser(cookie_header)


def cookie_token(headers: Mapping[str, str]) -> Optional[str]:
    return parse_cookies(_header(headers, "cookie")).get(AUTH_COOKIE) or None


def attach_credentials(headers: Mapping[str, str], is_auth_endpoint: bool) -> Optional[str]:
    """
    Resolve the outbound Authorization header.

    Args:
        headers: inbound request headers
        is_auth_endpoint: login/register requests never borrow the cookie token

    Returns:
        "Bearer <token>" or None when no credentials are available
    """
    authorization = _header(headers, "authorization")
    if authorization:
        logger.debug("Forwarding Authorization header")
        return normalize_bearer(authorization)

    if is_auth_endpoint:
        logger.debug("Auth endpoint detected - skipping token extraction")
        return None

    token = cookie_token(headers)
    if token:
        logger.debug("Using auth_token cookie for Authorization")
        return normalize_bearer(token)

    logger.debug("No authentication credentials found")
    return None


def websocket_authorization(
    headers: Mapping[str, str], query: Mapping[str, Union[str, list]]
) -> Optional[str]:
    """
    Authorization for an upgrade request.

    Precedence: existing header, then ``token`` query parameter, then the
    auth_token cookie.
    """
    authorization = _header(headers, "authorization")
    if authorization:
        return normalize_bearer(authorization)

    token = query.get(TOKEN_QUERY_PARAM)
    if isinstance(token, list):
        token = token[0] if token else None
    if not token:
        token = cookie_token(headers)
    return normalize_bearer(token) if token else None


def inspect_token(token: Optional[str], now: Optional[float] = None) -> TokenInspection:
    """
    Best-effort structural check of a bearer token.

    The signature is not verified (the router holds no keys); only the
    header.payload.signature shape and the ``exp`` claim are examined.
    """
    if not token:
        return TokenInspection(well_formed=False, reason="missing")

    token = strip_bearer(token)
    if token.count(".") != 2 or not all(token.split(".")):
        return TokenInspection(well_formed=False, reason="not a JWT")

    try:
        claims = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False},
            algorithms=None,
        )
    except jwt.exceptions.PyJWTError as e:
        return TokenInspection(well_formed=False, reason=f"undecodable: {e}")

    exp = claims.get("exp")
    if exp is not None:
        try:
            expired = (now if now is not None else time.time()) >= float(exp)
        except (TypeError, ValueError):
            return TokenInspection(well_formed=True, reason="invalid exp claim")
        if expired:
            return TokenInspection(well_formed=True, expired=True, reason="expired")

    return TokenInspection(well_formed=True)


def check_token(authorization: Optional[str]) -> TokenInspection:
    """
    Run inspect_token and log the outcome. Never raises, never blocks.
    """
    result = inspect_token(authorization)
    if not authorization:
        logger.debug("Token check skipped: no token; proceeding without credentials")
        return result
    if result.ok:
        logger.debug("Token validation successful")
        return result

    token = strip_bearer(authorization) if authorization else None
    logger.warning(
        "Token check failed (%s); proceeding with request",
        result.reason,
        extra={"token_prefix": f"{token[:10]}..." if token else None},
    )
    return result
