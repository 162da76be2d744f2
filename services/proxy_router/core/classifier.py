"""
Request classification.

Maps {method, path, headers} to a RouteDecision. Service selection is a
declarative rule table evaluated in fixed priority; the first matching rule
wins and unmatched paths fall through to the General service.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional, Tuple

from ..models.route import RouteDecision, ServiceId

logger = logging.getLogger("proxy_router.classifier")

# Prefixes added by the inbound routing layer that must never reach a backend.
ROUTING_PREFIXES: Tuple[str, ...] = ("api/proxy/", "proxy/")

AUTH_ENDPOINTS = frozenset({"auth/login", "login", "auth/register", "register"})

FORCED_POST_PATTERN = "friends/add"

# Upgrade paths whose service is fixed regardless of the rule table.
WEBSOCKET_SERVICES: Tuple[Tuple[str, ServiceId], ...] = (
    ("messages/ws", ServiceId.GROUP),
    ("presence/ws", ServiceId.PRESENCE),
)


@dataclass(frozen=True)
class ServiceRule:
    """One row of the service selection table."""

    name: str
    matches: Callable[[str], bool]
    service_id: ServiceId
    is_file_request: bool = False


def _is_message_path(path: str) -> bool:
    return (
        path.startswith("message")
        or "/message" in path
        or path.startswith("groups/messages")
        or (path.startswith("group/") and "/messages" in path)
    )


def _is_group_path(path: str) -> bool:
    return (path.startswith("groups") or path.startswith("group")) and "message" not in path


SERVICE_RULES: Tuple[ServiceRule, ...] = (
    ServiceRule("messages", _is_message_path, ServiceId.GROUP),
    ServiceRule("notifications", lambda p: p.startswith("notifications"), ServiceId.NOTIFICATION),
    ServiceRule("presence", lambda p: p.startswith("presence"), ServiceId.PRESENCE),
    ServiceRule("groups", _is_group_path, ServiceId.GROUP),
    ServiceRule(
        "files",
        lambda p: p.startswith("files") or p.startswith("media"),
        ServiceId.FILE,
        is_file_request=True,
    ),
)

DEFAULT_RULE = ServiceRule("default", lambda p: True, ServiceId.GENERAL)


def normalize_path(path_segments: Iterable[str]) -> str:
    """
    Join path segments and strip a duplicated routing prefix.

    Example: ["api", "proxy", "groups", "1"] -> "groups/1"
    """
    path = "/".join(segment for segment in path_segments if segment)
    for prefix in ROUTING_PREFIXES:
        if path.startswith(prefix):
            return path[len(prefix) :]
    return path


def is_auth_endpoint(path: str) -> bool:
    return path in AUTH_ENDPOINTS


def effective_method(method: str, path: str) -> str:
    """Apply forced-method rules; the friends/add endpoint only accepts POST."""
    if FORCED_POST_PATTERN in path:
        return "POST"
    return method.upper()


def is_websocket_upgrade(headers: Mapping[str, str]) -> bool:
    """
    True when Connection contains "upgrade" and Upgrade equals "websocket".

    Header names are matched case-insensitively.
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    connection = (lowered.get("connection") or "").lower()
    upgrade = (lowered.get("upgrade") or "").strip().lower()
    return "upgrade" in connection and upgrade == "websocket"


def select_rule(path: str) -> ServiceRule:
    """Return the first service rule matching the normalized path."""
    for rule in SERVICE_RULES:
        if rule.matches(path):
            return rule
    return DEFAULT_RULE


def websocket_service(path: str) -> Optional[ServiceId]:
    for prefix, service_id in WEBSOCKET_SERVICES:
        if path.startswith(prefix):
            return service_id
    return None


def classify(
    method: str,
    path_segments: Iterable[str],
    headers: Optional[Mapping[str, str]] = None,
    query: Optional[Mapping[str, object]] = None,
) -> RouteDecision:
    """
    Classify an inbound request.

    Never fails: unknown paths are routed to the General service verbatim.
    ``query`` does not influence the decision; it is accepted so callers can
    pass the full request shape.
    """
    path = normalize_path(path_segments)
    method = effective_method(method, path)
    rule = select_rule(path)
    service_id = rule.service_id

    upgrade = is_websocket_upgrade(headers or {})
    if upgrade:
        forced = websocket_service(path)
        if forced is not None:
            service_id = forced

    decision = RouteDecision(
        service_id=service_id,
        path=path,
        method=method,
        is_websocket_upgrade=upgrade,
        is_auth_endpoint=is_auth_endpoint(path),
        is_file_request=rule.is_file_request and service_id is ServiceId.FILE,
    )
    logger.debug(
        "Classified %s %s as %s (rule=%s)",
        method,
        path,
        service_id.value,
        rule.name,
        extra={"websocket": upgrade, "auth_endpoint": decision.is_auth_endpoint},
    )
    return decision
