"""
Upstream URL resolution.

Turns a RouteDecision into an absolute upstream URL:

    base = ensure_scheme(base_url(service))
    url  = base + "/" + path        (runs of "/" collapsed outside "://")
    url += "?" + urlencode(query)   (unless a rewrite embedded the query)

Service-specific rewrites are an ordered table evaluated before the generic
construction. Message id rules sit before the /read, /search and
/unread-count rule so that e.g. DELETE message/5/read still targets
messages/5.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote, urlencode

import httpx

from ..config import ensure_scheme
from ..models.route import ServiceId, UpstreamServices
from .exceptions import UrlResolutionError

logger = logging.getLogger("proxy_router.url_resolver")

QueryMapping = Mapping[str, Union[str, List[str]]]

_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*://)(.*)$", re.DOTALL)
_SLASH_RUN_RE = re.compile(r"/{2,}")

# Characters encodeURIComponent leaves untouched in addition to [A-Za-z0-9_.-~].
_COMPONENT_SAFE = "!*'()"

_VALID_SCHEMES = frozenset({"http", "https", "ws", "wss"})


@dataclass(frozen=True)
class Rewrite:
    """Upstream path (relative to the base URL) and an optional embedded query string."""

    path: str
    query_string: Optional[str] = None
    consumed_params: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RewriteRule:
    """One row of the rewrite table."""

    name: str
    matches: Callable[[ServiceId, str, str, QueryMapping], bool]
    rewrite: Callable[[str, QueryMapping], Rewrite]


def collapse_slashes(url: str) -> str:
    """Collapse duplicate "/" everywhere except the scheme separator."""
    match = _SCHEME_RE.match(url)
    if match:
        return match.group(1) + _SLASH_RUN_RE.sub("/", match.group(2))
    return _SLASH_RUN_RE.sub("/", url)


def to_websocket_url(url: str) -> str:
    """Map http -> ws and https -> wss; other schemes are returned unchanged."""
    if url.startswith("https://"):
        return "wss://" + url[len("https://") :]
    if url.startswith("http://"):
        return "ws://" + url[len("http://") :]
    return url


def encode_id_list(raw: str) -> str:
    """
    Encode a comma separated id list component by component.

    Each id is trimmed and percent-encoded on its own, then the ids are joined
    with literal commas so the backend can split them again.
    """
    return ",".join(quote(part.strip(), safe=_COMPONENT_SAFE) for part in raw.split(","))


def _segments(path: str) -> List[str]:
    return path.split("/")


def _is_message_item(path: str) -> bool:
    is_message = path.startswith("messages/") or path.startswith("message/")
    return is_message and len(_segments(path)) >= 2


def _message_id_path(path: str, query: QueryMapping) -> Rewrite:
    return Rewrite(path=f"messages/{_segments(path)[1]}")


def _presence_users(path: str, query: QueryMapping) -> Rewrite:
    user_ids = query.get("user_ids")
    if user_ids is None:
        return Rewrite(path="presence/users")

    if isinstance(user_ids, str) and "," in user_ids:
        try:
            query_string = f"user_ids={encode_id_list(user_ids)}"
        except (UnicodeEncodeError, TypeError) as e:
            logger.warning("Failed to encode presence user_ids, using standard encoding: %s", e)
            query_string = urlencode({"user_ids": user_ids})
    else:
        query_string = urlencode({"user_ids": user_ids}, doseq=True)

    return Rewrite(path="presence/users", query_string=query_string, consumed_params=("user_ids",))


def _file_path(path: str, query: QueryMapping) -> Rewrite:
    # files/<rest> and media/<rest> map onto the file service's /api prefix.
    return Rewrite(path=f"api/{path}")


REWRITE_RULES: Tuple[RewriteRule, ...] = (
    RewriteRule(
        "message-history",
        lambda service, path, method, query: path in ("messages/history", "message/history"),
        lambda path, query: Rewrite(path="messages/history"),
    ),
    RewriteRule(
        "presence-users",
        lambda service, path, method, query: path == "presence/users" and bool(query),
        _presence_users,
    ),
    RewriteRule(
        "message-get",
        lambda service, path, method, query: (
            path.startswith("message/") and len(_segments(path)) == 2 and method == "GET"
        ),
        _message_id_path,
    ),
    RewriteRule(
        "message-delete",
        lambda service, path, method, query: _is_message_item(path) and method == "DELETE",
        _message_id_path,
    ),
    RewriteRule(
        "message-update",
        lambda service, path, method, query: _is_message_item(path) and method in ("PUT", "PATCH"),
        _message_id_path,
    ),
    RewriteRule(
        "message-create",
        lambda service, path, method, query: path in ("messages", "message") and method == "POST",
        lambda path, query: Rewrite(path="messages"),
    ),
    RewriteRule(
        "message-actions",
        lambda service, path, method, query: (
            (path.startswith("messages/") or path.startswith("message/"))
            and any(marker in path for marker in ("/read", "/search", "/unread-count"))
        ),
        lambda path, query: Rewrite(
            path="messages/" + path[len("message/") :] if path.startswith("message/") else path
        ),
    ),
    RewriteRule(
        "file-service",
        lambda service, path, method, query: service is ServiceId.FILE,
        _file_path,
    ),
)


def select_rewrite(
    service_id: ServiceId, path: str, method: str, query: QueryMapping
) -> Tuple[str, Rewrite]:
    """Return (rule name, rewrite) for the first matching rule, or the verbatim path."""
    for rule in REWRITE_RULES:
        if rule.matches(service_id, path, method, query):
            return rule.name, rule.rewrite(path, query)
    return "generic", Rewrite(path=path)


def is_valid_url(url: str) -> bool:
    """Absolute http(s)/ws(s) URL with a host and no empty path segments."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError, ValueError):
        return False
    if parsed.scheme not in _VALID_SCHEMES or not parsed.host:
        return False
    without_scheme = url.split("://", 1)[-1]
    return "//" not in without_scheme.split("?", 1)[0]


class UrlResolver:
    """
    Resolve upstream URLs against the configured backend services.
    """

    def __init__(self, upstreams: UpstreamServices):
        self.upstreams = upstreams

    def base_url(self, service_id: ServiceId) -> str:
        return ensure_scheme(self.upstreams.base_url(service_id)).rstrip("/")

    def resolve(
        self,
        service_id: ServiceId,
        path: str,
        method: str = "GET",
        query: Optional[QueryMapping] = None,
    ) -> str:
        """
        Build the absolute upstream URL.

        Args:
            service_id: target service from the classifier
            path: normalized path (no leading slash, routing prefixes stripped)
            method: effective HTTP method
            query: inbound query parameters

        Returns:
            Absolute URL with scheme

        Raises:
            UrlResolutionError: URL still invalid after one repair pass
        """
        query = query or {}
        method = method.upper()
        rule_name, rewrite = select_rewrite(service_id, path, method, query)

        url = collapse_slashes(f"{self.base_url(service_id)}/{rewrite.path}")
        url = url.rstrip("/") if rewrite.path == "" else url

        query_parts = []
        if rewrite.query_string:
            query_parts.append(rewrite.query_string)
        remaining = {k: v for k, v in query.items() if k not in rewrite.consumed_params}
        if remaining:
            query_parts.append(urlencode(remaining, doseq=True))
        if query_parts:
            url = f"{url}?{'&'.join(query_parts)}"

        url = self._validate(url)
        logger.debug(
            "Resolved %s %s -> %s",
            method,
            path,
            url,
            extra={"service": service_id.value, "rewrite_rule": rule_name},
        )
        return url

    def resolve_websocket(
        self, service_id: ServiceId, path: str, query: Optional[QueryMapping] = None
    ) -> str:
        """Resolve an upgrade target and switch it to the ws/wss scheme."""
        return to_websocket_url(self.resolve(service_id, path, "GET", query))

    def websocket_discovery_url(self, token: str) -> str:
        """
        URL a client can use to reach the presence socket directly.

        The presence base loses its "/api" prefix because the socket endpoint
        is mounted at the service root.
        """
        base = to_websocket_url(self.base_url(ServiceId.PRESENCE)).replace("/api", "", 1)
        return f"{base}/presence/ws?{urlencode({'token': token})}"

    def _validate(self, url: str) -> str:
        if is_valid_url(url):
            return url

        logger.warning("Invalid upstream URL detected, attempting repair: %s", url)
        repaired = collapse_slashes(ensure_scheme(url))
        if is_valid_url(repaired):
            logger.info("Repaired upstream URL: %s", repaired)
            return repaired

        raise UrlResolutionError(url)
