"""
Input context models.

Encapsulates all data required to route an inbound request.
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

QueryValue = Union[str, List[str]]


class IncomingRequest(BaseModel):
    """
    Immutable snapshot of an inbound request.

    This model decouples the routing pipeline from FastAPI's Request object.
    Header keys are stored lower-cased; use ``header()`` for lookups.
    ``body`` is either buffered bytes, an async byte stream (never read until
    the transport needs it) or None.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    method: str
    path_segments: Tuple[str, ...]
    query: Dict[str, QueryValue] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    # bytes, AsyncIterator[bytes] or None; kept as Any so streams are not validated.
    body: Any = None

    @classmethod
    def build(
        cls,
        method: str,
        path: str,
        headers: Any = None,
        query: Any = None,
        body: Optional[Union[bytes, AsyncIterator[bytes]]] = None,
    ) -> "IncomingRequest":
        """
        Create an IncomingRequest from loosely-typed inputs.

        Args:
            method: HTTP method
            path: percent-encoded path below root_path, as received
            headers: mapping or list of (name, value) pairs
            query: mapping of str to str/list, or a Starlette QueryParams
            body: request body or stream
        """
        return cls(
            method=method.upper(),
            path_segments=tuple(segment for segment in path.split("/") if segment),
            query=normalize_query(query),
            headers=normalize_headers(headers),
            body=body,
        )

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)

    @property
    def path(self) -> str:
        return "/".join(self.path_segments)


def normalize_headers(headers: Any) -> Dict[str, str]:
    """Lower-case header names; repeated headers are joined with ', '."""
    if not headers:
        return {}
    items = headers.items() if hasattr(headers, "items") else headers
    if hasattr(headers, "multi_items"):
        items = headers.multi_items()
    result: Dict[str, str] = {}
    for key, value in items:
        key = key.lower()
        if key in result:
            # Cookie is the one header joined with ';' rather than ','.
            separator = "; " if key == "cookie" else ", "
            result[key] = f"{result[key]}{separator}{value}"
        else:
            result[key] = value
    return result


def normalize_query(query: Any) -> Dict[str, QueryValue]:
    """Collapse query parameters into str or list-of-str values."""
    if not query:
        return {}
    if hasattr(query, "multi_items"):
        result: Dict[str, QueryValue] = {}
        for key, value in query.multi_items():
            existing = result.get(key)
            if existing is None:
                result[key] = value
            elif isinstance(existing, list):
                existing.append(value)
            else:
                result[key] = [existing, value]
        return result
    return {
        str(key): [str(v) for v in value] if isinstance(value, (list, tuple)) else str(value)
        for key, value in query.items()
    }
