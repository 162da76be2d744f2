"""
Proxy outcome models.

Standardizes the output of the routing pipeline before it becomes a
Starlette Response.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class BodyKind(str, Enum):
    EMPTY = "empty"
    JSON = "json"
    TEXT = "text"
    STREAM = "stream"


class ProxyOutcome(BaseModel):
    """
    Terminal value for one inbound request.

    ``kind`` says which of ``json_body``, ``text`` or ``stream`` carries the
    body, so a JSON ``null`` can be told apart from an empty response.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status_code: int = 200
    headers: Dict[str, str] = Field(default_factory=dict)
    kind: BodyKind = BodyKind.EMPTY
    json_body: Any = None
    text: Optional[str] = None
    # AsyncIterator[bytes]; Any so the iterator is not consumed by validation.
    stream: Any = None
    # Awaitable callback releasing the upstream response once the stream ends.
    closer: Any = None
    media_type: Optional[str] = None

    @classmethod
    def json(cls, body: Any, status_code: int = 200, **kwargs) -> "ProxyOutcome":
        return cls(status_code=status_code, kind=BodyKind.JSON, json_body=body, **kwargs)

    @classmethod
    def plain(cls, text: str, status_code: int = 200, **kwargs) -> "ProxyOutcome":
        return cls(status_code=status_code, kind=BodyKind.TEXT, text=text, **kwargs)
