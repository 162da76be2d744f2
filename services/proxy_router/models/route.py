"""
Routing models.

RouteDecision is produced once per request by the classifier; UpstreamTarget
composes it with the resolved URL, credentials and body transport choice.
"""

from enum import Enum
from typing import Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field


class ServiceId(str, Enum):
    """Logical backend targets."""

    GENERAL = "general"
    GROUP = "group"
    NOTIFICATION = "notification"
    FILE = "file"
    PRESENCE = "presence"


class TransportMode(str, Enum):
    """How the request body travels to the upstream."""

    NONE = "none"
    JSON = "json"
    MULTIPART = "multipart"
    WEBSOCKET = "websocket"


class UpstreamServices(BaseModel):
    """
    Base URL per backend service.

    Built from RouterConfig at startup and injected into the processor, so no
    request reads process environment.
    """

    model_config = ConfigDict(frozen=True)

    base_urls: Mapping[ServiceId, str]

    def base_url(self, service_id: ServiceId) -> str:
        return self.base_urls[service_id]


class RouteDecision(BaseModel):
    """
    Classification result for one inbound request.
    """

    model_config = ConfigDict(frozen=True)

    service_id: ServiceId
    path: str
    method: str
    is_websocket_upgrade: bool = False
    is_auth_endpoint: bool = False
    is_file_request: bool = False


class UpstreamTarget(BaseModel):
    """
    Fully resolved outbound request: where to send it, with which headers and
    how the body is carried.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    method: str
    headers: Dict[str, str] = Field(default_factory=dict)
    mode: TransportMode = TransportMode.NONE
