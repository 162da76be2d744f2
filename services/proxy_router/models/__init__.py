"""
Data model definitions package.

Aggregates Pydantic models for use in other modules.
"""

from .context import IncomingRequest
from .result import BodyKind, ProxyOutcome
from .route import RouteDecision, ServiceId, TransportMode, UpstreamServices, UpstreamTarget

__all__ = [
    "IncomingRequest",
    "BodyKind",
    "ProxyOutcome",
    "RouteDecision",
    "ServiceId",
    "TransportMode",
    "UpstreamServices",
    "UpstreamTarget",
]
