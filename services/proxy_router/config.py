"""
Proxy router configuration definition.

Loads configuration from environment variables and provides a Pydantic model.
Uses pydantic-settings for type safety and defaults.
"""

import sys

from pydantic import Field, field_validator

from services.common.core.config import BaseAppConfig

from .models.route import ServiceId, UpstreamServices


def ensure_scheme(url: str) -> str:
    """Prefix ``http://`` when a base URL was configured without a scheme."""
    url = url.strip()
    if not url.startswith("http://") and not url.startswith("https://"):
        url = f"http://{url}"
    return url


class RouterConfig(BaseAppConfig):
    """
    Configuration management for the proxy router.
    """

    # Server settings
    UVICORN_BIND_ADDR: str = Field(default="0.0.0.0:3000", description="Listen address")

    # Backend services (one base URL per logical service)
    API_BASE_URL: str = Field(
        default="http://localhost:8081/api", description="General API service base URL"
    )
    GROUP_API_BASE_URL: str = Field(
        default="http://localhost:8082/api", description="Group and messaging service base URL"
    )
    NOTIFICATION_API_BASE_URL: str = Field(
        default="http://localhost:8083/api", description="Notification service base URL"
    )
    FILE_SERVICE_BASE_URL: str = Field(
        default="http://localhost:8084", description="File and media service base URL"
    )
    PRESENCE_SERVICE_BASE_URL: str = Field(
        default="http://localhost:8085/api", description="Presence service base URL"
    )

    # Upstream client
    UPSTREAM_TIMEOUT: float = Field(default=30.0, description="Upstream HTTP timeout (seconds)")

    # Logging
    LOG_CONFIG_PATH: str = Field(
        default="/app/config/proxy_router_log.yaml", description="Logging YAML config path"
    )

    # FastAPI settings
    root_path: str = Field(default="", description="API root path (for proxy)")

    @field_validator(
        "API_BASE_URL",
        "GROUP_API_BASE_URL",
        "NOTIFICATION_API_BASE_URL",
        "FILE_SERVICE_BASE_URL",
        "PRESENCE_SERVICE_BASE_URL",
    )
    @classmethod
    def _coerce_scheme(cls, value: str) -> str:
        return ensure_scheme(value)

    def upstreams(self) -> UpstreamServices:
        """Build the immutable base URL table handed to the request processor."""
        return UpstreamServices(
            base_urls={
                ServiceId.GENERAL: self.API_BASE_URL,
                ServiceId.GROUP: self.GROUP_API_BASE_URL,
                ServiceId.NOTIFICATION: self.NOTIFICATION_API_BASE_URL,
                ServiceId.FILE: self.FILE_SERVICE_BASE_URL,
                ServiceId.PRESENCE: self.PRESENCE_SERVICE_BASE_URL,
            }
        )

    # model_config is inherited


# Load config as a singleton.
# pydantic-settings reads environment variables during instantiation.
try:
    config = RouterConfig()
except Exception as e:
    sys.stderr.write(f"Failed to load configuration: {e}\n")
    raise
