import os

import pytest

# Config is initialized at import time, so set environment variables at top level.
os.environ["API_BASE_URL"] = "http://general.test/api"
os.environ["GROUP_API_BASE_URL"] = "http://group.test/api"
os.environ["NOTIFICATION_API_BASE_URL"] = "http://notification.test/api"
os.environ["FILE_SERVICE_BASE_URL"] = "http://files.test"
os.environ["PRESENCE_SERVICE_BASE_URL"] = "http://presence.test/api"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_CONFIG_PATH"] = "/nonexistent/proxy_router_log.yaml"

from services.proxy_router.models.route import ServiceId, UpstreamServices  # noqa: E402


@pytest.fixture
def upstreams() -> UpstreamServices:
    return UpstreamServices(
        base_urls={
            ServiceId.GENERAL: "http://general.test/api",
            ServiceId.GROUP: "http://group.test/api",
            ServiceId.NOTIFICATION: "http://notification.test/api",
            ServiceId.FILE: "http://files.test",
            ServiceId.PRESENCE: "http://presence.test/api",
        }
    )
