from services.proxy_router.config import RouterConfig, ensure_scheme
from services.proxy_router.models.route import ServiceId


def test_ensure_scheme():
    assert ensure_scheme(" api.internal:8081/api ") == "http://api.internal:8081/api"
    assert ensure_scheme("https://secure.test") == "https://secure.test"


def test_base_urls_are_coerced_to_carry_scheme():
    cfg = RouterConfig(API_BASE_URL="general.internal/api")
    assert cfg.API_BASE_URL == "http://general.internal/api"


def test_defaults(monkeypatch):
    for name in (
        "API_BASE_URL",
        "GROUP_API_BASE_URL",
        "NOTIFICATION_API_BASE_URL",
        "FILE_SERVICE_BASE_URL",
        "PRESENCE_SERVICE_BASE_URL",
        "ENVIRONMENT",
    ):
        monkeypatch.delenv(name, raising=False)

    cfg = RouterConfig(_env_file=None)

    assert cfg.API_BASE_URL == "http://localhost:8081/api"
    assert cfg.FILE_SERVICE_BASE_URL == "http://localhost:8084"
    assert cfg.UPSTREAM_TIMEOUT == 30.0
    assert cfg.ENVIRONMENT == "development"
    assert not cfg.is_production


def test_upstreams_table():
    cfg = RouterConfig(PRESENCE_SERVICE_BASE_URL="presence.internal/api")
    upstreams = cfg.upstreams()

    assert set(upstreams.base_urls) == set(ServiceId)
    assert upstreams.base_url(ServiceId.PRESENCE) == "http://presence.internal/api"
