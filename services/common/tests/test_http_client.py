from unittest.mock import patch

import httpx

from services.common.core.config import BaseAppConfig
from services.common.core.http_client import HttpClientFactory


class TestHttpClientFactory:
    @patch("httpx.AsyncClient")
    def test_create_async_client_verify_false(self, mock_client):
        """VERIFY_SSL=False should produce client with verify=False"""
        config = BaseAppConfig(VERIFY_SSL=False)
        factory = HttpClientFactory(config)
        factory.create_async_client()

        mock_client.assert_called_once()
        _, kwargs = mock_client.call_args
        assert kwargs["verify"] is False
        assert kwargs["trust_env"] is False

    @patch("httpx.AsyncClient")
    def test_create_async_client_verify_true(self, mock_client):
        """VERIFY_SSL=True should produce client with verify=True"""
        config = BaseAppConfig(VERIFY_SSL=True)
        factory = HttpClientFactory(config)
        factory.create_async_client()

        _, kwargs = mock_client.call_args
        assert kwargs["verify"] is True

    @patch("httpx.AsyncClient")
    def test_explicit_verify_overrides_config(self, mock_client):
        config = BaseAppConfig(VERIFY_SSL=True)
        factory = HttpClientFactory(config)
        factory.create_async_client(verify=False, timeout=5.0)

        _, kwargs = mock_client.call_args
        assert kwargs["verify"] is False
        assert kwargs["timeout"] == 5.0

    @patch("httpx.AsyncClient")
    def test_create_async_client_defaults_limits(self, mock_client):
        """Ensure extended default Limits are applied when creating AsyncClient."""
        factory = HttpClientFactory(BaseAppConfig())

        factory.create_async_client()

        _, kwargs = mock_client.call_args
        limits = kwargs.get("limits")
        assert isinstance(limits, httpx.Limits)
        assert limits.max_keepalive_connections == 20
        assert limits.max_connections == 100

    @patch("httpx.AsyncClient")
    def test_create_async_client_override_limits(self, mock_client):
        """Ensure provided Limits override the defaults."""
        factory = HttpClientFactory(BaseAppConfig())

        custom_limits = httpx.Limits(max_connections=500)
        factory.create_async_client(limits=custom_limits)

        _, kwargs = mock_client.call_args
        assert kwargs["limits"] == custom_limits


def test_base_config_production_flag():
    assert BaseAppConfig(ENVIRONMENT="production").is_production is True
    assert BaseAppConfig(ENVIRONMENT="Production").is_production is True
    assert BaseAppConfig(ENVIRONMENT="development").is_production is False
