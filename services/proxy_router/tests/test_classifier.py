import pytest

from services.proxy_router.core.classifier import (
    classify,
    effective_method,
    is_websocket_upgrade,
    normalize_path,
)
from services.proxy_router.models.route import ServiceId

UPGRADE = {"Connection": "Upgrade", "Upgrade": "websocket"}


def _classify(path, method="GET", headers=None):
    return classify(method, path.split("/"), headers or {}, {})


class TestNormalizePath:
    def test_strips_duplicated_routing_prefix(self):
        assert normalize_path(["api", "proxy", "groups", "1"]) == "groups/1"
        assert normalize_path(["proxy", "groups"]) == "groups"

    def test_drops_empty_segments(self):
        assert normalize_path(["", "users", "", "me"]) == "users/me"

    def test_prefix_is_stripped_before_service_selection(self):
        decision = _classify("api/proxy/notifications/unread")
        assert decision.service_id is ServiceId.NOTIFICATION
        assert decision.path == "notifications/unread"


class TestServiceSelection:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("messages", ServiceId.GROUP),
            ("message/12", ServiceId.GROUP),
            ("groups/4/messages", ServiceId.GROUP),
            ("group/4/messages/9", ServiceId.GROUP),
            ("users/7/message", ServiceId.GROUP),
            ("notifications", ServiceId.NOTIFICATION),
            ("presence/users", ServiceId.PRESENCE),
            ("groups/4", ServiceId.GROUP),
            ("group", ServiceId.GROUP),
            ("files/a.png", ServiceId.FILE),
            ("media/avatar/1", ServiceId.FILE),
            ("users/me", ServiceId.GENERAL),
            ("", ServiceId.GENERAL),
        ],
    )
    def test_rule_priority(self, path, expected):
        assert _classify(path).service_id is expected

    def test_file_requests_are_flagged(self):
        assert _classify("files/doc.pdf").is_file_request is True
        assert _classify("users/me").is_file_request is False

    def test_unknown_path_passes_through_verbatim(self):
        decision = _classify("some/unknown/thing")
        assert decision.service_id is ServiceId.GENERAL
        assert decision.path == "some/unknown/thing"

    def test_headers_do_not_affect_service_without_upgrade(self):
        plain = _classify("groups/1")
        with_headers = _classify("groups/1", headers={"X-Custom": "files", "Cookie": "a=b"})
        assert plain == with_headers


class TestMethodAndAuth:
    def test_friends_add_forces_post(self):
        assert _classify("friends/add", method="GET").method == "POST"
        assert effective_method("put", "users/friends/add/3") == "POST"

    def test_method_is_upper_cased(self):
        assert _classify("users", method="patch").method == "PATCH"

    @pytest.mark.parametrize("path", ["auth/login", "login", "auth/register", "register"])
    def test_auth_endpoints(self, path):
        assert _classify(path, method="POST").is_auth_endpoint is True

    def test_auth_detection_is_exact(self):
        assert _classify("auth/login/extra").is_auth_endpoint is False


class TestWebSocketDetection:
    def test_upgrade_headers_case_insensitive(self):
        assert is_websocket_upgrade({"connection": "keep-alive, UPGRADE", "upgrade": "WebSocket"})
        assert not is_websocket_upgrade({"connection": "keep-alive", "upgrade": "websocket"})
        assert not is_websocket_upgrade({"connection": "upgrade", "upgrade": "h2c"})

    def test_messages_ws_forced_to_group(self):
        decision = _classify("messages/ws", headers=UPGRADE)
        assert decision.is_websocket_upgrade is True
        assert decision.service_id is ServiceId.GROUP

    def test_presence_ws_forced_to_presence(self):
        decision = _classify("presence/ws", headers=UPGRADE)
        assert decision.service_id is ServiceId.PRESENCE

    def test_upgrade_on_other_path_keeps_rule_service(self):
        decision = _classify("notifications/live", headers=UPGRADE)
        assert decision.is_websocket_upgrade is True
        assert decision.service_id is ServiceId.NOTIFICATION
