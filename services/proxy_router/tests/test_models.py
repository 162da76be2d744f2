import pytest
from pydantic import ValidationError
from starlette.datastructures import Headers, QueryParams

from services.proxy_router.models.context import IncomingRequest
from services.proxy_router.models.result import BodyKind, ProxyOutcome
from services.proxy_router.models.route import RouteDecision, ServiceId


class TestIncomingRequest:
    def test_build_splits_path_and_lowercases_headers(self):
        request = IncomingRequest.build("get", "/api/proxy//users/me/", {"X-Thing": "1"})

        assert request.method == "GET"
        assert request.path_segments == ("api", "proxy", "users", "me")
        assert request.header("x-thing") == "1"
        assert request.header("X-THING") == "1"

    def test_repeated_headers_are_joined(self):
        headers = Headers(
            raw=[(b"accept", b"a"), (b"accept", b"b"), (b"cookie", b"x=1"), (b"cookie", b"y=2")]
        )
        request = IncomingRequest.build("GET", "users", headers)

        assert request.header("accept") == "a, b"
        assert request.header("cookie") == "x=1; y=2"

    def test_repeated_query_params_become_lists(self):
        request = IncomingRequest.build("GET", "users", query=QueryParams("a=1&b=2&b=3"))
        assert request.query == {"a": "1", "b": ["2", "3"]}

    def test_plain_mapping_query(self):
        request = IncomingRequest.build("GET", "users", query={"ids": ("1", "2"), "n": 3})
        assert request.query == {"ids": ["1", "2"], "n": "3"}

    def test_is_immutable(self):
        request = IncomingRequest.build("GET", "users")
        with pytest.raises(ValidationError):
            request.method = "POST"


def test_route_decision_defaults():
    decision = RouteDecision(service_id=ServiceId.GENERAL, path="users", method="GET")
    assert not decision.is_websocket_upgrade
    assert not decision.is_auth_endpoint
    assert not decision.is_file_request


def test_outcome_constructors():
    assert ProxyOutcome.json({"a": 1}).kind is BodyKind.JSON
    assert ProxyOutcome.plain("x", status_code=201).status_code == 201
    assert ProxyOutcome().kind is BodyKind.EMPTY
