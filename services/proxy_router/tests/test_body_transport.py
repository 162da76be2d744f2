import json
import logging

import pytest

from services.proxy_router.core.exceptions import RequestBodyError
from services.proxy_router.models.context import IncomingRequest
from services.proxy_router.models.route import TransportMode
from services.proxy_router.services.body_transport import (
    build_json_payload,
    json_headers,
    multipart_headers,
    select_transport_mode,
    stream_body,
)

BOUNDARY_CT = "multipart/form-data; boundary=----WebKitFormBoundary7MA4YWxk"


async def _chunks(*parts):
    for part in parts:
        yield part


class TestSelectTransportMode:
    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
    def test_no_body_methods(self, method):
        assert select_transport_mode(method, {"content-type": "application/json"}) is (
            TransportMode.NONE
        )

    def test_websocket_wins(self):
        assert select_transport_mode("GET", {}, is_websocket=True) is TransportMode.WEBSOCKET

    def test_multipart(self):
        assert select_transport_mode("POST", {"content-type": BOUNDARY_CT}) is (
            TransportMode.MULTIPART
        )

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    def test_json_default(self, method):
        assert select_transport_mode(method, {}) is TransportMode.JSON


class TestHeaders:
    def test_json_headers(self):
        assert json_headers("Bearer t") == {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": "Bearer t",
        }
        assert "Authorization" not in json_headers(None)

    def test_multipart_headers_keep_boundary(self):
        inbound = {
            "content-type": BOUNDARY_CT,
            "content-length": "123",
            "host": "router.local",
            "connection": "keep-alive",
            "authorization": "raw",
            "x-trace": "1",
        }
        headers = multipart_headers(inbound, "Bearer t")
        assert headers["Content-Type"] == BOUNDARY_CT
        assert headers["Content-Length"] == "123"
        assert headers["Authorization"] == "Bearer t"
        assert headers["x-trace"] == "1"
        assert "host" not in headers
        assert "connection" not in headers
        assert "authorization" not in headers


class TestBuildJsonPayload:
    @pytest.mark.asyncio
    async def test_json_roundtrip(self):
        request = IncomingRequest.build(
            "POST", "users", {"Content-Type": "application/json"}, body=b'{"name": "Ada"}'
        )
        payload = await build_json_payload(request)
        assert json.loads(payload) == {"name": "Ada"}

    @pytest.mark.asyncio
    async def test_streamed_body_is_buffered(self):
        request = IncomingRequest.build(
            "POST", "users", {"content-type": "application/json"}, body=_chunks(b'{"a":', b" 1}")
        )
        assert json.loads(await build_json_payload(request)) == {"a": 1}

    @pytest.mark.asyncio
    async def test_empty_body(self):
        request = IncomingRequest.build("POST", "users", {"content-type": "application/json"})
        assert await build_json_payload(request) is None

    @pytest.mark.asyncio
    async def test_form_body_becomes_json(self):
        request = IncomingRequest.build(
            "POST",
            "users",
            {"content-type": "application/x-www-form-urlencoded"},
            body=b"a=1&b=2&b=3",
        )
        assert json.loads(await build_json_payload(request)) == {"a": "1", "b": ["2", "3"]}

    @pytest.mark.asyncio
    async def test_untyped_text_is_forwarded_as_string(self):
        request = IncomingRequest.build("POST", "users", {}, body=b"hello")
        assert json.loads(await build_json_payload(request)) == "hello"

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        request = IncomingRequest.build(
            "POST", "users", {"content-type": "application/json"}, body=b"{broken"
        )
        with pytest.raises(RequestBodyError):
            await build_json_payload(request)

    @pytest.mark.asyncio
    async def test_auth_payload_password_masked(self, caplog):
        caplog.set_level(logging.INFO, logger="proxy_router.body_transport")
        request = IncomingRequest.build(
            "POST",
            "auth/login",
            {"content-type": "application/json"},
            body=b'{"email": "ada@gmail.coma", "password": "s3cret"}',
        )
        payload = await build_json_payload(request, is_auth_endpoint=True)

        assert json.loads(payload)["password"] == "s3cret"
        logged = next(r for r in caplog.records if r.getMessage() == "Auth request body")
        assert logged.body["password"] == "********"
        assert any("@gmail.coma" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_stream_body_passes_chunks_through():
    chunks = [chunk async for chunk in stream_body(_chunks(b"--b\r\n", b"", b"data"))]
    assert chunks == [b"--b\r\n", b"data"]
