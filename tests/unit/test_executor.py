"""Unit tests for the request executor."""

import base64
import time
from datetime import timedelta

import httpx
import pytest

from loadtester.engine.executor import (
    RequestExecutor,
    build_url,
    create_client,
    resolve_part_bytes,
)
from loadtester.scenarios.models import MultipartPart, RequestSpec
from tests.conftest import BASE_URL, RecordingTransport


def _executor(make_config, transport, **config_overrides):
    config = make_config(**config_overrides)
    client = create_client(config, transport)
    return client, RequestExecutor(client, config.base_url, config.max_error_body_chars)


class TestUrlAndPartHelpers:
    @pytest.mark.parametrize(
        "base, endpoint",
        [
            ("http://h/", "/api/x"),
            ("http://h", "api/x"),
            ("http://h//", "//api/x"),
        ],
    )
    def test_build_url_joins_with_single_slash(self, base, endpoint):
        assert build_url(base, endpoint) == "http://h/api/x"

    def test_base64_value_is_decoded(self):
        encoded = base64.b64encode(b"\x00\x01binary").decode()
        assert resolve_part_bytes(encoded) == b"\x00\x01binary"

    def test_existing_path_is_read(self, tmp_path):
        path = tmp_path / "upload.bin"
        path.write_bytes(b"file-bytes")
        assert resolve_part_bytes(str(path)) == b"file-bytes"

    def test_literal_text_is_utf8(self):
        assert resolve_part_bytes("héllo wörld!") == "héllo wörld!".encode("utf-8")

    def test_empty_value_is_empty_bytes(self):
        assert resolve_part_bytes(None) == b""


class TestRequestExecutor:
    @pytest.mark.asyncio
    async def test_success_result(self, make_config):
        transport = RecordingTransport()
        client, executor = _executor(make_config, transport)
        async with client:
            result = await executor.execute(RequestSpec(name="items", endpoint="/api/items"), user_id=3)

        assert result.success is True
        assert result.status_code == 200
        assert result.error is None
        assert result.request_name == "items"
        assert result.user_id == 3
        assert result.duration_ms >= 0
        assert str(transport.requests[0].url) == f"{BASE_URL}/api/items"

    @pytest.mark.asyncio
    async def test_auth_and_custom_headers_applied(self, make_config):
        transport = RecordingTransport()
        client, executor = _executor(make_config, transport, auth_scheme="Bearer")
        spec = RequestSpec(
            name="a",
            endpoint="/a",
            method="POST",
            headers={"X-Trace": "t-1", "Content-Type": "text/plain"},
            body="hello",
        )
        async with client:
            await executor.execute(spec)

        sent = transport.requests[0]
        assert sent.headers["Authorization"] == "Bearer secret-key"
        assert sent.headers["X-Trace"] == "t-1"
        assert sent.headers["Content-Type"] == "text/plain"
        assert sent.content == b"hello"

    @pytest.mark.asyncio
    async def test_json_is_default_body_content_type(self, make_config):
        transport = RecordingTransport()
        client, executor = _executor(make_config, transport)
        spec = RequestSpec(name="login", endpoint="/api/login", method="POST", body='{"u":"a"}')
        async with client:
            await executor.execute(spec)

        sent = transport.requests[0]
        assert sent.method == "POST"
        assert sent.headers["Content-Type"] == "application/json"
        assert sent.headers["Authorization"] == "APIKEY secret-key"
        assert sent.content == b'{"u":"a"}'

    @pytest.mark.asyncio
    async def test_get_never_sends_body(self, make_config):
        transport = RecordingTransport()
        client, executor = _executor(make_config, transport)
        async with client:
            await executor.execute(RequestSpec(name="a", endpoint="/a", method="GET", body="ignored"))
        assert transport.requests[0].content == b""

    @pytest.mark.asyncio
    async def test_multipart_payload_is_encoded(self, make_config, tmp_path):
        upload = tmp_path / "report.csv"
        upload.write_bytes(b"a,b\n1,2\n")
        transport = RecordingTransport()
        client, executor = _executor(make_config, transport)
        spec = RequestSpec(
            name="upload",
            endpoint="/api/upload",
            method="POST",
            headers={"Content-Type": "multipart/form-data"},
            multipart_parts=[
                MultipartPart(name="doc", value=str(upload), file_name="report.csv", content_type="text/csv"),
                MultipartPart(
                    name="blob",
                    value=base64.b64encode(b"\x89PNG").decode(),
                    file_name="img.png",
                    content_type="image/png",
                ),
                MultipartPart(name="comment", value="quarterly numbers"),
            ],
        )
        async with client:
            result = await executor.execute(spec)

        assert result.success is True
        sent = transport.requests[0]
        assert sent.headers["Content-Type"].startswith("multipart/form-data; boundary=")
        body = sent.content
        assert b'name="doc"; filename="report.csv"' in body
        assert b"a,b\n1,2\n" in body
        assert b"Content-Type: text/csv" in body
        assert b"\x89PNG" in body
        assert b'name="comment"' in body
        assert b"quarterly numbers" in body
        assert body.index(b'name="doc"') < body.index(b'name="blob"') < body.index(b'name="comment"')

    @pytest.mark.asyncio
    async def test_non_success_captures_bounded_body(self, make_config):
        transport = RecordingTransport(lambda request: httpx.Response(500, text="x" * 50))
        client, executor = _executor(make_config, transport, max_error_body_chars=10)
        async with client:
            result = await executor.execute(RequestSpec(name="a", endpoint="/a"))

        assert result.success is False
        assert result.status_code == 500
        assert result.error == "x" * 10

    @pytest.mark.asyncio
    async def test_redirect_status_is_not_success(self, make_config):
        transport = RecordingTransport(lambda request: httpx.Response(304))
        client, executor = _executor(make_config, transport)
        async with client:
            result = await executor.execute(RequestSpec(name="a", endpoint="/a"))
        assert result.success is False
        assert result.status_code == 304

    @pytest.mark.asyncio
    async def test_transport_failure_is_status_zero(self, make_config):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client, executor = _executor(make_config, RecordingTransport(refuse))
        async with client:
            result = await executor.execute(RequestSpec(name="a", endpoint="/a"))

        assert result.success is False
        assert result.status_code == 0
        assert result.error == "ConnectError: connection refused"

    @pytest.mark.asyncio
    async def test_timeout_is_status_zero(self, make_config):
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client, executor = _executor(make_config, RecordingTransport(slow))
        async with client:
            result = await executor.execute(RequestSpec(name="a", endpoint="/a"))
        assert result.status_code == 0
        assert "ReadTimeout" in result.error

    @pytest.mark.asyncio
    async def test_request_build_error_never_escapes(self, make_config, monkeypatch):
        transport = RecordingTransport()
        client, executor = _executor(make_config, transport)

        def broken(spec):
            raise ValueError("unencodable header")

        monkeypatch.setattr(executor, "build_request", broken)
        async with client:
            result = await executor.execute(RequestSpec(name="bad", endpoint="/a"))

        assert result.success is False
        assert result.status_code == 0
        assert result.error == "ValueError: unencodable header"
        assert transport.requests == []
        assert result.duration == timedelta(0)

    @pytest.mark.asyncio
    async def test_request_preparation_is_not_timed(self, make_config, monkeypatch):
        transport = RecordingTransport()
        client, executor = _executor(make_config, transport)
        build = executor.build_request

        def slow_build(spec):
            time.sleep(0.2)
            return build(spec)

        monkeypatch.setattr(executor, "build_request", slow_build)
        async with client:
            result = await executor.execute(RequestSpec(name="a", endpoint="/a"))

        assert result.success is True
        assert result.duration_ms < 150
