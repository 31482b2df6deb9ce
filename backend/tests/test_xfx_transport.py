"""
XFX Invoice Hub - Transport Tests

Tests for XFXTransport error mapping and the relay variants.
Uses httpx.MockTransport so no real network calls are made.
"""

import json
import pytest
import httpx

from services.xfx.xfx_config import XFXConfig, RelayMode
from services.xfx.xfx_transport import (
    XFXTransport,
    TransportErrorKind,
    MultipartBody,
    DirectRelay,
    CorsProxyRelay,
    ForwardingRelay,
    build_relay,
)

ENGINE_URL = "https://n8n.example.com/webhook/resume/abc"


def make_transport(handler, relay=None, **kwargs) -> XFXTransport:
    return XFXTransport(relay=relay, http_transport=httpx.MockTransport(handler), **kwargs)


class TestSend:
    """Outcome mapping of a single call."""

    @pytest.mark.asyncio
    async def test_json_reply(self):
        def handler(request):
            return httpx.Response(200, json={"resumeUrl": "https://next"})

        result = await make_transport(handler).send(ENGINE_URL, {"action": "start_process"})
        assert result.ok
        assert result.status_code == 200
        assert result.data == {"resumeUrl": "https://next"}

    @pytest.mark.asyncio
    async def test_json_payload_and_default_headers(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["headers"] = request.headers
            return httpx.Response(200, json={})

        transport = make_transport(handler, default_headers={"ngrok-skip-browser-warning": "true"})
        await transport.send(ENGINE_URL, {"action": "start_process"})
        assert seen["body"] == {"action": "start_process"}
        assert seen["headers"]["ngrok-skip-browser-warning"] == "true"

    @pytest.mark.asyncio
    async def test_empty_body_is_empty_mapping(self):
        result = await make_transport(lambda r: httpx.Response(200, content=b"")).send(ENGINE_URL, {})
        assert result.ok
        assert result.data == {}

    @pytest.mark.asyncio
    async def test_http_error(self):
        def handler(request):
            return httpx.Response(502, text="Bad gateway")

        result = await make_transport(handler).send(ENGINE_URL, {})
        assert not result.ok
        assert result.error.kind == TransportErrorKind.HTTP.value
        assert result.error.status_code == 502
        assert result.error.body_text == "Bad gateway"

    @pytest.mark.asyncio
    async def test_http_error_keeps_parsed_body(self):
        def handler(request):
            return httpx.Response(400, json={"errorMessage": "bad"})

        result = await make_transport(handler).send(ENGINE_URL, {})
        assert result.error.kind == TransportErrorKind.HTTP.value
        assert result.error.body == {"errorMessage": "bad"}

    @pytest.mark.asyncio
    async def test_parse_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>tunnel offline</html>")

        result = await make_transport(handler).send(ENGINE_URL, {})
        assert result.error.kind == TransportErrorKind.PARSE.value
        assert "tunnel offline" in result.error.body_text

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        result = await make_transport(handler).send(ENGINE_URL, {})
        assert result.error.kind == TransportErrorKind.NETWORK.value
        assert "Connection refused" in result.error.detail

    @pytest.mark.asyncio
    async def test_timeout_is_network_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = await make_transport(handler, timeout=5).send(ENGINE_URL, {})
        assert result.error.kind == TransportErrorKind.NETWORK.value
        assert "5" in result.error.detail

    @pytest.mark.asyncio
    async def test_multipart_upload(self):
        seen = {}

        def handler(request):
            seen["content_type"] = request.headers["content-type"]
            seen["body"] = request.content
            return httpx.Response(200, json={"message": "Workflow was started"})

        body = MultipartBody(
            fields={"action": "process_invoice"},
            files={"file": ("invoice.xml", b"<Faktura/>", "application/xml")},
        )
        result = await make_transport(handler).send(ENGINE_URL, body)
        assert result.ok
        assert seen["content_type"].startswith("multipart/form-data")
        assert b"<Faktura/>" in seen["body"]
        assert b"process_invoice" in seen["body"]


class TestRelays:
    """Relay routing and selection from config."""

    def test_direct_relay(self):
        assert DirectRelay().route(ENGINE_URL) == (ENGINE_URL, {}, {})

    def test_cors_proxy_relay(self):
        url, headers, fields = CorsProxyRelay("https://proxy/").route(ENGINE_URL)
        assert url == "https://proxy/" + ENGINE_URL
        assert headers["X-Requested-With"] == "XMLHttpRequest"
        assert fields == {}

    def test_forwarding_relay(self):
        url, headers, fields = ForwardingRelay("https://fn/forward").route(ENGINE_URL)
        assert url == "https://fn/forward"
        assert fields == {"resumeUrl": ENGINE_URL}

    @pytest.mark.asyncio
    async def test_forwarding_relay_names_target_in_payload(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={})

        relay = ForwardingRelay("https://fn.example.com/forward")
        await make_transport(handler, relay=relay).send(ENGINE_URL, {"finalresponse": "success"})
        assert seen["url"] == "https://fn.example.com/forward"
        assert seen["body"] == {"finalresponse": "success", "resumeUrl": ENGINE_URL}

    def test_build_relay_from_config(self):
        assert isinstance(build_relay(XFXConfig()), DirectRelay)
        assert isinstance(build_relay(XFXConfig(relay_mode=RelayMode.CORS_PROXY.value)), CorsProxyRelay)
        forwarding = XFXConfig(relay_mode=RelayMode.FORWARDING.value, forwarding_url="https://fn")
        assert isinstance(build_relay(forwarding), ForwardingRelay)

    def test_forwarding_without_url_falls_back_to_direct(self):
        config = XFXConfig(relay_mode=RelayMode.FORWARDING.value, forwarding_url="")
        assert isinstance(build_relay(config), DirectRelay)
