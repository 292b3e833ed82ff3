"""Tests for the caller-side proxy client."""

import httpx
import pytest

from familysafe.errors import AccessDeniedError, AccessDeniedReason, AuthError, UpstreamError
from familysafe.services.proxy_client import ProxyClient, inject_base_tag

GATEWAY = "https://gateway.example.com/"


def _client(logger, handler) -> ProxyClient:
    return ProxyClient(GATEWAY, logger, transport=httpx.MockTransport(handler))


class TestInjectBaseTag:
    def test_inserted_after_head(self):
        out = inject_base_tag("<html><HEAD><title>x</title></HEAD></html>", "https://a.com/p")
        assert out == (
            '<html><HEAD><base href="https://a.com/p" target="_blank" />'
            "<title>x</title></HEAD></html>"
        )

    def test_prepended_without_head(self):
        assert inject_base_tag("<p>hi</p>", "https://a.com/") == (
            '<base href="https://a.com/" target="_blank" /><p>hi</p>'
        )

    def test_only_first_head_is_used(self):
        out = inject_base_tag("<head></head><head></head>", "https://a.com/")
        assert out.count("<base ") == 1

    def test_href_is_escaped(self):
        out = inject_base_tag("<p></p>", 'https://a.com/?q="x"')
        assert 'href="https://a.com/?q=&quot;x&quot;"' in out


class TestFetchProxiedContent:
    def test_success(self, logger):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="<html><head></head><body>ok</body></html>")

        html = _client(logger, handler).fetch_proxied_content("example.com/page", "tok")

        assert html.startswith('<html><head><base href="https://example.com/page"')
        (request,) = seen
        assert request.url.params["url"] == "https://example.com/page"
        assert request.headers["authorization"] == "Bearer tok"

    @pytest.mark.parametrize("token", [None, ""])
    def test_requires_token(self, logger, token):
        client = _client(logger, lambda request: httpx.Response(200, text="x"))
        with pytest.raises(AuthError):
            client.fetch_proxied_content("example.com", token)

    def test_forbidden_maps_to_access_denied(self, logger):
        client = _client(logger, lambda request: httpx.Response(403, text="Access Denied: SUSPENDED"))
        with pytest.raises(AccessDeniedError) as exc_info:
            client.fetch_proxied_content("example.com", "tok")
        assert exc_info.value.reason == AccessDeniedReason.SUSPENDED
        assert "Parental controls" in exc_info.value.message

    def test_unparseable_forbidden_body(self, logger):
        client = _client(logger, lambda request: httpx.Response(403, text="Forbidden"))
        with pytest.raises(AccessDeniedError) as exc_info:
            client.fetch_proxied_content("example.com", "tok")
        assert exc_info.value.reason == AccessDeniedReason.ROLE_NOT_PERMITTED

    def test_other_errors_carry_status(self, logger):
        client = _client(logger, lambda request: httpx.Response(502, text="Bad gateway"))
        with pytest.raises(UpstreamError) as exc_info:
            client.fetch_proxied_content("example.com", "tok")
        assert exc_info.value.status_code == 502

    def test_empty_body(self, logger):
        client = _client(logger, lambda request: httpx.Response(200, text="   "))
        with pytest.raises(UpstreamError):
            client.fetch_proxied_content("example.com", "tok")

    def test_transport_failure(self, logger):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(UpstreamError):
            _client(logger, refuse).fetch_proxied_content("example.com", "tok")
