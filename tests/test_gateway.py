"""Tests for the proxy gateway HTTP edge."""

from typing import Callable, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import PROJECT_ID, make_profile, make_token
from familysafe.config import AppConfig
from familysafe.errors import ConfigError
from familysafe.gateway import create_gateway_app
from familysafe.models.enums import ApprovalStatus, UserRole

NOW = 1_700_000_000.0
PAGE = '<html><head></head><body><img src="/logo.png"><a href="docs/">Docs</a></body></html>'


class Upstream:
    """Records outbound requests and answers with a canned response."""

    def __init__(self, respond: Optional[Callable[[httpx.Request], httpx.Response]] = None) -> None:
        self.requests: list[httpx.Request] = []
        self._respond = respond or (
            lambda request: httpx.Response(200, headers={"content-type": "text/html"}, text=PAGE)
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request)


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def make_client(config, logger):
    clients: list[TestClient] = []

    def _make(
        upstream: Upstream,
        config: AppConfig = config,
        profile_repo=None,
    ) -> TestClient:
        app = create_gateway_app(
            config,
            logger,
            profile_repo=profile_repo,
            transport=httpx.MockTransport(upstream),
            clock=lambda: NOW,
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


def _auth(sub: Optional[str] = "child-1") -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub, now=NOW)}"}


class TestValidationOrder:
    def test_preflight(self, make_client, upstream):
        response = make_client(upstream).options("/")
        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == "*"
        assert "Authorization" in response.headers["access-control-allow-headers"]
        assert upstream.requests == []

    def test_missing_url(self, make_client, upstream):
        response = make_client(upstream).get("/", headers=_auth())
        assert response.status_code == 400
        assert "url" in response.text

    def test_missing_authorization(self, make_client, upstream):
        response = make_client(upstream).get("/", params={"url": "example.com"})
        assert response.status_code == 401
        assert "Missing Authorization header." in response.text
        assert response.headers["access-control-allow-origin"] == "*"

    def test_missing_project_id(self, make_client, upstream):
        config = AppConfig(_env_file=None, PROJECT_ID="", LOG_FILE="")
        response = make_client(upstream, config=config).get(
            "/", params={"url": "example.com"}, headers=_auth()
        )
        assert response.status_code == 500
        assert response.text == "Server Configuration Error"

    @pytest.mark.parametrize(
        "token,reason",
        [
            ("abc.def", "Invalid token format"),
            (make_token(exp=NOW - 5, now=NOW), "Token expired"),
            (make_token(iss="https://evil.example.com/x", now=NOW), "Invalid issuer"),
            (make_token(aud="other", now=NOW), "Invalid audience"),
        ],
    )
    def test_bad_token(self, make_client, upstream, token, reason):
        response = make_client(upstream).get(
            "/", params={"url": "example.com"}, headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401
        assert response.text.startswith(f"Unauthorized: {reason}")
        assert upstream.requests == []


class TestFetch:
    def test_html_is_rewritten_against_target(self, make_client, upstream):
        response = make_client(upstream).get(
            "/any/path", params={"url": "example.com/guide/intro"}, headers=_auth()
        )
        assert response.status_code == 200
        assert '<img src="https://example.com/logo.png">' in response.text
        assert '<a href="https://example.com/guide/docs/">' in response.text
        assert response.headers["access-control-allow-origin"] == "*"

    def test_outbound_request_uses_fixed_headers(self, make_client, upstream, config):
        make_client(upstream).get(
            "/",
            params={"url": "https://example.com/"},
            headers={**_auth(), "Cookie": "session=secret", "X-Filter-Level": "moderate"},
        )
        (sent,) = upstream.requests
        assert str(sent.url) == "https://example.com/"
        assert sent.headers["user-agent"] == config.PROXY_USER_AGENT
        assert sent.headers["accept"] == config.PROXY_ACCEPT
        assert "authorization" not in sent.headers
        assert "cookie" not in sent.headers

    def test_non_html_passes_through_unchanged(self, make_client):
        payload = b"\x89PNG\r\n\x1a\n" + bytes(range(256))
        upstream = Upstream(
            lambda request: httpx.Response(200, headers={"content-type": "image/png"}, content=payload)
        )
        response = make_client(upstream).get(
            "/", params={"url": "example.com/logo.png"}, headers=_auth()
        )
        assert response.status_code == 200
        assert response.content == payload
        assert response.headers["content-type"] == "image/png"

    def test_upstream_status_is_preserved(self, make_client):
        upstream = Upstream(
            lambda request: httpx.Response(
                404, headers={"content-type": "text/html"}, text='<a href="/">home</a>'
            )
        )
        response = make_client(upstream).get(
            "/", params={"url": "example.com/missing"}, headers=_auth()
        )
        assert response.status_code == 404
        assert response.text == '<a href="https://example.com/">home</a>'

    def test_streamed_body_is_relayed_unread(self, make_client):
        async def chunks():
            yield b"part-1,"
            yield b"part-2"

        upstream = Upstream(
            lambda request: httpx.Response(
                200, headers={"content-type": "application/octet-stream"}, content=chunks()
            )
        )
        response = make_client(upstream).get("/", params={"url": "example.com/blob"}, headers=_auth())
        assert response.status_code == 200
        assert response.content == b"part-1,part-2"

    def test_token_without_subject_is_proxied(self, make_client, upstream):
        response = make_client(upstream).get(
            "/", params={"url": "example.com"}, headers=_auth(None)
        )
        assert response.status_code == 200
        assert len(upstream.requests) == 1

    def test_upstream_cors_headers_are_replaced(self, make_client):
        upstream = Upstream(
            lambda request: httpx.Response(
                200,
                headers={"content-type": "text/plain", "access-control-allow-origin": "https://x"},
                text="ok",
            )
        )
        response = make_client(upstream).get("/", params={"url": "example.com"}, headers=_auth())
        assert response.headers.get_list("access-control-allow-origin") == ["*"]

    def test_fetch_failure_is_a_proxy_error(self, make_client):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        response = make_client(Upstream(refuse)).get(
            "/", params={"url": "example.com"}, headers=_auth()
        )
        assert response.status_code == 500
        assert response.text.startswith("Proxy Error:")
        assert "connection refused" in response.text


class TestProfilePolicy:
    @pytest.fixture
    def policy_config(self) -> AppConfig:
        return AppConfig(
            _env_file=None, PROJECT_ID=PROJECT_ID, LOG_FILE="", ENFORCE_PROFILE_POLICY=True
        )

    def test_requires_profile_repository(self, policy_config, logger):
        with pytest.raises(ConfigError):
            create_gateway_app(policy_config, logger)

    def test_approved_child_is_proxied(self, services, make_client, upstream, policy_config):
        services["profile_repo"].create(make_profile("child-1", role=UserRole.CHILD))
        response = make_client(
            upstream, config=policy_config, profile_repo=services["profile_repo"]
        ).get("/", params={"url": "example.com"}, headers=_auth("child-1"))
        assert response.status_code == 200

    @pytest.mark.parametrize(
        "role,status,reason",
        [
            (UserRole.CHILD, ApprovalStatus.SUSPENDED, "SUSPENDED"),
            (UserRole.PENDING_CHILD, ApprovalStatus.PENDING, "PENDING"),
            (UserRole.PARENT, ApprovalStatus.REJECTED, "REJECTED"),
        ],
    )
    def test_denied_profiles(
        self, services, make_client, upstream, policy_config, role, status, reason
    ):
        services["profile_repo"].create(make_profile("child-1", role=role, status=status))
        response = make_client(
            upstream, config=policy_config, profile_repo=services["profile_repo"]
        ).get("/", params={"url": "example.com"}, headers=_auth("child-1"))
        assert response.status_code == 403
        assert response.text == f"Access Denied: {reason}"
        assert upstream.requests == []

    def test_unknown_profile(self, services, make_client, upstream, policy_config):
        response = make_client(
            upstream, config=policy_config, profile_repo=services["profile_repo"]
        ).get("/", params={"url": "example.com"}, headers=_auth("nobody"))
        assert response.status_code == 403
        assert response.text == "Access Denied: PROFILE_NOT_FOUND"

    def test_token_without_subject_is_denied(self, services, make_client, upstream, policy_config):
        response = make_client(
            upstream, config=policy_config, profile_repo=services["profile_repo"]
        ).get("/", params={"url": "example.com"}, headers=_auth(None))
        assert response.status_code == 403
        assert response.text == "Access Denied: PROFILE_NOT_FOUND"
        assert upstream.requests == []
