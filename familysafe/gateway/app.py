"""
Proxy Gateway.

Stateless HTTP edge in front of the web-content proxy.  Every request is
validated in a fixed order and the first failure wins:

1. ``OPTIONS``                      -> 204, CORS headers only
2. no ``url`` query parameter       -> 400
3. no ``Authorization`` header      -> 401
4. project id not configured        -> 500 ``Server Configuration Error``
5. token claims invalid             -> 401 ``Unauthorized: <reason>``
6. profile policy (when enabled)    -> 403 ``Access Denied: <reason>``

Valid requests are fetched upstream with a fixed User-Agent and Accept
header (no caller headers are forwarded).  HTML bodies are streamed
through the attribute rewriter; everything else is streamed unchanged.
The upstream status is preserved and the CORS headers are merged in.  Any
failure while starting the fetch is answered with 500 ``Proxy Error``.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool

from familysafe.config import AppConfig
from familysafe.errors import AccessDeniedError, AuthError, ConfigError
from familysafe.gateway.rewriter import normalize_target_url, rewrite_stream
from familysafe.gateway.tokens import extract_bearer_token, verify_id_token
from familysafe.logger import StructuredLogger
from familysafe.repositories.profile_repository import ProfileRepository
from familysafe.services.access_policy import require_proxy_access

# Not forwarded from the upstream response.
_HOP_BY_HOP_HEADERS: frozenset[str] = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})
# Invalid once the body has been decoded and rewritten.
_REWRITE_DROPPED_HEADERS: frozenset[str] = frozenset({"content-encoding", "content-length"})

PROXY_METHODS: list[str] = ["GET", "HEAD", "POST", "OPTIONS"]


def create_gateway_app(
    config: AppConfig,
    logger: StructuredLogger,
    profile_repo: Optional[ProfileRepository] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Build the gateway application.

    Args:
        config: Project id, CORS headers, upstream settings.
        logger: Structured logger for request diagnostics.
        profile_repo: Needed only when ``ENFORCE_PROFILE_POLICY`` is on.
        transport: Optional httpx transport (tests inject a MockTransport).
        clock: UNIX-time source for token expiry checks.
    """
    cors_headers: dict[str, str] = dict(config.CORS_HEADERS)
    if config.ENFORCE_PROFILE_POLICY and profile_repo is None:
        raise ConfigError("ENFORCE_PROFILE_POLICY requires a profile repository")

    def _new_client() -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(config.UPSTREAM_TIMEOUT_S),
            follow_redirects=True,
            transport=transport,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.http_client = _new_client()
        logger.info("Proxy gateway started")
        try:
            yield
        finally:
            await app.state.http_client.aclose()
            logger.info("Proxy gateway stopped")

    app = FastAPI(title="FamilySafe Proxy Gateway", lifespan=lifespan)

    def _text(body: str, status_code: int) -> PlainTextResponse:
        return PlainTextResponse(body, status_code=status_code, headers=cors_headers)

    @app.api_route("/{path:path}", methods=PROXY_METHODS)
    async def proxy(request: Request, path: str = "") -> Response:
        # --- VALIDATION ---
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=cors_headers)

        target = request.query_params.get("url")
        if not target:
            return _text("Missing 'url' query parameter.", 400)

        authorization = request.headers.get("Authorization")
        if not authorization:
            return _text("Unauthorized: Missing Authorization header.", 401)

        # --- SECURITY CHECK ---
        try:
            identity = verify_id_token(extract_bearer_token(authorization), config, now=clock())
        except ConfigError:
            logger.error("PROJECT_ID not set; rejecting proxy request")
            return _text("Server Configuration Error", 500)
        except AuthError as exc:
            logger.warning("Token verification failed: %s", exc.message)
            return _text(f"Unauthorized: {exc.message}", 401)

        filter_level = request.headers.get("X-Filter-Level") or config.DEFAULT_FILTER_LEVEL_HEADER

        if profile_repo is not None and config.ENFORCE_PROFILE_POLICY:
            try:
                profile = (
                    await run_in_threadpool(profile_repo.get_by_id, identity.uid)
                    if identity.uid
                    else None
                )
                require_proxy_access(profile)
            except AccessDeniedError as exc:
                logger.info("Proxy access denied for %s: %s", identity.uid, exc.reason)
                return _text(f"Access Denied: {exc.reason}", 403)

        # --- FETCH ---
        client: Optional[httpx.AsyncClient] = getattr(request.app.state, "http_client", None)
        if client is None:
            # Served without the lifespan (e.g. mounted in another app).
            client = request.app.state.http_client = _new_client()
        try:
            target_url = normalize_target_url(target)
            logger.info(
                "Proxy request",
                extra={"uid": identity.uid, "target": target_url, "filter_level": filter_level},
            )
            upstream_request = client.build_request(
                request.method,
                target_url,
                headers={"User-Agent": config.PROXY_USER_AGENT, "Accept": config.PROXY_ACCEPT},
            )
            upstream = await client.send(upstream_request, stream=True)
        except Exception as exc:
            logger.error("Proxy fetch failed for %s: %s", target, exc)
            return _text(f"Proxy Error: {exc}", 500)

        return _relay(upstream, target_url, cors_headers)

    return app


def _relay(
    upstream: httpx.Response, target_url: str, cors_headers: dict[str, str]
) -> StreamingResponse:
    """Stream *upstream* back to the caller, rewriting HTML bodies."""
    content_type = upstream.headers.get("content-type", "")
    is_html = "text/html" in content_type.lower()

    # A response that was read before relaying only has its decoded body left.
    decoded = is_html or upstream.is_stream_consumed

    dropped = _HOP_BY_HOP_HEADERS | {name.lower() for name in cors_headers}
    if decoded:
        dropped |= _REWRITE_DROPPED_HEADERS
    headers = {
        name: value
        for name, value in upstream.headers.items()
        if name.lower() not in dropped
    }
    headers.update(cors_headers)

    if is_html:
        body = rewrite_stream(upstream.aiter_bytes(), target_url, upstream.charset_encoding)
    elif upstream.is_stream_consumed:
        body = upstream.aiter_bytes()
    else:
        body = upstream.aiter_raw()

    return StreamingResponse(
        body,
        status_code=upstream.status_code,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )
