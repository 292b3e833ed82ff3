"""
Proxy Client.

Caller-side counterpart of the proxy gateway: fetches a page through the
gateway with the caller's bearer token and prepares the HTML for display
by injecting a ``<base>`` tag, so that assets loaded dynamically by page
scripts still resolve against the original site.
"""

from __future__ import annotations

import html
import re
from typing import Optional

import httpx

from familysafe.errors import AccessDeniedError, AccessDeniedReason, AuthError, UpstreamError
from familysafe.gateway.rewriter import normalize_target_url
from familysafe.logger import StructuredLogger

_HEAD_TAG = re.compile(r"<head>", re.IGNORECASE)


def inject_base_tag(document: str, target_url: str) -> str:
    """Insert ``<base href=... target="_blank" />`` after ``<head>``, or prepend it."""
    base_tag = f'<base href="{html.escape(target_url, quote=True)}" target="_blank" />'
    if _HEAD_TAG.search(document):
        return _HEAD_TAG.sub(lambda match: match.group(0) + base_tag, document, count=1)
    return base_tag + document


def _denial_reason(body: str) -> AccessDeniedReason:
    """Parse ``Access Denied: <REASON>`` gateway bodies; unknown reasons map to ROLE_NOT_PERMITTED."""
    _, _, code = body.partition(":")
    try:
        return AccessDeniedReason(code.strip())
    except ValueError:
        return AccessDeniedReason.ROLE_NOT_PERMITTED


class ProxyClient:
    """Fetch proxied pages through the gateway.

    Args:
        gateway_url: Base URL of the proxy gateway.
        logger: Structured logger.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        gateway_url: str,
        logger: StructuredLogger,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._gateway_url = gateway_url
        self._logger = logger
        self._client = httpx.Client(timeout=httpx.Timeout(timeout), transport=transport)

    def close(self) -> None:
        self._client.close()

    def fetch_proxied_content(self, target_url: str, id_token: Optional[str]) -> str:
        """Return the HTML of *target_url*, fetched through the gateway.

        Raises:
            AuthError: If no token is supplied.
            AccessDeniedError: If the gateway answers 403.
            UpstreamError: For any other non-2xx answer, an empty body or a
                transport failure.
        """
        if not id_token:
            raise AuthError("User must be authenticated to use the proxy.")

        target_url = normalize_target_url(target_url)
        try:
            response = self._client.get(
                self._gateway_url,
                params={"url": target_url},
                headers={"Authorization": f"Bearer {id_token}"},
            )
        except httpx.HTTPError as exc:
            self._logger.error("Proxy request for %s failed: %s", target_url, exc)
            raise UpstreamError(f"Proxy connection failed: {exc}") from exc

        if response.status_code == 403:
            raise AccessDeniedError(
                _denial_reason(response.text),
                "Access Denied: Parental controls have blocked this site.",
            )
        if not response.is_success:
            raise UpstreamError(
                f"Proxy connection failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        body = response.text
        if not body.strip():
            raise UpstreamError("The website returned empty content.", status_code=response.status_code)

        return inject_base_tag(body, target_url)
