"""
Bearer Token Validation (claims only).

Validates the structure and the ``exp``/``iss``/``aud`` claims of an
identity-provider ID token.  The signature is NOT verified; anyone able
to mint a structurally valid token with the right claims passes.  Swap
:func:`verify_id_token` for a signature-verifying implementation before
relying on it for anything beyond gating an informational proxy.

Checks run in a fixed order and the first failure wins:

1. exactly three dot-separated segments, else ``Invalid token format``
2. a payload segment that base64url-decodes to a JSON object, else
   ``Failed to decode token``
3. ``exp`` in the future, else ``Token expired`` (a missing ``exp`` counts
   as expired)
4. ``iss`` equals ``<issuer base>/<project id>``, else ``Invalid issuer``
5. ``aud`` equals the project id, else ``Invalid audience``

A token without a ``sub`` claim still passes; its identity has no uid.
"""

from __future__ import annotations

import binascii
import json
import time
from typing import Optional

from jwt.utils import base64url_decode

from familysafe.config import AppConfig
from familysafe.errors import AuthError
from familysafe.models.auth_models import TokenIdentity

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str) -> str:
    """Strip the ``Bearer`` prefix from an Authorization header value."""
    return authorization.removeprefix(BEARER_PREFIX).strip()


def verify_id_token(
    token: str,
    config: AppConfig,
    now: Optional[float] = None,
) -> TokenIdentity:
    """Validate *token*'s claims and return the caller's identity.

    Args:
        token: The raw token (without the ``Bearer`` prefix).
        config: Supplies the project id and issuer base.
        now: Current UNIX time; defaults to ``time.time()``.

    Raises:
        ConfigError: If the project id is not configured.
        AuthError: With one of the reasons listed in the module docstring.
    """
    expected_issuer = config.expected_issuer()
    project_id = config.PROJECT_ID

    segments = token.split(".")
    if len(segments) != 3:
        raise AuthError("Invalid token format")

    # Only the payload segment is read; header and signature are ignored.
    try:
        claims = json.loads(base64url_decode(segments[1]))
    except (binascii.Error, ValueError) as exc:
        raise AuthError("Failed to decode token", original_error=exc) from exc
    if not isinstance(claims, dict):
        raise AuthError("Failed to decode token")

    current_time = time.time() if now is None else now
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)) or exp <= current_time:
        raise AuthError("Token expired")

    issuer = claims.get("iss")
    if issuer != expected_issuer:
        raise AuthError(f"Invalid issuer: {issuer}")

    audience = claims.get("aud")
    if audience != project_id:
        raise AuthError(f"Invalid audience: {audience}")

    subject = claims.get("sub")
    email = claims.get("email")
    return TokenIdentity(
        uid=subject if isinstance(subject, str) and subject else None,
        email=email if isinstance(email, str) else None,
        expires_at=float(exp),
    )
