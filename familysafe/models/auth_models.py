"""
Authentication Models.

Typed result of claims-only token validation, handed from the gateway's
token validator to the request handler.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class TokenIdentity(BaseModel):
    """Identity claims extracted from a validated bearer token."""

    # None when the token carries no ``sub`` claim.
    uid: Optional[str] = None
    email: Optional[str] = None
    expires_at: float
