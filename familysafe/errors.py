"""
Error Taxonomy.

Every failure raised by the access-control core derives from
:class:`FamilySafeError`.  Services raise these synchronously and never
retry; the gateway converts them into an HTTP status and a plain-text body
at its boundary.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional

__all__ = [
    "AccessDeniedError",
    "AccessDeniedReason",
    "AuthError",
    "ConfigError",
    "DocumentFormatError",
    "FamilySafeError",
    "InputValidationError",
    "InvalidStateError",
    "NotFoundError",
    "TransactionConflictError",
    "UpstreamError",
]


class FamilySafeError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


class NotFoundError(FamilySafeError):
    """A profile, family or invite does not exist."""


class InvalidStateError(FamilySafeError):
    """Operation preconditions are not met for the current record state."""


class InputValidationError(FamilySafeError):
    """Malformed request input."""


class AuthError(FamilySafeError):
    """Token missing, malformed, expired, or for the wrong issuer/audience."""


class AccessDeniedReason(StrEnum):
    """Why an authenticated profile may not use the proxy."""

    PENDING = "PENDING"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"
    ROLE_NOT_PERMITTED = "ROLE_NOT_PERMITTED"
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"


class AccessDeniedError(FamilySafeError):
    """The profile exists but its status or role forbids access.

    ``reason`` lets presentation code render a specific message without
    re-deriving the profile state.
    """

    def __init__(self, reason: AccessDeniedReason, message: Optional[str] = None) -> None:
        self.reason: AccessDeniedReason = reason
        super().__init__(message or f"Access denied: {reason}")


class ConfigError(FamilySafeError):
    """Required deployment configuration is absent."""


class UpstreamError(FamilySafeError):
    """The proxied target could not be fetched or returned an error."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code: Optional[int] = status_code
        super().__init__(message)


class TransactionConflictError(FamilySafeError):
    """A document changed between the transactional read and the commit."""


class DocumentFormatError(FamilySafeError):
    """A stored document does not match its typed record."""
