"""
Shared Enumerations for FamilySafe Models.

StrEnum values compare equal to their string equivalents, so stored
documents and query filters can use the plain strings.
"""

from __future__ import annotations
from enum import StrEnum


class UserRole(StrEnum):
    """Account roles.

    The two ``PENDING_*`` roles exist only until an approval decision;
    they can never pass the proxy access policy regardless of status.
    """

    SUPER_ADMIN = "SUPER_ADMIN"
    PARENT = "PARENT"
    CHILD = "CHILD"
    PENDING_PARENT = "PENDING_PARENT"
    PENDING_CHILD = "PENDING_CHILD"


class ApprovalStatus(StrEnum):
    """Approval workflow states, independent of role.

    ``SUSPENDED`` is the terminal negative state; accounts are never
    hard-deleted.
    """

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"


class FilterLevel(StrEnum):
    """Content-restriction strictness."""

    STRICT = "STRICT"
    MODERATE = "MODERATE"
    NONE = "NONE"


PENDING_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.PENDING_PARENT, UserRole.PENDING_CHILD}
)
PROXY_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.SUPER_ADMIN, UserRole.PARENT, UserRole.CHILD}
)
