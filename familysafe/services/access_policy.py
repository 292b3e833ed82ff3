"""
Access Policy Evaluator.

Pure functions deciding whether a profile may use the proxy.  Approval
status is checked before role: a PENDING_* role can never be APPROVED in
a consistent store, but if it ever were, the role check still denies it.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

from familysafe.errors import AccessDeniedError, AccessDeniedReason
from familysafe.models.enums import PROXY_ROLES, ApprovalStatus
from familysafe.models.user_profile import UserProfile

_STATUS_REASONS: dict[ApprovalStatus, AccessDeniedReason] = {
    ApprovalStatus.PENDING: AccessDeniedReason.PENDING,
    ApprovalStatus.REJECTED: AccessDeniedReason.REJECTED,
    ApprovalStatus.SUSPENDED: AccessDeniedReason.SUSPENDED,
}


class AccessDecision(NamedTuple):
    allowed: bool
    reason: Optional[AccessDeniedReason] = None


def is_approved(profile: UserProfile) -> bool:
    return profile.approval_status == ApprovalStatus.APPROVED


def can_access_proxy(profile: UserProfile) -> bool:
    """``True`` iff the profile is APPROVED and its role is SUPER_ADMIN, PARENT or CHILD."""
    return is_approved(profile) and profile.role in PROXY_ROLES


def evaluate_proxy_access(profile: Optional[UserProfile]) -> AccessDecision:
    """Like :func:`can_access_proxy`, but says why access is denied."""
    if profile is None:
        return AccessDecision(False, AccessDeniedReason.PROFILE_NOT_FOUND)
    if not is_approved(profile):
        return AccessDecision(False, _STATUS_REASONS[profile.approval_status])
    if profile.role not in PROXY_ROLES:
        return AccessDecision(False, AccessDeniedReason.ROLE_NOT_PERMITTED)
    return AccessDecision(True)


def require_proxy_access(profile: Optional[UserProfile]) -> UserProfile:
    """Return the profile if it may use the proxy.

    Raises:
        AccessDeniedError: With the denial reason otherwise.
    """
    decision = evaluate_proxy_access(profile)
    if not decision.allowed:
        assert decision.reason is not None
        raise AccessDeniedError(decision.reason)
    assert profile is not None
    return profile
