"""
Data Models Package.

Re-exports the typed document records and enumerations:
    from familysafe.models import UserProfile, Family, Invite, ApprovalRequest
    from familysafe.models import UserRole, ApprovalStatus, FilterLevel
"""

from __future__ import annotations

from familysafe.models.enums import ApprovalStatus, FilterLevel, UserRole
from familysafe.models.base import Document
from familysafe.models.user_profile import UserProfile
from familysafe.models.family import Family, FamilySettings
from familysafe.models.invite import Invite
from familysafe.models.approval_request import ApprovalRequest
from familysafe.models.auth_models import TokenIdentity

__all__ = [
    "ApprovalRequest",
    "ApprovalStatus",
    "Document",
    "Family",
    "FamilySettings",
    "FilterLevel",
    "Invite",
    "TokenIdentity",
    "UserProfile",
    "UserRole",
]
