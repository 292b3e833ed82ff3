"""
User Profile Model.

Identity and authorization record, one per account.  Stored in the
``profiles`` collection keyed by ``uid``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from familysafe.models.base import Document
from familysafe.models.enums import ApprovalStatus, FilterLevel, UserRole


class UserProfile(Document):
    """Represents a user account.

    ``approved_by`` / ``approved_at`` double as reviewer metadata on
    rejection, and ``rejected_reason`` also holds the suspension reason.
    ``parent_email`` is the parent address a child declared at
    registration; it lets a pending child be resolved to its parent
    before ``parent_uid`` is linked.
    """

    uid: str
    email: str
    display_name: Optional[str] = None
    role: UserRole
    filter_level: FilterLevel = FilterLevel.MODERATE
    approval_status: ApprovalStatus
    parent_uid: Optional[str] = None
    parent_email: Optional[str] = None
    family_id: Optional[str] = None
    children_uids: list[str] = Field(default_factory=list)
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_validator("children_uids")
    @classmethod
    def _no_duplicate_children(cls, value: list[str]) -> list[str]:
        if len(set(value)) != len(value):
            raise ValueError("childrenUids must not contain duplicates")
        return value
