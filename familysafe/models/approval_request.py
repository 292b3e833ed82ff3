"""
Approval Request Model.

Write-mostly audit record of a registration awaiting review.  Never
consulted for authorization decisions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from familysafe.models.base import Document
from familysafe.models.enums import ApprovalStatus, UserRole


class ApprovalRequest(Document):
    id: str
    uid: str
    email: str
    requested_role: UserRole
    parent_email: Optional[str] = None
    family_id: Optional[str] = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    reviewer_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
