"""
Approval Request Repository.

Write-mostly log of registration requests.  Nothing here is consulted for
authorization; the profile's ``approvalStatus`` is authoritative.
"""

from __future__ import annotations

from typing import Any, Optional

from familysafe.models.approval_request import ApprovalRequest
from familysafe.models.enums import ApprovalStatus
from familysafe.repositories.base_repository import BaseRepository


class ApprovalRequestRepository(BaseRepository[ApprovalRequest]):
    """Data access layer for ApprovalRequest documents."""

    TABLE = "approval_requests"
    MODEL = ApprovalRequest

    def get_by_id(self, request_id: str) -> Optional[ApprovalRequest]:
        return self._get(request_id)

    def create(self, request: ApprovalRequest) -> ApprovalRequest:
        return self._insert(request)

    def get_by_status(self, status: ApprovalStatus) -> list[ApprovalRequest]:
        """Requests with the given status, newest first."""
        return self._query({"status": status}, order_by="createdAt", descending=True)

    def get_by_uid(self, uid: str) -> list[ApprovalRequest]:
        return self._query({"uid": uid}, order_by="createdAt", descending=True)

    def update_fields(self, request_id: str, **fields: Any) -> ApprovalRequest:
        """Single-record update.

        Raises:
            NotFoundError: If the request does not exist.
        """
        return self._update_fields(request_id, ApprovalRequest.document_patch(**fields))
