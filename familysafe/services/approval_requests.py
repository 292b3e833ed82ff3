"""
Approval Request Service.

Maintains the write-mostly audit trail of registration requests.  These
records are informational: authorization always reads the profile's
``approvalStatus``.
"""

from __future__ import annotations

import sqlite3
import uuid
from typing import Optional

from familysafe.errors import FamilySafeError
from familysafe.logger import StructuredLogger
from familysafe.models.approval_request import ApprovalRequest
from familysafe.models.enums import ApprovalStatus, UserRole
from familysafe.repositories.approval_request_repository import ApprovalRequestRepository
from familysafe.services.base_service import BaseService
from familysafe.utils.clock import Clock


class ApprovalRequestService(BaseService):
    """Create, list and close approval request records."""

    def __init__(
        self,
        request_repo: ApprovalRequestRepository,
        logger: StructuredLogger,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(logger, clock)
        self._repo = request_repo

    def create_approval_request(
        self,
        uid: str,
        email: str,
        requested_role: UserRole,
        parent_email: Optional[str] = None,
        family_id: Optional[str] = None,
    ) -> ApprovalRequest:
        """Record a new PENDING request and return it (with its generated id)."""
        request = ApprovalRequest(
            id=uuid.uuid4().hex,
            uid=uid,
            email=email,
            requested_role=requested_role,
            parent_email=parent_email,
            family_id=family_id,
            status=ApprovalStatus.PENDING,
            created_at=self._now(),
        )
        self._repo.create(request)
        self._logger.info("Approval request %s recorded for %s", request.id, uid)
        return request

    def get_approval_requests_by_status(self, status: ApprovalStatus) -> list[ApprovalRequest]:
        return self._repo.get_by_status(status)

    def update_approval_request_status(
        self,
        request_id: str,
        status: ApprovalStatus,
        reviewer_id: str,
        notes: Optional[str] = None,
    ) -> ApprovalRequest:
        """Set the review outcome.  ``notes`` is only written when given.

        Raises:
            NotFoundError: If the request does not exist.
        """
        fields: dict[str, object] = {
            "status": status,
            "reviewer_id": reviewer_id,
            "reviewed_at": self._now(),
        }
        if notes:
            fields["notes"] = notes
        return self._repo.update_fields(request_id, **fields)

    def close_pending_requests(
        self,
        uid: str,
        status: ApprovalStatus,
        reviewer_id: str,
        notes: Optional[str] = None,
    ) -> int:
        """Mark every PENDING request for *uid* with the review outcome.

        Runs after the profile decision has committed.  Failures are
        logged and do not propagate, since these records never gate
        access.

        Returns:
            The number of requests closed.
        """
        closed = 0
        try:
            for request in self._repo.get_by_uid(uid):
                if request.status != ApprovalStatus.PENDING:
                    continue
                self.update_approval_request_status(request.id, status, reviewer_id, notes)
                closed += 1
        except (FamilySafeError, sqlite3.Error) as exc:
            self._logger.warning(
                "Failed to close approval requests for %s: %s", uid, exc
            )
        return closed
