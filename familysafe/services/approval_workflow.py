"""
Approval Workflow Service.

Two-tier approval state machine: a SUPER_ADMIN approves or rejects
PENDING_PARENT accounts; an approved PARENT approves or rejects
PENDING_CHILD accounts.  Approvals that create or extend a Family run as
one unit of work; rejections, suspensions and reinstatements are
single-record writes (last write wins).

Operations:
    - approve_parent_request / reject_parent_request
    - approve_child_request / reject_child_request
    - suspend_user / unsuspend_user
"""

from __future__ import annotations

from typing import Optional

from familysafe.database import DatabaseManager
from familysafe.errors import InvalidStateError, NotFoundError
from familysafe.logger import StructuredLogger
from familysafe.models.enums import ApprovalStatus, FilterLevel, UserRole
from familysafe.models.family import Family
from familysafe.models.user_profile import UserProfile
from familysafe.repositories.audit_repository import AuditLogRepository
from familysafe.repositories.family_repository import FamilyRepository
from familysafe.repositories.profile_repository import ProfileRepository
from familysafe.repositories.unit_of_work import DocumentTransaction
from familysafe.services.approval_requests import ApprovalRequestService
from familysafe.services.base_service import TransactionalService
from familysafe.services.family_manager import FamilyService
from familysafe.utils.clock import Clock
from familysafe.utils.ordered_set import insert_if_absent


class ApprovalWorkflowService(TransactionalService):
    """
    Service handling account state transitions: approve, reject,
    suspend and unsuspend.

    Callers are responsible for authorizing the acting account; this
    layer only enforces record preconditions.
    """

    def __init__(
        self,
        db: DatabaseManager,
        profile_repo: ProfileRepository,
        family_repo: FamilyRepository,
        family_service: FamilyService,
        logger: StructuredLogger,
        clock: Optional[Clock] = None,
        audit_repo: Optional[AuditLogRepository] = None,
        approval_request_service: Optional[ApprovalRequestService] = None,
        max_attempts: int = 5,
    ) -> None:
        super().__init__(db, logger, clock, audit_repo, max_attempts)
        self._profiles = profile_repo
        self._families = family_repo
        self._family_service = family_service
        self._requests = approval_request_service

    # ------------------------------------------------------------------
    # Parent tier (admin decisions)
    # ------------------------------------------------------------------

    def approve_parent_request(self, admin_id: str, parent_id: str) -> UserProfile:
        """
        Approve a pending parent and create its Family in one unit of work.

        The Family's filter level is copied from the parent's own
        ``filterLevel``.  A parent that is no longer PENDING_PARENT, or
        that already has a family, is rejected, so concurrent approvals
        produce exactly one Family.

        Args:
            admin_id: The approving administrator.
            parent_id: The parent being approved.

        Returns:
            The updated parent profile.

        Raises:
            NotFoundError: If the parent does not exist.
            InvalidStateError: If the parent is not awaiting approval.
        """

        def _unit(txn: DocumentTransaction) -> tuple[UserProfile, Family]:
            now = self._now()

            # --- PRECONDITIONS ---
            parent = self._profiles.get_in(txn, parent_id)
            if parent is None:
                raise NotFoundError(f"Parent user {parent_id} not found")
            if parent.role != UserRole.PENDING_PARENT or parent.family_id:
                raise InvalidStateError(
                    f"User {parent_id} is not a pending parent (role={parent.role}, "
                    f"familyId={parent.family_id})"
                )

            # --- STAGE FAMILY + PARENT ---
            family = self._family_service.stage_new_family(
                txn, parent, now, filter_level=parent.filter_level or FilterLevel.MODERATE
            )
            updated = self._profiles.stage_update(
                txn,
                parent_id,
                role=UserRole.PARENT,
                approval_status=ApprovalStatus.APPROVED,
                approved_by=admin_id,
                approved_at=now,
                updated_at=now,
            )
            return updated, family

        parent, family = self._transact(_unit, "approve_parent_request")

        self._logger.info(
            "Parent %s approved by %s; family %s created", parent_id, admin_id, family.id
        )
        self._audit(
            "APPROVE_PARENT",
            "UserProfile",
            parent_id,
            admin_id,
            {"family_id": family.id},
        )
        self._record_decision(parent_id, ApprovalStatus.APPROVED, admin_id)
        return parent

    def reject_parent_request(self, admin_id: str, parent_id: str, reason: str) -> UserProfile:
        """Reject a parent.  ``approvedBy``/``approvedAt`` record the reviewer."""
        now = self._now()
        parent = self._profiles.update_fields(
            parent_id,
            approval_status=ApprovalStatus.REJECTED,
            rejected_reason=reason,
            approved_by=admin_id,
            approved_at=now,
            updated_at=now,
        )
        self._logger.info("Parent %s rejected by %s", parent_id, admin_id)
        self._audit("REJECT_PARENT", "UserProfile", parent_id, admin_id, {"reason": reason})
        self._record_decision(parent_id, ApprovalStatus.REJECTED, admin_id, reason)
        return parent

    # ------------------------------------------------------------------
    # Child tier (parent decisions)
    # ------------------------------------------------------------------

    def approve_child_request(self, parent_id: str, child_id: str) -> UserProfile:
        """
        Approve a child and add it to the parent's family in one unit of work.

        Writes the child profile, the parent's ``childrenUids`` and the
        Family's ``childrenUids``; the two sets are only appended to when
        the child is absent, so re-running an approval is idempotent.

        Raises:
            NotFoundError: If the parent, the child or the parent's Family
                does not exist.
            InvalidStateError: If the parent has no family, or the child is
                neither PENDING_CHILD nor a CHILD of the same family, or the
                child is linked to a different parent.
        """

        def _unit(txn: DocumentTransaction) -> UserProfile:
            now = self._now()

            # --- PRECONDITIONS ---
            parent = self._profiles.get_in(txn, parent_id)
            if parent is None:
                raise NotFoundError(f"Parent user {parent_id} not found")
            if not parent.family_id:
                raise InvalidStateError(f"Parent {parent_id} does not have a family")

            child = self._profiles.get_in(txn, child_id)
            if child is None:
                raise NotFoundError(f"Child user {child_id} not found")

            family = self._families.get_in(txn, parent.family_id)
            if family is None:
                raise NotFoundError(f"Family {parent.family_id} not found")

            already_member = child.role == UserRole.CHILD and child.family_id == family.id
            if child.role != UserRole.PENDING_CHILD and not already_member:
                raise InvalidStateError(
                    f"User {child_id} is not a pending child of family {family.id}"
                )
            if child.parent_uid and child.parent_uid != parent_id:
                raise InvalidStateError(
                    f"Child {child_id} is linked to parent {child.parent_uid}"
                )

            # --- STAGE CHILD, PARENT, FAMILY ---
            updated = self._profiles.stage_update(
                txn,
                child_id,
                role=UserRole.CHILD,
                approval_status=ApprovalStatus.APPROVED,
                parent_uid=parent_id,
                family_id=family.id,
                approved_by=parent_id,
                approved_at=now,
                updated_at=now,
            )

            parent_children, parent_changed = insert_if_absent(parent.children_uids, child_id)
            if parent_changed:
                self._profiles.stage_update(
                    txn, parent_id, children_uids=parent_children, updated_at=now
                )

            family_children, family_changed = insert_if_absent(family.children_uids, child_id)
            if family_changed:
                self._families.stage_update(txn, family.id, children_uids=family_children)

            return updated

        child = self._transact(_unit, "approve_child_request")

        self._logger.info("Child %s approved by parent %s", child_id, parent_id)
        self._audit(
            "APPROVE_CHILD", "UserProfile", child_id, parent_id, {"family_id": child.family_id}
        )
        self._record_decision(child_id, ApprovalStatus.APPROVED, parent_id)
        return child

    def reject_child_request(self, parent_id: str, child_id: str, reason: str) -> UserProfile:
        """Reject a child.  Touches the child record only."""
        now = self._now()
        child = self._profiles.update_fields(
            child_id,
            approval_status=ApprovalStatus.REJECTED,
            rejected_reason=reason,
            approved_by=parent_id,
            approved_at=now,
            updated_at=now,
        )
        self._logger.info("Child %s rejected by parent %s", child_id, parent_id)
        self._audit("REJECT_CHILD", "UserProfile", child_id, parent_id, {"reason": reason})
        self._record_decision(child_id, ApprovalStatus.REJECTED, parent_id, reason)
        return child

    # ------------------------------------------------------------------
    # Suspension
    # ------------------------------------------------------------------

    def suspend_user(self, actor_id: str, target_id: str, reason: str) -> UserProfile:
        """Suspend an account, storing *reason* in ``rejectedReason``.

        No permission check: admins may suspend anyone and parents only
        their own children, and that rule is enforced by the caller.
        """
        profile = self._profiles.update_fields(
            target_id,
            approval_status=ApprovalStatus.SUSPENDED,
            rejected_reason=reason,
            updated_at=self._now(),
        )
        self._logger.info("User %s suspended by %s", target_id, actor_id)
        self._audit("SUSPEND", "UserProfile", target_id, actor_id, {"reason": reason})
        return profile

    def unsuspend_user(self, target_id: str, actor_id: str = "system") -> UserProfile:
        """Set the account back to APPROVED.

        The status held before suspension is not restored: a pending or
        rejected account that was suspended also comes back APPROVED.
        """
        profile = self._profiles.update_fields(
            target_id,
            approval_status=ApprovalStatus.APPROVED,
            rejected_reason=None,
            updated_at=self._now(),
        )
        self._logger.info("User %s unsuspended", target_id)
        self._audit("UNSUSPEND", "UserProfile", target_id, actor_id)
        return profile

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _record_decision(
        self,
        uid: str,
        status: ApprovalStatus,
        reviewer_id: str,
        notes: Optional[str] = None,
    ) -> None:
        if self._requests is not None:
            self._requests.close_pending_requests(uid, status, reviewer_id, notes)
