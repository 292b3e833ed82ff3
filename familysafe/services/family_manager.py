"""
Family Aggregate Manager.

Creates Families and keeps the three mirrored views of membership in step:
the Family's ``childrenUids``, the parent profile's ``childrenUids`` and
each child profile's ``familyId``/``parentUid``.  Membership changes are
transactional; settings updates are single-record writes.

Read APIs treat the profile query (``familyId == id AND role == CHILD``)
as the authoritative list of a family's children.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Mapping, Optional

from familysafe.database import DatabaseManager
from familysafe.errors import InputValidationError, InvalidStateError, NotFoundError
from familysafe.logger import StructuredLogger
from familysafe.models.enums import ApprovalStatus, FilterLevel, UserRole
from familysafe.models.family import Family, FamilySettings, recognised_settings
from familysafe.models.user_profile import UserProfile
from familysafe.repositories.audit_repository import AuditLogRepository
from familysafe.repositories.family_repository import FamilyRepository
from familysafe.repositories.profile_repository import ProfileRepository
from familysafe.repositories.unit_of_work import DocumentTransaction
from familysafe.services.base_service import TransactionalService
from familysafe.utils.clock import Clock
from familysafe.utils.ordered_set import insert_if_absent, remove_if_present


class FamilyService(TransactionalService):
    """
    Service owning the Family aggregate.

    Dependencies are injected via __init__ -- no global state.
    """

    def __init__(
        self,
        db: DatabaseManager,
        profile_repo: ProfileRepository,
        family_repo: FamilyRepository,
        logger: StructuredLogger,
        clock: Optional[Clock] = None,
        audit_repo: Optional[AuditLogRepository] = None,
        max_attempts: int = 5,
    ) -> None:
        super().__init__(db, logger, clock, audit_repo, max_attempts)
        self._profiles = profile_repo
        self._families = family_repo

    # ------------------------------------------------------------------
    # Transactional staging helpers (shared with the approval workflow)
    # ------------------------------------------------------------------

    def stage_new_family(
        self,
        txn: DocumentTransaction,
        parent: UserProfile,
        now: datetime,
        filter_level: FilterLevel = FilterLevel.MODERATE,
    ) -> Family:
        """Stage a new Family owned by *parent* and link the parent to it.

        The parent must already have been read through *txn*.
        """
        family = Family(
            id=uuid.uuid4().hex,
            parent_uid=parent.uid,
            children_uids=[],
            created_at=now,
            settings=FamilySettings(filter_level=filter_level),
        )
        self._families.stage_create(txn, family)
        self._profiles.stage_update(txn, parent.uid, family_id=family.id, updated_at=now)
        return family

    # ------------------------------------------------------------------
    # Aggregate writes
    # ------------------------------------------------------------------

    def create_family(self, parent_id: str) -> Family:
        """Create a Family (no children, MODERATE) and link it to the parent.

        Raises:
            NotFoundError: If the parent profile does not exist.
            InvalidStateError: If the parent is already linked to a family.
        """

        def _unit(txn: DocumentTransaction) -> Family:
            parent = self._profiles.get_in(txn, parent_id)
            if parent is None:
                raise NotFoundError(f"Parent user {parent_id} not found")
            if parent.family_id:
                raise InvalidStateError(
                    f"Parent {parent_id} already belongs to family {parent.family_id}"
                )
            return self.stage_new_family(txn, parent, self._now())

        family = self._transact(_unit, "create_family")
        self._logger.info("Family %s created for parent %s", family.id, parent_id)
        self._audit("CREATE_FAMILY", "Family", family.id, parent_id, {"parent_uid": parent_id})
        return family

    def add_child_to_family(self, family_id: str, child_id: str) -> None:
        """Add a child to a family, mirrored on the family, parent and child.

        Set semantics: adding an existing member writes nothing new.

        Raises:
            NotFoundError: If the family, the child or the family's parent
                does not exist.
        """

        def _unit(txn: DocumentTransaction) -> None:
            family, parent, child = self._read_membership(txn, family_id, child_id)
            now = self._now()

            family_children, family_changed = insert_if_absent(family.children_uids, child_id)
            parent_children, parent_changed = insert_if_absent(parent.children_uids, child_id)

            if family_changed:
                self._families.stage_update(txn, family_id, children_uids=family_children)
            if child.family_id != family_id or child.parent_uid != parent.uid:
                self._profiles.stage_update(
                    txn, child_id, family_id=family_id, parent_uid=parent.uid, updated_at=now
                )
            if parent_changed:
                self._profiles.stage_update(
                    txn, parent.uid, children_uids=parent_children, updated_at=now
                )

        self._transact(_unit, "add_child_to_family")
        self._audit("ADD_CHILD", "Family", family_id, child_id, {"child_uid": child_id})

    def remove_child_from_family(self, family_id: str, child_id: str) -> None:
        """Remove a child from a family, mirrored on the family, parent and child.

        Removing a child that is not a member leaves the children sets
        untouched.  The child's own links are cleared only when they point
        at this family.

        Raises:
            NotFoundError: If the family, the child or the family's parent
                does not exist.
        """

        def _unit(txn: DocumentTransaction) -> None:
            family, parent, child = self._read_membership(txn, family_id, child_id)
            now = self._now()

            family_children, family_changed = remove_if_present(family.children_uids, child_id)
            parent_children, parent_changed = remove_if_present(parent.children_uids, child_id)

            if family_changed:
                self._families.stage_update(txn, family_id, children_uids=family_children)
            if child.family_id == family_id:
                self._profiles.stage_update(
                    txn, child_id, family_id=None, parent_uid=None, updated_at=now
                )
            if parent_changed:
                self._profiles.stage_update(
                    txn, parent.uid, children_uids=parent_children, updated_at=now
                )

        self._transact(_unit, "remove_child_from_family")
        self._audit("REMOVE_CHILD", "Family", family_id, child_id, {"child_uid": child_id})

    def update_family_settings(
        self, family_id: str, settings_patch: Mapping[str, Any]
    ) -> Family:
        """Merge recognised settings (``filterLevel``) into the family.

        Unrecognised keys are ignored.  Single-record write.

        Raises:
            NotFoundError: If the family does not exist.
            InputValidationError: If ``filterLevel`` is not a valid level.
        """
        try:
            recognised = recognised_settings(settings_patch)
        except ValueError as exc:
            raise InputValidationError(
                f"Invalid filter level: {exc}", original_error=exc
            ) from exc

        if not recognised:
            family = self._families.get_by_id(family_id)
            if family is None:
                raise NotFoundError(f"Family {family_id} not found")
            return family

        family = self._families.update_fields(
            family_id, settings=FamilySettings(filter_level=recognised["filter_level"])
        )
        self._logger.info(
            "Family %s filter level set to %s", family_id, recognised["filter_level"]
        )
        self._audit(
            "UPDATE_SETTINGS",
            "Family",
            family_id,
            family.parent_uid,
            {"filter_level": str(recognised["filter_level"])},
        )
        return family

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_family(self, family_id: str) -> Optional[Family]:
        return self._families.get_by_id(family_id)

    def get_family_by_parent(self, parent_uid: str) -> Optional[Family]:
        return self._families.get_by_parent(parent_uid)

    def get_family_children(self, family_id: str) -> list[UserProfile]:
        """All CHILD profiles whose ``familyId`` matches.

        Independent of ``Family.childrenUids``; this is the authoritative
        view.
        """
        return self._profiles.find(family_id=family_id, role=UserRole.CHILD)

    def get_approved_children_for_parent(self, parent_uid: str) -> list[UserProfile]:
        return self._profiles.find(
            parent_uid=parent_uid,
            approval_status=ApprovalStatus.APPROVED,
            role=UserRole.CHILD,
        )

    def user_belongs_to_family(self, uid: str, family_id: str) -> bool:
        profile = self._profiles.get_by_id(uid)
        return profile is not None and profile.family_id == family_id

    def get_family_filter_level(self, family_id: str) -> FilterLevel:
        """The family-wide filter level, MODERATE when unset or unknown family."""
        family = self._families.get_by_id(family_id)
        if family is not None and family.settings is not None:
            return family.settings.filter_level
        return FilterLevel.MODERATE

    def find_parent_by_email(self, email: str) -> Optional[UserProfile]:
        """Find an approved-role (PARENT) profile by email, or None."""
        matches = self._profiles.find(email=email, role=UserRole.PARENT, limit=1)
        return matches[0] if matches else None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _read_membership(
        self, txn: DocumentTransaction, family_id: str, child_id: str
    ) -> tuple[Family, UserProfile, UserProfile]:
        family = self._families.get_in(txn, family_id)
        if family is None:
            raise NotFoundError(f"Family {family_id} not found")
        child = self._profiles.get_in(txn, child_id)
        if child is None:
            raise NotFoundError(f"Child user {child_id} not found")
        parent = self._profiles.get_in(txn, family.parent_uid)
        if parent is None:
            raise NotFoundError(f"Parent user {family.parent_uid} not found")
        return family, parent, child

