"""
User Service.

Registration and profile queries.  New accounts start in a pending role
with status PENDING; a child registers against a parent either by
declaring the parent's email or by presenting a family invite code.

Operations:
    - create_user_profile
    - get_user_profile / update_user_profile
    - get_all_users / get_users_by_role / get_users_by_approval_status
    - get_pending_parent_requests / get_pending_child_requests_for_parent
"""

from __future__ import annotations

from typing import Optional

from familysafe.errors import InputValidationError, InvalidStateError, NotFoundError
from familysafe.logger import StructuredLogger
from familysafe.models.enums import PENDING_ROLES, ApprovalStatus, FilterLevel, UserRole
from familysafe.models.user_profile import UserProfile
from familysafe.repositories.audit_repository import AuditLogRepository
from familysafe.repositories.profile_repository import ProfileRepository
from familysafe.services.approval_requests import ApprovalRequestService
from familysafe.services.base_service import BaseService
from familysafe.services.family_manager import FamilyService
from familysafe.services.invites import InviteService
from familysafe.utils.clock import Clock

# Fields a user may change on their own profile.  Role, status and family
# links only change through the approval workflow.
_EDITABLE_FIELDS: frozenset[str] = frozenset({"display_name", "filter_level"})


class UserService(BaseService):
    """Service for user registration and profile lookups."""

    def __init__(
        self,
        profile_repo: ProfileRepository,
        family_service: FamilyService,
        invite_service: InviteService,
        approval_request_service: ApprovalRequestService,
        logger: StructuredLogger,
        clock: Optional[Clock] = None,
        audit_repo: Optional[AuditLogRepository] = None,
    ) -> None:
        super().__init__(logger, clock, audit_repo)
        self._profiles = profile_repo
        self._families = family_service
        self._invites = invite_service
        self._requests = approval_request_service

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def create_user_profile(
        self,
        uid: str,
        email: str,
        role: UserRole,
        display_name: Optional[str] = None,
        parent_email: Optional[str] = None,
        invite_code: Optional[str] = None,
    ) -> UserProfile:
        """
        Create the profile for a newly registered account.

        Args:
            uid: Identity-provider subject id.
            email: Account email (stored lower-cased).
            role: PENDING_PARENT or PENDING_CHILD.
            display_name: Optional display name.
            parent_email: For children, the parent's declared email.
            invite_code: For children, a family invite code.  Takes
                precedence over ``parent_email``.

        Returns:
            The stored profile, status PENDING, filter level MODERATE.

        Raises:
            InputValidationError: For a non-pending role, an empty email, a
                child without parent email or invite code, or an invalid
                or expired invite code.
            InvalidStateError: If a profile already exists for ``uid``.
        """
        normalized_email = (email or "").strip().lower()
        if not normalized_email:
            raise InputValidationError("Email is required")
        if role not in PENDING_ROLES:
            raise InputValidationError(f"Cannot register with role {role}")
        if self._profiles.get_by_id(uid) is not None:
            raise InvalidStateError(f"Profile {uid} already exists")

        parent_uid: Optional[str] = None
        declared_parent_email: Optional[str] = None
        family_id: Optional[str] = None

        if role == UserRole.PENDING_CHILD:
            if invite_code:
                family = self._invites.validate_invite_code(invite_code)
                if family is None:
                    raise InputValidationError("Invalid or expired invite code")
                parent = self._profiles.get_by_id(family.parent_uid)
                parent_uid = family.parent_uid
                family_id = family.id
                declared_parent_email = parent.email if parent else parent_email
            elif parent_email:
                declared_parent_email = parent_email.strip().lower()
                parent = self._families.find_parent_by_email(declared_parent_email)
                if parent is not None:
                    parent_uid = parent.uid
                    family_id = parent.family_id
            else:
                raise InputValidationError(
                    "A child account needs a parent email or an invite code"
                )

        now = self._now()
        profile = UserProfile(
            uid=uid,
            email=normalized_email,
            display_name=display_name,
            role=role,
            filter_level=FilterLevel.MODERATE,
            approval_status=ApprovalStatus.PENDING,
            parent_uid=parent_uid,
            parent_email=declared_parent_email,
            created_at=now,
            updated_at=now,
        )
        self._profiles.create(profile)

        self._requests.create_approval_request(
            uid=uid,
            email=normalized_email,
            requested_role=role,
            parent_email=declared_parent_email,
            family_id=family_id,
        )
        self._logger.info("Registered %s as %s", uid, role)
        self._audit(
            "REGISTER",
            "UserProfile",
            uid,
            uid,
            {"role": str(role), "parent_uid": parent_uid},
        )
        return profile

    # ------------------------------------------------------------------
    # Profile reads / updates
    # ------------------------------------------------------------------

    def get_user_profile(self, uid: str) -> Optional[UserProfile]:
        return self._profiles.get_by_id(uid)

    def update_user_profile(self, uid: str, **updates: object) -> UserProfile:
        """Update user-editable fields (``display_name``, ``filter_level``).

        Raises:
            InputValidationError: If any other field is named.
            NotFoundError: If the profile does not exist.
        """
        disallowed = set(updates) - _EDITABLE_FIELDS
        if disallowed:
            raise InputValidationError(
                f"Fields cannot be updated directly: {', '.join(sorted(disallowed))}"
            )
        if "filter_level" in updates:
            try:
                updates["filter_level"] = FilterLevel(updates["filter_level"])
            except ValueError as exc:
                raise InputValidationError(
                    f"Invalid filter level: {updates['filter_level']}", original_error=exc
                ) from exc
        return self._profiles.update_fields(uid, updated_at=self._now(), **updates)

    def require_user_profile(self, uid: str) -> UserProfile:
        """Like :meth:`get_user_profile` but raises ``NotFoundError``."""
        profile = self._profiles.get_by_id(uid)
        if profile is None:
            raise NotFoundError(f"User {uid} not found")
        return profile

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_all_users(self) -> list[UserProfile]:
        return self._profiles.get_all()

    def get_users_by_role(self, role: UserRole) -> list[UserProfile]:
        return self._profiles.find(role=role)

    def get_users_by_approval_status(self, status: ApprovalStatus) -> list[UserProfile]:
        return self._profiles.find(approval_status=status)

    def get_pending_parent_requests(self) -> list[UserProfile]:
        """All PENDING_PARENT profiles, including previously rejected ones."""
        return self.get_users_by_role(UserRole.PENDING_PARENT)

    def get_pending_child_requests_for_parent(self, parent_uid: str) -> list[UserProfile]:
        """
        Pending children linked to a parent.

        Children linked by ``parentUid`` are returned when any exist;
        otherwise children that declared the parent's email.
        """
        linked = self._profiles.find(role=UserRole.PENDING_CHILD, parent_uid=parent_uid)
        if linked:
            return linked

        parent = self._profiles.get_by_id(parent_uid)
        if parent is None or not parent.email:
            return []
        return self._profiles.find(role=UserRole.PENDING_CHILD, parent_email=parent.email)
