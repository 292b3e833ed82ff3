"""
Profile Repository.

Profile Store: one ``UserProfile`` document per account, keyed by ``uid``.

**No ``delete()`` method.**  Accounts are never hard-deleted; suspension
is the terminal negative state and preserves every family link.
"""

from __future__ import annotations

from typing import Any, Optional

from familysafe.models.enums import ApprovalStatus, UserRole
from familysafe.models.user_profile import UserProfile
from familysafe.repositories.base_repository import BaseRepository


class ProfileRepository(BaseRepository[UserProfile]):
    """Data access layer for UserProfile documents."""

    TABLE = "profiles"
    MODEL = UserProfile
    KEY_FIELD = "uid"

    def get_by_id(self, uid: str) -> Optional[UserProfile]:
        """Fetch a profile by uid."""
        return self._get(uid)

    def get_by_email(self, email: str) -> Optional[UserProfile]:
        """Fetch the first profile with the given email address.

        Args:
            email: The address to look up (case-insensitive).

        Returns:
            The UserProfile if found, or None.
        """
        matches = self._query({"email": email.strip().lower()}, limit=1)
        return matches[0] if matches else None

    def get_all(self) -> list[UserProfile]:
        return self._query()

    def find(
        self,
        *,
        role: Optional[UserRole] = None,
        approval_status: Optional[ApprovalStatus] = None,
        family_id: Optional[str] = None,
        parent_uid: Optional[str] = None,
        parent_email: Optional[str] = None,
        email: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[UserProfile]:
        """Equality query over the indexed profile fields.  ``None`` means unfiltered."""
        filters: dict[str, Any] = {}
        if role is not None:
            filters["role"] = role
        if approval_status is not None:
            filters["approvalStatus"] = approval_status
        if family_id is not None:
            filters["familyId"] = family_id
        if parent_uid is not None:
            filters["parentUid"] = parent_uid
        if parent_email is not None:
            filters["parentEmail"] = parent_email.strip().lower()
        if email is not None:
            filters["email"] = email.strip().lower()
        return self._query(filters, limit=limit)

    def create(self, profile: UserProfile) -> UserProfile:
        """Insert a new profile.  The uid must be unused."""
        return self._insert(profile)

    def update_fields(self, uid: str, **fields: Any) -> UserProfile:
        """Single-record update of the named fields; ``None`` removes a field.

        Raises:
            NotFoundError: If no profile exists for ``uid``.
        """
        return self._update_fields(uid, UserProfile.document_patch(**fields))
