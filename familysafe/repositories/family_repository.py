"""
Family Repository.

Family Store: one ``Family`` document per approved parent, keyed by a
generated id.
"""

from __future__ import annotations

from typing import Any, Optional

from familysafe.models.family import Family
from familysafe.repositories.base_repository import BaseRepository


class FamilyRepository(BaseRepository[Family]):
    """Data access layer for Family documents."""

    TABLE = "families"
    MODEL = Family

    def get_by_id(self, family_id: str) -> Optional[Family]:
        return self._get(family_id)

    def get_by_parent(self, parent_uid: str) -> Optional[Family]:
        """Return the Family whose ``parentUid`` matches, or None."""
        matches = self._query({"parentUid": parent_uid}, limit=1)
        return matches[0] if matches else None

    def update_fields(self, family_id: str, **fields: Any) -> Family:
        """Single-record update of the named fields.

        Raises:
            NotFoundError: If the family does not exist.
        """
        return self._update_fields(family_id, Family.document_patch(**fields))
