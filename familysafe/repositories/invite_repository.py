"""
Invite Repository.

Invite Ledger: append-only.  Codes are not unique keys; each invite is
stored under a generated document id and lookups resolve to the most
recently created invite carrying the code.
"""

from __future__ import annotations

import uuid
from typing import Optional

from familysafe.models.invite import Invite
from familysafe.repositories.base_repository import BaseRepository


class InviteRepository(BaseRepository[Invite]):
    """Data access layer for Invite documents."""

    TABLE = "invites"
    MODEL = Invite

    def append(self, invite: Invite) -> Invite:
        """Record a newly issued invite."""
        return self._insert(invite, doc_id=uuid.uuid4().hex)

    def latest_by_code(self, code: str) -> Optional[Invite]:
        """Return the most recently created invite with this code, or None."""
        matches = self._query({"code": code}, order_by="createdAt", descending=True, limit=1)
        return matches[0] if matches else None

    def list_for_family(self, family_id: str) -> list[Invite]:
        return self._query({"familyId": family_id}, order_by="createdAt")
