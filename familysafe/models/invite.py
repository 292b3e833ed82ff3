"""
Invite Model.

Short-lived code resolving to a Family.  Stored append-only in the
``invites`` collection; expiry is evaluated at lookup time.
"""

from __future__ import annotations

from datetime import datetime

from familysafe.models.base import Document


class Invite(Document):
    code: str
    family_id: str
    created_at: datetime
    expires_at: datetime

    def is_valid_at(self, now: datetime) -> bool:
        """``True`` while ``now <= expires_at``."""
        return now <= self.expires_at
