"""
Family Model.

Aggregate grouping one parent with its children and the family-wide
content-filter default.  Stored in the ``families`` collection.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from familysafe.models.base import Document
from familysafe.models.enums import FilterLevel


class FamilySettings(BaseModel):
    """Family-wide settings.  ``filter_level`` is the only recognised key."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    filter_level: FilterLevel = FilterLevel.MODERATE


class Family(Document):
    """One parent, zero or more children."""

    id: str
    parent_uid: str
    children_uids: list[str] = Field(default_factory=list)
    created_at: datetime
    settings: Optional[FamilySettings] = None


def recognised_settings(settings_patch: Mapping[str, Any]) -> dict[str, FilterLevel]:
    """Extract the recognised keys from a settings patch.

    Accepts either ``filterLevel`` or ``filter_level``.  Unrecognised keys
    are ignored, not errors.  A recognised key with an invalid value raises
    ``ValueError``.
    """
    recognised: dict[str, FilterLevel] = {}
    for key in ("filterLevel", "filter_level"):
        value = settings_patch.get(key)
        if value:
            recognised["filter_level"] = FilterLevel(value)
    return recognised
