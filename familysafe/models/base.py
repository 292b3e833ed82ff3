"""
Document Translation Layer.

Every stored entity is a JSON document with camelCase keys.  The models in
this package map those documents to typed records with snake_case
attributes.  Translation fails closed: unknown keys, missing required keys
and wrongly typed values raise :class:`~familysafe.errors.DocumentFormatError`
instead of being passed through untyped.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from familysafe.errors import DocumentFormatError

DocumentData = dict[str, Any]


class Document(BaseModel):
    """Base class for all stored records."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "Document":
        """Validate a raw store document into a typed record.

        Raises:
            DocumentFormatError: If the document does not match the model.
        """
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise DocumentFormatError(
                f"Malformed {cls.__name__} document: {exc.error_count()} error(s)",
                original_error=exc,
            ) from exc

    def to_document(self) -> DocumentData:
        """Serialise to a JSON-safe camelCase document, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def document_patch(cls, **fields: Any) -> DocumentData:
        """Translate snake_case field updates into a camelCase document patch.

        A value of ``None`` marks the field for removal.  Unknown field
        names raise ``DocumentFormatError`` so a typo can never write a
        stray key into the store.
        """
        patch: DocumentData = {}
        for name, value in fields.items():
            field_info = cls.model_fields.get(name)
            if field_info is None:
                raise DocumentFormatError(f"{cls.__name__} has no field '{name}'")
            patch[field_info.alias or name] = _to_json_value(value)
        return patch


def _to_json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, (list, tuple)):
        return [_to_json_value(item) for item in value]
    return value
