"""
Idempotent set operations over ordered id sequences.

``childrenUids`` arrays are ordered and duplicate-free.  These helpers
return a new list plus a flag telling the caller whether anything changed,
so a write can be skipped when the operation is a no-op.
"""

from __future__ import annotations

from typing import Iterable


def insert_if_absent(items: Iterable[str], item: str) -> tuple[list[str], bool]:
    """Append *item* unless already present."""
    result = list(items)
    if item in result:
        return result, False
    result.append(item)
    return result, True


def remove_if_present(items: Iterable[str], item: str) -> tuple[list[str], bool]:
    """Drop every occurrence of *item*; a missing item is a no-op."""
    source = list(items)
    result = [existing for existing in source if existing != item]
    return result, len(result) != len(source)
