"""
Temporary ids.

A TempId stands in for the key of an entity whose permanent id has not been
assigned yet by a remote authority. Refs built from tempids, e.g.
``("person", TempId())``, are rewritten to permanent refs by the reconciler
when a merged response carries a ``tempids`` mapping.
"""

from __future__ import annotations

import uuid
from functools import total_ordering
from typing import Optional


@total_ordering
class TempId:
    """A hashable temporary id backed by a uuid string."""

    __slots__ = ("id",)

    def __init__(self, id: Optional[str] = None) -> None:
        self.id = str(id) if id is not None else str(uuid.uuid4())

    def __eq__(self, other: object) -> bool:
        return isinstance(other, TempId) and other.id == self.id

    def __lt__(self, other: TempId) -> bool:
        return self.id < other.id

    def __hash__(self) -> int:
        return hash(("tempid", self.id))

    def __repr__(self) -> str:
        return f"#tempid[{self.id!r}]"


def tempid(id: Optional[str] = None) -> TempId:
    """Return a temporary id, fresh unless ``id`` is given."""
    return TempId(id)


def is_tempid(x: object) -> bool:
    return isinstance(x, TempId)
