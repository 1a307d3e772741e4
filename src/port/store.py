"""Port definition for record stores.

Both the document and relational adapters implement this interface so the
auth service depends on neither backend. Records are plain dicts whose
identifier is always exposed as the string field 'id'.
"""

from typing import Any, Protocol

from domain.model.query import FilterLike, Patch

Record = dict[str, Any]


class Store(Protocol):
    def create_one(self, name: str, record: Record) -> str:
        """Insert record and return its normalized string id."""
        ...

    def find_one(self, name: str, filter: FilterLike) -> Record:
        """Return the first matching record. Raise NotFoundError if none."""
        ...

    def find_many(self, name: str, filter: FilterLike | None = None) -> list[Record]:
        """Return every matching record, fully materialized."""
        ...

    def update_one(self, name: str, filter: FilterLike, patch: Patch) -> bool:
        """Apply patch to the first match. Raise NotFoundError if none."""
        ...

    def update_many(self, name: str, filter: FilterLike, patch: Patch) -> int:
        """Apply patch to every match and return how many matched."""
        ...

    def delete_one(self, name: str, filter: FilterLike) -> bool:
        """Delete the first match. Raise NotFoundError if none."""
        ...

    def delete_many(self, name: str, filter: FilterLike) -> int:
        """Delete every match and return how many were removed."""
        ...

    def close(self) -> None: ...
