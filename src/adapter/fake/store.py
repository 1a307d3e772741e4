"""In-memory implementation of Store for testing."""

import copy
import uuid
from typing import Any

from domain.model.errors import ConflictError, NotFoundError, ValidationError
from domain.model.query import Condition, FilterLike, Op, Patch, as_filter


def _lookup(record: dict, field: str) -> tuple[bool, Any]:
    value: Any = record
    for part in field.split('.'):
        if not isinstance(value, dict) or part not in value:
            return False, None
        value = value[part]
    return True, value


def _matches(record: dict, cond: Condition) -> bool:
    present, value = _lookup(record, cond.field)
    if cond.op is Op.EQ:
        return present and value == cond.value
    if cond.op is Op.NE:
        return not present or value != cond.value
    if cond.op is Op.IN:
        return present and value in cond.value
    if not present or value is None:
        return False
    if cond.op is Op.GT:
        return value > cond.value
    if cond.op is Op.GTE:
        return value >= cond.value
    if cond.op is Op.LT:
        return value < cond.value
    return value <= cond.value


class FakeStore:
    def __init__(self, unique: dict[str, tuple[str, ...]] | None = None):
        self.tables: dict[str, dict[str, dict]] = {}
        self.unique = unique or {}

    def _table(self, name: str) -> dict[str, dict]:
        return self.tables.setdefault(name, {})

    def _select(self, name: str, filter: FilterLike | None) -> list[dict]:
        conditions = as_filter(filter).conditions
        return [
            r for r in self._table(name).values()
            if all(_matches(r, c) for c in conditions)
        ]

    def _check_unique(self, name: str, record: dict, skip_id: str | None = None) -> None:
        for field in self.unique.get(name, ()):
            if field not in record:
                continue
            for other in self._table(name).values():
                if other['id'] != skip_id and other.get(field) == record[field]:
                    raise ConflictError(f"duplicate value for {field}")

    # ── write operations ─────────────────────────────────────

    def create_one(self, name: str, record: dict) -> str:
        if 'id' in record:
            raise ValidationError("id is assigned by the store")
        self._check_unique(name, record)
        record_id = uuid.uuid4().hex
        stored = copy.deepcopy(record)
        stored['id'] = record_id
        self._table(name)[record_id] = stored
        return record_id

    def _apply(self, name: str, record: dict, patch: Patch) -> None:
        if 'id' in patch:
            raise ValidationError("id cannot be updated")
        merged = {**record, **copy.deepcopy(dict(patch))}
        self._check_unique(name, merged, skip_id=record['id'])
        record.update(copy.deepcopy(dict(patch)))

    def update_one(self, name: str, filter: FilterLike, patch: Patch) -> bool:
        matches = self._select(name, filter)
        if not matches:
            raise NotFoundError("record not found")
        self._apply(name, matches[0], patch)
        return True

    def update_many(self, name: str, filter: FilterLike, patch: Patch) -> int:
        matches = self._select(name, filter)
        for record in matches:
            self._apply(name, record, patch)
        return len(matches)

    def delete_one(self, name: str, filter: FilterLike) -> bool:
        matches = self._select(name, filter)
        if not matches:
            raise NotFoundError("record not found")
        del self._table(name)[matches[0]['id']]
        return True

    def delete_many(self, name: str, filter: FilterLike) -> int:
        matches = self._select(name, filter)
        for record in matches:
            del self._table(name)[record['id']]
        return len(matches)

    # ── read operations ──────────────────────────────────────

    def find_one(self, name: str, filter: FilterLike) -> dict:
        matches = self._select(name, filter)
        if not matches:
            raise NotFoundError("record not found")
        return copy.deepcopy(matches[0])

    def find_many(self, name: str, filter: FilterLike | None = None) -> list[dict]:
        return [copy.deepcopy(r) for r in self._select(name, filter)]

    def close(self) -> None:
        self.tables.clear()
