"""MongoDB implementation of Store.

Every path that touches a record id converts between the public string
'id' and the native ObjectId '_id' through adapter.mongodb.ids.
"""

from contextlib import contextmanager
from logging import getLogger
from typing import Any, Mapping

import pymongo
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    PyMongoError,
    ServerSelectionTimeoutError,
)

from adapter.mongodb import CALL_TIMEOUT_SECONDS, CONNECT_TIMEOUT_SECONDS
from adapter.mongodb.ids import from_object_id, to_object_id
from domain.model.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    StoreTimeout,
    StoreUnavailable,
    ValidationError,
)
from domain.model.query import Filter, FilterLike, Op, Patch

logger = getLogger(__name__)

_OPERATORS = {
    Op.EQ: '$eq',
    Op.NE: '$ne',
    Op.GT: '$gt',
    Op.GTE: '$gte',
    Op.LT: '$lt',
    Op.LTE: '$lte',
    Op.IN: '$in',
}


def _native_id(value: Any) -> Any:
    """Convert an id predicate value (plain, list or operator doc) to ObjectIds."""
    if isinstance(value, Mapping):
        return {op: _native_id(v) for op, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_object_id(v) for v in value]
    return to_object_id(value)


def compile_filter(filter: FilterLike | None) -> dict:
    """Compile a Filter, or pass through a native query document.

    In native documents only the top-level 'id' key is rewritten to '_id'.
    """
    if filter is None:
        return {}
    if not isinstance(filter, Filter):
        query = dict(filter)
        if '_id' in query:
            query['_id'] = _native_id(query['_id'])
        if 'id' in query:
            query['_id'] = _native_id(query.pop('id'))
        return query

    query = {}
    for cond in filter.conditions:
        field, value = cond.field, cond.value
        if field == 'id':
            field = '_id'
            value = _native_id(value)
        if cond.op is Op.IN:
            value = list(value)
        query.setdefault(field, {})[_OPERATORS[cond.op]] = value
    return query


def compile_patch(patch: Patch) -> dict:
    """Turn a field->value patch into $set, or pass a native update through."""
    patch = dict(patch)
    if not patch:
        raise ValidationError("update patch is empty")
    if all(key.startswith('$') for key in patch):
        for fields in patch.values():
            if isinstance(fields, Mapping) and ('_id' in fields or 'id' in fields):
                raise ValidationError("id cannot be updated")
        return patch
    if any(key.startswith('$') for key in patch):
        raise ValidationError("cannot mix update operators and plain fields")
    if 'id' in patch or '_id' in patch:
        raise ValidationError("id cannot be updated")
    return {'$set': patch}


def _to_record(doc: dict) -> dict:
    """Convert MongoDB document to a store record."""
    record = {k: v for k, v in doc.items() if k != '_id'}
    record['id'] = from_object_id(doc['_id'])
    return record


class MongoStore:
    def __init__(
        self,
        db: Database,
        client: pymongo.MongoClient | None = None,
        timeout: float = CALL_TIMEOUT_SECONDS,
    ):
        self.db = db
        self.client = client
        self.timeout = timeout

    @contextmanager
    def _call(self, action: str, name: str, timeout: float | None = None):
        """Bound a driver call by a deadline and translate driver errors."""
        try:
            with pymongo.timeout(timeout or self.timeout):
                yield
        except DuplicateKeyError as e:
            logger.warning("Duplicate key", extra={"collection": name, "action": action})
            raise ConflictError("duplicate key") from e
        except ServerSelectionTimeoutError as e:
            logger.error("MongoDB unreachable", extra={"collection": name, "action": action, "error": str(e)[:200]})
            raise StoreUnavailable("store unavailable") from e
        except PyMongoError as e:
            if e.timeout:
                logger.error("MongoDB call timed out", extra={"collection": name, "action": action})
                raise StoreTimeout("store timeout") from e
            if isinstance(e, ConnectionFailure):
                logger.error("MongoDB connection failed", extra={"collection": name, "action": action, "error": str(e)[:200]})
                raise StoreUnavailable("store unavailable") from e
            logger.error("MongoDB operation failed", extra={"collection": name, "action": action, "error": str(e)[:200]})
            raise PersistenceError(f"{action} failed") from e

    # ── indexes ──────────────────────────────────────────────

    def ensure_indexes(self, name: str) -> bool:
        """Create the unique email index and created_at index for a users collection.

        Returns False when an existing index clashes and cannot be replaced.
        Driver failures raise the usual PersistenceError subclasses.
        """
        from adapter.mongodb.indexes import ensure_user_indexes

        with self._call('ensure_indexes', name, CONNECT_TIMEOUT_SECONDS):
            return ensure_user_indexes(self.db[name], name)

    # ── write operations ─────────────────────────────────────

    def create_one(self, name: str, record: dict) -> str:
        if 'id' in record or '_id' in record:
            raise ValidationError("id is assigned by the store")
        doc = dict(record)
        with self._call('insert', name):
            result = self.db[name].insert_one(doc)
        record_id = from_object_id(result.inserted_id)
        logger.debug("Inserted record", extra={"collection": name, "recordId": record_id})
        return record_id

    def update_one(self, name: str, filter: FilterLike, patch: Patch) -> bool:
        query, update = compile_filter(filter), compile_patch(patch)
        with self._call('update', name):
            result = self.db[name].update_one(query, update)
        if result.matched_count == 0:
            raise NotFoundError("record not found")
        return True

    def update_many(self, name: str, filter: FilterLike, patch: Patch) -> int:
        query, update = compile_filter(filter), compile_patch(patch)
        with self._call('update', name):
            result = self.db[name].update_many(query, update)
        return result.matched_count

    def delete_one(self, name: str, filter: FilterLike) -> bool:
        query = compile_filter(filter)
        with self._call('delete', name):
            result = self.db[name].delete_one(query)
        if result.deleted_count == 0:
            raise NotFoundError("record not found")
        return True

    def delete_many(self, name: str, filter: FilterLike) -> int:
        query = compile_filter(filter)
        with self._call('delete', name):
            result = self.db[name].delete_many(query)
        return result.deleted_count

    # ── read operations ──────────────────────────────────────

    def find_one(self, name: str, filter: FilterLike) -> dict:
        query = compile_filter(filter)
        with self._call('find', name):
            doc = self.db[name].find_one(query)
        if doc is None:
            raise NotFoundError("record not found")
        return _to_record(doc)

    def find_many(self, name: str, filter: FilterLike | None = None) -> list[dict]:
        query = compile_filter(filter)
        with self._call('find', name):
            docs = list(self.db[name].find(query))
        return [_to_record(doc) for doc in docs]

    def close(self) -> None:
        if self.client is None:
            return
        with self._call('disconnect', self.db.name, CONNECT_TIMEOUT_SECONDS):
            self.client.close()
        logger.info("[MONGODB] Disconnected")
