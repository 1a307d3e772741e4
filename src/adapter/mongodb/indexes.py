"""Index definitions for user collections and conflict-tolerant creation."""

from dataclasses import dataclass, field
from logging import getLogger

from pymongo.errors import OperationFailure, PyMongoError

logger = getLogger(__name__)

# IndexOptionsConflict, IndexKeySpecsConflict
_CONFLICT_CODES = {85, 86}


@dataclass(frozen=True)
class IndexSpec:
    keys: list
    name: str
    options: dict = field(default_factory=dict)


def user_indexes(collection_name: str) -> list[IndexSpec]:
    """Unique email plus newest-first created_at for a users collection."""
    return [
        IndexSpec([('email', 1)], f'idx_{collection_name}_email', {'unique': True}),
        IndexSpec([('created_at', -1)], f'idx_{collection_name}_created_at'),
    ]


def _is_conflict(error: PyMongoError) -> bool:
    if isinstance(error, OperationFailure) and error.code in _CONFLICT_CODES:
        return True
    return "already exists" in str(error)


def create_index_safe(collection, keys: list, name: str, **kwargs) -> bool:
    """Create an index, replacing an existing one that clashes with it.

    A clash is an index with the same name but other keys or options (a
    unique flag added later), or the same keys under another name.
    """
    try:
        collection.create_index(keys, name=name, **kwargs)
        return True
    except PyMongoError as e:
        if not _is_conflict(e):
            raise
        return _replace_conflicting(collection, IndexSpec(keys, name, kwargs))


def _replace_conflicting(collection, spec: IndexSpec) -> bool:
    wanted_keys = dict(spec.keys)
    wanted_unique = bool(spec.options.get('unique'))

    for existing_name, info in collection.index_information().items():
        if existing_name == '_id_':
            continue
        existing_keys = dict(info.get('key', []))
        renamed = existing_keys == wanted_keys and existing_name != spec.name
        changed = existing_name == spec.name and (
            existing_keys != wanted_keys or bool(info.get('unique')) != wanted_unique
        )
        if renamed or changed:
            logger.warning("Dropping conflicting index", extra={"index": existing_name, "replacement": spec.name})
            collection.drop_index(existing_name)
            collection.create_index(spec.keys, name=spec.name, **spec.options)
            return True

    logger.error("Could not resolve index conflict", extra={"index": spec.name})
    return False


def ensure_user_indexes(collection, collection_name: str) -> bool:
    """Install every user index on the collection; False if any could not be resolved."""
    results = [
        create_index_safe(collection, spec.keys, spec.name, **spec.options)
        for spec in user_indexes(collection_name)
    ]
    return all(results)
