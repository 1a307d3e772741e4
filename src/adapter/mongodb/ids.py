"""ObjectId <-> hex string conversion at the store boundary."""

from bson import ObjectId

from domain.model.errors import InvalidIdentifierError


def to_object_id(value) -> ObjectId:
    """Parse a 24-char hex id. Raise InvalidIdentifierError if malformed."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise InvalidIdentifierError(value)
    return ObjectId(value)


def from_object_id(value) -> str:
    """Render a native _id as the opaque string id (hex for ObjectId)."""
    return str(value)
