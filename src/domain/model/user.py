from dataclasses import dataclass, field
from datetime import datetime, timezone

from domain.model.attributes import JSONObject


def _as_utc(value: datetime) -> datetime:
    # Stores without a timezone column hand back naive UTC values
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class User:
    """Domain model representing a user."""
    id: str
    email: str
    created_at: datetime
    custom_attributes: JSONObject = field(default_factory=dict)
    password_hash: str | None = field(default=None, repr=False)

    @classmethod
    def from_record(cls, record: dict) -> "User":
        """Build a User from a store record (id already normalized to str)."""
        return cls(
            id=str(record['id']),
            email=record['email'],
            created_at=_as_utc(record['created_at']),
            custom_attributes=record.get('custom_attributes') or {},
            password_hash=record.get('password_hash'),
        )

    def to_public(self) -> dict:
        """Response shape. Never includes password_hash."""
        return {
            'id': self.id,
            'email': self.email,
            'custom_attributes': self.custom_attributes,
            'created_at': self.created_at,
        }
