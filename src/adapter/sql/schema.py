"""Relational schema for the users table.

The UNIQUE constraint on email is what makes the one-user-per-email rule
hold when two signups race past the existence check.
"""

from logging import getLogger

from sqlalchemy import JSON, Column, DateTime, Index, Integer, MetaData, String, Table

logger = getLogger(__name__)


def users_table(metadata: MetaData, name: str = 'users') -> Table:
    """Declare (or return the already declared) users table."""
    if name in metadata.tables:
        return metadata.tables[name]
    return Table(
        name,
        metadata,
        Column('id', Integer, primary_key=True, autoincrement=True),
        Column('email', String(320), nullable=False, unique=True),
        Column('password_hash', String(255), nullable=False),
        Column('custom_attributes', JSON, nullable=False),
        Column('created_at', DateTime(timezone=True), nullable=False),
        Index(f'idx_{name}_created_at', 'created_at'),
    )


def ensure_users_table(store, name: str = 'users') -> bool:
    """Create the users table on the store's engine if it does not exist."""
    store.create_table(users_table(store.metadata, name))
    logger.info("Users table ready", extra={"table": name})
    return True
