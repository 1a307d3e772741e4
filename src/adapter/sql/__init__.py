"""Relational adapter: SQLAlchemy Core implementation of the Store port."""

CALL_TIMEOUT_SECONDS = 5.0
CONNECT_TIMEOUT_SECONDS = 10.0
