"""MongoDB adapter: document store implementation of the Store port."""

DEFAULT_DATABASE_NAME = 'authcore'

CALL_TIMEOUT_SECONDS = 5.0
CONNECT_TIMEOUT_SECONDS = 10.0
