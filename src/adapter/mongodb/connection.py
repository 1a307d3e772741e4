from datetime import timezone
from logging import getLogger

import pymongo
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError

from adapter.mongodb import (
    CALL_TIMEOUT_SECONDS,
    CONNECT_TIMEOUT_SECONDS,
    DEFAULT_DATABASE_NAME,
)
from adapter.mongodb.store import MongoStore
from domain.model.errors import StoreTimeout, StoreUnavailable

logger = getLogger(__name__)

# Driver-level logs are noisy at INFO
pymongo_logger = getLogger('pymongo')
pymongo_logger.setLevel('WARNING')


def connect_mongo(
    url: str,
    database_name: str | None = None,
    connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
    call_timeout: float = CALL_TIMEOUT_SECONDS,
) -> MongoStore:
    """Connect to MongoDB, verify with a ping and return a MongoStore.

    The returned store owns the client; call close() on shutdown.

    Raises:
        StoreTimeout: ping did not answer within connect_timeout
        StoreUnavailable: server unreachable or connection refused
    """
    database_name = database_name or DEFAULT_DATABASE_NAME
    timeout_ms = int(connect_timeout * 1000)
    client = MongoClient(
        url,
        serverSelectionTimeoutMS=timeout_ms,
        connectTimeoutMS=timeout_ms,
        maxPoolSize=10,
        minPoolSize=0,
        maxIdleTimeMS=30000,
        waitQueueTimeoutMS=timeout_ms,
        retryWrites=True,
        retryReads=True,
        tz_aware=True,
        tzinfo=timezone.utc,
    )
    try:
        with pymongo.timeout(connect_timeout):
            client.admin.command('ping')
    except ConnectionFailure as e:
        client.close()
        logger.error(f"[MONGODB] Connection failed: {str(e)[:200]}")
        raise StoreUnavailable("store unavailable") from e
    except PyMongoError as e:
        client.close()
        if e.timeout:
            logger.error("[MONGODB] Ping timed out")
            raise StoreTimeout("store timeout") from e
        logger.error(f"[MONGODB] Ping failed: {str(e)[:200]}")
        raise StoreUnavailable("store unavailable") from e

    logger.info(f"[MONGODB] Connected successfully to {database_name}")
    return MongoStore(client[database_name], client=client, timeout=call_timeout)
