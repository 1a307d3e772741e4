"""Process-wide composition of stores and the auth manager."""

import logging
from dataclasses import dataclass

from adapter.mongodb.connection import connect_mongo
from adapter.mongodb.store import MongoStore
from adapter.sql.schema import ensure_users_table
from adapter.sql.store import SqlStore, connect_sql
from config import AuthConfig, Env
from domain.model.errors import ConfigurationError, PersistenceError
from services.auth_service import AuthManager

logger = logging.getLogger(__name__)


@dataclass
class CoreConfig:
    """Explicit settings; anything left None falls back to the environment."""
    mongo_url: str | None = None
    mongo_database: str | None = None
    sql_url: str | None = None
    auth: AuthConfig | None = None


class Core:
    def __init__(
        self,
        env: Env,
        mongo: MongoStore | None = None,
        sql: SqlStore | None = None,
        auth: AuthManager | None = None,
    ):
        self.env = env
        self.mongo = mongo
        self.sql = sql
        self.auth = auth

    @classmethod
    def create(cls, config: CoreConfig | None = None, env: Env | None = None) -> "Core":
        """Connect the configured stores and build the auth manager.

        Auth runs on MongoDB when available, otherwise on the SQL store.
        Auth is only built when an AuthConfig is given or JWT_SECRET_KEY is set.
        """
        config = config or CoreConfig()
        env = env or Env.load()
        core = cls(env)

        try:
            mongo_url = config.mongo_url or env.mongo_url
            if mongo_url:
                core.mongo = connect_mongo(mongo_url, config.mongo_database or env.mongo_database)

            sql_url = config.sql_url or env.postgres_url
            if sql_url:
                core.sql = connect_sql(sql_url)

            auth_config = config.auth
            if auth_config is None and env.jwt_secret:
                auth_config = env.auth_config()
            if auth_config is not None:
                core.auth = core._build_auth(auth_config)
        except Exception:
            core.close()
            raise
        return core

    def _build_auth(self, auth_config: AuthConfig) -> AuthManager:
        if self.mongo is not None:
            if not self.mongo.ensure_indexes(auth_config.store_name):
                raise PersistenceError("failed to create user indexes")
            store = self.mongo
        elif self.sql is not None:
            ensure_users_table(self.sql, auth_config.store_name)
            store = self.sql
        else:
            raise ConfigurationError("auth requires a configured store")
        logger.info("Auth initialized", extra={"store": type(store).__name__, "collection": auth_config.store_name})
        return AuthManager(store, auth_config)

    def close(self) -> None:
        try:
            if self.mongo is not None:
                self.mongo.close()
        finally:
            if self.sql is not None:
                self.sql.close()
