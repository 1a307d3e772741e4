"""SQLAlchemy implementation of Store.

Two levels of access:
- query()/exec(): raw statement text with positional parameters in the
  driver's paramstyle, passed through unchanged.
- the Store operations: parameterized SQL generated by SQLAlchemy Core
  from a Filter and a field->value patch.

Record ids are exposed as strings; integer primary keys are parsed back
on the way in.
"""

import re
from contextlib import contextmanager
from logging import getLogger
from typing import Any

from sqlalchemy import MetaData, Table, and_, create_engine, delete, insert, select, true, update
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    NoSuchTableError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from adapter.sql import CALL_TIMEOUT_SECONDS, CONNECT_TIMEOUT_SECONDS
from domain.model.errors import (
    ConflictError,
    InvalidIdentifierError,
    NotFoundError,
    PersistenceError,
    StoreTimeout,
    StoreUnavailable,
    ValidationError,
)
from domain.model.query import Condition, FilterLike, Op, Patch, as_filter

logger = getLogger(__name__)

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
_TIMEOUT_MARKERS = ('timeout', 'timed out', 'canceling statement', 'database is locked')


def _is_timeout(error: DBAPIError) -> bool:
    message = str(error.orig if error.orig is not None else error).lower()
    return any(marker in message for marker in _TIMEOUT_MARKERS)


class SqlStore:
    def __init__(
        self,
        engine: Engine,
        metadata: MetaData | None = None,
        timeout: float = CALL_TIMEOUT_SECONDS,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        id_column: str = 'id',
    ):
        self.engine = engine
        self.metadata = metadata if metadata is not None else MetaData()
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.id_column = id_column

    # ── plumbing ─────────────────────────────────────────────

    @contextmanager
    def _call(self, action: str, name: str, timeout: float | None = None):
        """Open a transaction bounded by a deadline and translate driver errors."""
        try:
            with self.engine.begin() as conn:
                self._apply_deadline(conn, timeout or self.timeout)
                yield conn
        except NoSuchTableError as e:
            raise ValidationError(f"unknown table: {name}") from e
        except IntegrityError as e:
            logger.warning("Integrity constraint violated", extra={"table": name, "action": action})
            raise ConflictError("duplicate key") from e
        except PoolTimeoutError as e:
            logger.error("Connection pool exhausted", extra={"table": name, "action": action})
            raise StoreTimeout("store timeout") from e
        except OperationalError as e:
            if _is_timeout(e):
                logger.error("SQL call timed out", extra={"table": name, "action": action})
                raise StoreTimeout("store timeout") from e
            logger.error("SQL connection failed", extra={"table": name, "action": action, "error": str(e.orig)[:200]})
            raise StoreUnavailable("store unavailable") from e
        except DBAPIError as e:
            if e.connection_invalidated:
                logger.error("SQL connection lost", extra={"table": name, "action": action})
                raise StoreUnavailable("store unavailable") from e
            logger.error("SQL driver error", extra={"table": name, "action": action, "error": str(e.orig)[:200]})
            raise PersistenceError(f"{action} failed") from e
        except SQLAlchemyError as e:
            logger.error("SQL operation failed", extra={"table": name, "action": action, "error": str(e)[:200]})
            raise PersistenceError(f"{action} failed") from e

    def _apply_deadline(self, conn: Connection, timeout: float) -> None:
        if conn.dialect.name == 'postgresql':
            conn.exec_driver_sql(f"SET LOCAL statement_timeout = {int(timeout * 1000)}")

    def _table(self, name: str) -> Table:
        if not _IDENTIFIER.match(name):
            raise ValidationError(f"invalid table name: {name}")
        if name in self.metadata.tables:
            return self.metadata.tables[name]
        with self._call('reflect', name) as conn:
            return Table(name, self.metadata, autoload_with=conn)

    def _column(self, table: Table, field: str):
        if field not in table.c:
            raise ValidationError(f"unknown column: {field}")
        return table.c[field]

    def _native_id(self, table: Table, value: Any) -> Any:
        """Parse a string id into the id column's Python type."""
        if table.c[self.id_column].type.python_type is not int:
            return str(value)
        if isinstance(value, bool):
            raise InvalidIdentifierError(value)
        try:
            return int(value)
        except (TypeError, ValueError):
            raise InvalidIdentifierError(value) from None

    def _clause(self, table: Table, cond: Condition):
        column = self._column(table, cond.field)
        value = cond.value
        if cond.field == self.id_column:
            if cond.op is Op.IN:
                value = [self._native_id(table, v) for v in value]
            else:
                value = self._native_id(table, value)
        if cond.op is Op.EQ:
            return column.is_(None) if value is None else column == value
        if cond.op is Op.NE:
            return column.is_not(None) if value is None else column != value
        if cond.op is Op.GT:
            return column > value
        if cond.op is Op.GTE:
            return column >= value
        if cond.op is Op.LT:
            return column < value
        if cond.op is Op.LTE:
            return column <= value
        return column.in_(list(value))

    def _where(self, table: Table, filter: FilterLike | None):
        clauses = [self._clause(table, c) for c in as_filter(filter).conditions]
        return and_(true(), *clauses)

    def _values(self, table: Table, patch: Patch) -> dict:
        values = dict(patch)
        if not values:
            raise ValidationError("update patch is empty")
        if self.id_column in values:
            raise ValidationError("id cannot be updated")
        for field in values:
            self._column(table, field)
        return values

    def _to_record(self, row) -> dict:
        record = dict(row._mapping)
        if record.get(self.id_column) is not None:
            record['id'] = str(record.pop(self.id_column))
        return record

    def _first_id(self, table: Table, filter: FilterLike):
        id_col = table.c[self.id_column]
        return select(id_col).where(self._where(table, filter)).limit(1)

    # ── raw statements ───────────────────────────────────────

    def query(self, sql: str, *args) -> list[dict]:
        """Run a statement that returns rows (SELECT, INSERT ... RETURNING)."""
        with self._call('query', 'raw') as conn:
            result = conn.exec_driver_sql(sql, tuple(args))
            return [dict(row) for row in result.mappings().all()]

    def exec(self, sql: str, *args) -> int:
        """Run a statement that returns no rows and report affected rows."""
        with self._call('exec', 'raw') as conn:
            result = conn.exec_driver_sql(sql, tuple(args))
            return result.rowcount

    def create_table(self, table: Table) -> None:
        with self._call('create_table', table.name, self.connect_timeout) as conn:
            self.metadata.create_all(conn, tables=[table])

    # ── write operations ─────────────────────────────────────

    def create_one(self, name: str, record: dict) -> str:
        table = self._table(name)
        if 'id' in record or self.id_column in record:
            raise ValidationError("id is assigned by the store")
        values = {}
        for field, value in record.items():
            self._column(table, field)
            values[field] = value
        stmt = insert(table).values(**values).returning(table.c[self.id_column])
        with self._call('insert', name) as conn:
            new_id = conn.execute(stmt).scalar_one()
        logger.debug("Inserted row", extra={"table": name, "recordId": new_id})
        return str(new_id)

    def update_one(self, name: str, filter: FilterLike, patch: Patch) -> bool:
        table = self._table(name)
        values = self._values(table, patch)
        stmt = (
            update(table)
            .where(table.c[self.id_column].in_(self._first_id(table, filter)))
            .values(**values)
        )
        with self._call('update', name) as conn:
            matched = conn.execute(stmt).rowcount
        if matched == 0:
            raise NotFoundError("record not found")
        return True

    def update_many(self, name: str, filter: FilterLike, patch: Patch) -> int:
        table = self._table(name)
        values = self._values(table, patch)
        stmt = update(table).where(self._where(table, filter)).values(**values)
        with self._call('update', name) as conn:
            return conn.execute(stmt).rowcount

    def delete_one(self, name: str, filter: FilterLike) -> bool:
        table = self._table(name)
        stmt = delete(table).where(table.c[self.id_column].in_(self._first_id(table, filter)))
        with self._call('delete', name) as conn:
            deleted = conn.execute(stmt).rowcount
        if deleted == 0:
            raise NotFoundError("record not found")
        return True

    def delete_many(self, name: str, filter: FilterLike) -> int:
        table = self._table(name)
        stmt = delete(table).where(self._where(table, filter))
        with self._call('delete', name) as conn:
            return conn.execute(stmt).rowcount

    # ── read operations ──────────────────────────────────────

    def find_one(self, name: str, filter: FilterLike) -> dict:
        table = self._table(name)
        stmt = select(table).where(self._where(table, filter)).limit(1)
        with self._call('find', name) as conn:
            row = conn.execute(stmt).first()
        if row is None:
            raise NotFoundError("record not found")
        return self._to_record(row)

    def find_many(self, name: str, filter: FilterLike | None = None) -> list[dict]:
        table = self._table(name)
        stmt = select(table).where(self._where(table, filter))
        with self._call('find', name) as conn:
            rows = conn.execute(stmt).all()
        return [self._to_record(row) for row in rows]

    def ping(self) -> None:
        with self._call('ping', 'connection', self.connect_timeout) as conn:
            conn.exec_driver_sql("SELECT 1")

    def close(self) -> None:
        self.engine.dispose()
        logger.info("[SQL] Disconnected")


def connect_sql(
    url: str,
    connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
    call_timeout: float = CALL_TIMEOUT_SECONDS,
    **engine_kwargs,
) -> SqlStore:
    """Create an engine for url, verify it with a ping and return a SqlStore.

    Raises:
        StoreTimeout: ping did not answer within connect_timeout
        StoreUnavailable: database unreachable
    """
    backend = make_url(url).get_backend_name()
    connect_args = dict(engine_kwargs.pop('connect_args', {}))
    if backend == 'postgresql':
        connect_args.setdefault('connect_timeout', int(connect_timeout))
    elif backend == 'sqlite':
        connect_args.setdefault('timeout', call_timeout)
        connect_args.setdefault('check_same_thread', False)

    if backend != 'sqlite':
        engine_kwargs.setdefault('pool_timeout', call_timeout)
    engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args, **engine_kwargs)

    store = SqlStore(engine, timeout=call_timeout, connect_timeout=connect_timeout)
    try:
        store.ping()
    except Exception:
        engine.dispose()
        raise
    logger.info(f"[SQL] Connected successfully to {backend}")
    return store
