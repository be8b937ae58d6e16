"""
SQLite Record Store Implementation

DESIGN DECISION: SQLite is used as the local engine because:
1. It is embedded - no server, the data never leaves the machine
2. Real transactions: multi-table imports either fully apply or not at all
3. Expression indexes over JSON documents give us indexed queries
   without a column per field

Rows are JSON documents in the published wire format, so a row, an export
entry and an import entry are the same bytes.

CONCURRENCY: One connection, serialised by an asyncio.Lock. Every read and
every transaction holds the lock, so no task ever observes a transaction
that has not committed. Inside a transaction, use the handle it yields;
calling the store directly from within its own transaction is an error
(it would otherwise deadlock).
"""

import asyncio
import json
import sqlite3
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncIterator, Callable, Iterable, Optional

import structlog
from pydantic import BaseModel
from pydantic_core import to_jsonable_python
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from privyledger.audit import AuditLogger
from privyledger.config import StorageSettings, get_settings
from privyledger.models.records import Record, utc_now
from privyledger.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordInput,
    RecordStoreInterface,
    StorageError,
    StoreTransaction,
    TableRef,
)
from privyledger.services.storage.migrations import run_migrations
from privyledger.services.storage.tables import TableSpec, table_spec

logger = structlog.get_logger(__name__)

# Fields the store owns on update(); callers cannot set them directly
_STORE_MANAGED = frozenset({"updated_at"})


@contextmanager
def _engine_errors(operation: str):
    """Translate sqlite3 errors into StorageError."""
    try:
        yield
    except sqlite3.Error as e:
        raise StorageError(f"Failed to {operation}: {e}") from e


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
    retry=retry_if_exception_type(sqlite3.OperationalError),
    reraise=True,
)
def _connect(db_path: str, busy_timeout_ms: int) -> sqlite3.Connection:
    """Open an autocommit connection; explicit BEGIN/COMMIT mark transactions."""
    conn = sqlite3.connect(db_path, isolation_level=None)
    try:
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
        if db_path != ":memory:":
            conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA foreign_keys = ON")
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def _touch(previous: Optional[Any]) -> Any:
    """A new updated_at that never moves backwards."""
    now = utc_now()
    if previous is not None and previous > now:
        return previous
    return now


def _coerce(spec: TableSpec, record: RecordInput) -> Record:
    if isinstance(record, spec.model):
        return record
    if isinstance(record, dict):
        return spec.model.model_validate(record)
    raise TypeError(
        f"{spec.name} stores {spec.model.__name__}, got {type(record).__name__}"
    )


def _serialize(record: BaseModel) -> str:
    return record.model_dump_json(by_alias=True, exclude_none=True)


def _sql_value(value: Any) -> Any:
    """Bring a Python value to what json_extract() returns for it."""
    value = to_jsonable_python(value)
    if isinstance(value, bool):
        return int(value)
    return value


def _live_clause(include_deleted: bool, spec: TableSpec) -> str:
    if include_deleted:
        return ""
    return f" AND {spec.index_expression('deleted_at')} IS NULL"


# =============================================================================
# Row-level operations on a connection (no locking, no transaction control)
# =============================================================================

def _fetch_one(conn: sqlite3.Connection, spec: TableSpec, record_id: str) -> Optional[Record]:
    with _engine_errors(f"read {spec.name}"):
        row = conn.execute(
            f"SELECT data FROM {spec.name} WHERE id = ?",
            (record_id,),
        ).fetchone()
    return spec.model.model_validate_json(row[0]) if row else None


def _fetch_where(
    conn: sqlite3.Connection,
    spec: TableSpec,
    where: str = "1 = 1",
    params: tuple = (),
    order_by: str = "rowid",
) -> list[Record]:
    with _engine_errors(f"query {spec.name}"):
        rows = conn.execute(
            f"SELECT data FROM {spec.name} WHERE {where} ORDER BY {order_by}",
            params,
        ).fetchall()
    return [spec.model.model_validate_json(row[0]) for row in rows]


def _insert(conn: sqlite3.Connection, spec: TableSpec, record: Record) -> None:
    try:
        conn.execute(
            f"INSERT INTO {spec.name} (id, data) VALUES (?, ?)",
            (record.id, _serialize(record)),
        )
    except sqlite3.IntegrityError as e:
        raise DuplicateError(f"{spec.name} already has a record with id {record.id}") from e
    except sqlite3.Error as e:
        raise StorageError(f"Failed to insert into {spec.name}: {e}") from e


def _upsert(conn: sqlite3.Connection, spec: TableSpec, record: Record) -> None:
    with _engine_errors(f"write {spec.name}"):
        conn.execute(
            f"INSERT OR REPLACE INTO {spec.name} (id, data) VALUES (?, ?)",
            (record.id, _serialize(record)),
        )


def _merge(existing: Record, spec: TableSpec, changes: dict[str, Any]) -> Record:
    unknown = set(changes) - set(spec.model.model_fields)
    if unknown:
        raise ValueError(f"Unknown {spec.model.__name__} fields: {sorted(unknown)}")
    if "id" in changes and changes["id"] != existing.id:
        raise ValueError("A record's id cannot be changed")

    merged = existing.model_dump()
    merged.update({k: v for k, v in changes.items() if k not in _STORE_MANAGED})
    merged["updated_at"] = _touch(existing.updated_at)
    return spec.model.model_validate(merged)


class SQLiteTransaction(StoreTransaction):
    """
    Transaction handle bound to one connection and a fixed set of tables.

    Audit events are buffered and only emitted once the transaction commits,
    so the log never reports a write that was rolled back.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        scope: frozenset,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._conn = conn
        self._scope = scope
        self._audit_logger = audit_logger
        self._pending: list[Callable[[AuditLogger], None]] = []
        self._active = True

    def _spec(self, table: TableRef) -> TableSpec:
        self._check_active()
        spec = table_spec(table)
        if spec.table not in self._scope:
            raise StorageError(
                f"Table {spec.name} is not part of this transaction "
                f"({', '.join(sorted(t.value for t in self._scope))})"
            )
        return spec

    def _check_active(self) -> None:
        if not self._active:
            raise StorageError("Transaction is no longer active")

    def _audit(self, emit: Callable[[AuditLogger], None]) -> None:
        self._pending.append(emit)

    def _finish(self, committed: bool) -> None:
        self._active = False
        if committed and self._audit_logger:
            for emit in self._pending:
                emit(self._audit_logger)
        self._pending.clear()

    async def get(self, table: TableRef, record_id: str) -> Optional[Record]:
        return _fetch_one(self._conn, self._spec(table), record_id)

    async def list_all(self, table: TableRef) -> list[Record]:
        return _fetch_where(self._conn, self._spec(table))

    async def list_active(self, table: TableRef) -> list[Record]:
        spec = self._spec(table)
        return _fetch_where(self._conn, spec, "1 = 1" + _live_clause(False, spec))

    async def add(self, table: TableRef, record: RecordInput) -> Record:
        spec = self._spec(table)
        record = _coerce(spec, record)
        record = record.model_copy(update={"updated_at": _touch(record.updated_at)})
        _insert(self._conn, spec, record)
        self._audit(lambda audit: audit.log_record_added(spec.name, record.id))
        return record

    async def update(self, table: TableRef, record_id: str, changes: dict[str, Any]) -> Record:
        spec = self._spec(table)
        existing = _fetch_one(self._conn, spec, record_id)
        if existing is None:
            raise NotFoundError(f"{spec.name} record not found: {record_id}")
        updated = _merge(existing, spec, changes)
        _upsert(self._conn, spec, updated)
        fields = list(changes)
        self._audit(lambda audit: audit.log_record_updated(spec.name, record_id, fields))
        return updated

    async def replace(self, table: TableRef, record: Record) -> Record:
        """Rewrite a whole existing record (e.g. after editing its children)."""
        spec = self._spec(table)
        record = _coerce(spec, record)
        existing = _fetch_one(self._conn, spec, record.id)
        if existing is None:
            raise NotFoundError(f"{spec.name} record not found: {record.id}")
        record = record.model_copy(update={"updated_at": _touch(existing.updated_at)})
        _upsert(self._conn, spec, record)
        self._audit(lambda audit: audit.log_record_updated(spec.name, record.id, ["*"]))
        return record

    async def remove(self, table: TableRef, record_id: str) -> Record:
        spec = self._spec(table)
        existing = _fetch_one(self._conn, spec, record_id)
        if existing is None:
            raise NotFoundError(f"{spec.name} record not found: {record_id}")
        if existing.is_deleted:
            return existing
        now = _touch(existing.updated_at)
        removed = existing.model_copy(update={"deleted_at": now, "updated_at": now})
        _upsert(self._conn, spec, removed)
        self._audit(lambda audit: audit.log_record_deleted(spec.name, record_id))
        return removed

    async def bulk_upsert(self, table: TableRef, records: Iterable[RecordInput]) -> int:
        spec = self._spec(table)
        written = 0
        for record in records:
            _upsert(self._conn, spec, _coerce(spec, record))
            written += 1
        return written

    async def clear(self, table: TableRef) -> None:
        spec = self._spec(table)
        with _engine_errors(f"clear {spec.name}"):
            self._conn.execute(f"DELETE FROM {spec.name}")

    async def get_setting(self, key: str, default: Any = None) -> Any:
        self._check_active()
        return _read_setting(self._conn, key, default)

    async def set_setting(self, key: str, value: Any) -> None:
        self._check_active()
        encoded = json.dumps(to_jsonable_python(value))
        with _engine_errors("write setting"):
            self._conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, encoded),
            )

    async def delete_setting(self, key: str) -> None:
        self._check_active()
        with _engine_errors("delete setting"):
            self._conn.execute("DELETE FROM settings WHERE key = ?", (key,))

    async def clear_settings(self) -> None:
        self._check_active()
        with _engine_errors("clear settings"):
            self._conn.execute("DELETE FROM settings")


def _rollback(conn: sqlite3.Connection) -> None:
    try:
        conn.execute("ROLLBACK")
    except sqlite3.Error as e:
        # The original failure is already propagating; record this one
        logger.error("rollback_failed", error=str(e))


def _read_setting(conn: sqlite3.Connection, key: str, default: Any) -> Any:
    with _engine_errors("read setting"):
        row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    return json.loads(row[0]) if row else default


class SQLiteRecordStore(RecordStoreInterface):
    """
    SQLite implementation of the record store.

    Usage:
        async with SQLiteRecordStore("ledger.db") as store:
            await store.add(Table.ACCOUNTS, account)
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[StorageSettings] = None,
    ):
        self._settings = settings or get_settings().storage
        self._db_path = db_path or self._settings.db_path
        self._audit_logger = audit_logger
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()
        self._owner: Optional[asyncio.Task] = None

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        try:
            connect = _connect.retry_with(
                stop=stop_after_attempt(self._settings.connect_retries)
            )
            conn = connect(self._db_path, self._settings.busy_timeout_ms)
        except sqlite3.Error as e:
            raise ConnectionError(f"Failed to open database {self._db_path}: {e}") from e

        try:
            applied = run_migrations(conn)
        except StorageError as e:
            conn.close()
            if self._audit_logger:
                self._audit_logger.log_storage_error("migrate", str(e))
            raise

        self._conn = conn
        if self._audit_logger:
            for version, name in applied:
                self._audit_logger.log_migration_applied(version, name)
        logger.info("record_store_opened", db_path=self._db_path, migrations_applied=len(applied))

    async def close(self) -> None:
        if self._conn is None:
            return
        async with self._lock:
            self._conn.close()
            self._conn = None
        logger.info("record_store_closed", db_path=self._db_path)

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Record store is not open")
        return self._conn

    def _check_reentry(self) -> None:
        current = asyncio.current_task()
        if self._owner is not None and self._owner is current:
            raise StorageError(
                "Store called directly inside its own transaction; "
                "use the transaction handle instead"
            )

    @asynccontextmanager
    async def _reading(self) -> AsyncIterator[sqlite3.Connection]:
        self._check_reentry()
        async with self._lock:
            yield self._require_conn()

    @asynccontextmanager
    async def transaction(self, tables: Iterable[TableRef]) -> AsyncIterator[SQLiteTransaction]:
        scope = frozenset(table_spec(t).table for t in tables)

        self._check_reentry()
        async with self._lock:
            conn = self._require_conn()
            with _engine_errors("begin transaction"):
                conn.execute("BEGIN IMMEDIATE")
            self._owner = asyncio.current_task()
            tx = SQLiteTransaction(conn, scope, self._audit_logger)
            committed = False
            try:
                yield tx
                with _engine_errors("commit transaction"):
                    conn.execute("COMMIT")
                committed = True
            finally:
                if not committed and conn.in_transaction:
                    _rollback(conn)
                    logger.warning(
                        "transaction_rolled_back",
                        tables=sorted(t.value for t in scope),
                    )
                self._owner = None
                tx._finish(committed)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, table: TableRef, record_id: str) -> Optional[Record]:
        spec = table_spec(table)
        async with self._reading() as conn:
            return _fetch_one(conn, spec, record_id)

    async def filter(
        self,
        table: TableRef,
        predicate: Callable[[Record], bool],
    ) -> list[Record]:
        records = await self.list_all(table)
        return [record for record in records if predicate(record)]

    async def list_all(self, table: TableRef) -> list[Record]:
        spec = table_spec(table)
        async with self._reading() as conn:
            return _fetch_where(conn, spec)

    async def list_active(self, table: TableRef) -> list[Record]:
        spec = table_spec(table)
        async with self._reading() as conn:
            return _fetch_where(conn, spec, "1 = 1" + _live_clause(False, spec))

    async def find_by(
        self,
        table: TableRef,
        field: str,
        value: Any,
        include_deleted: bool = False,
    ) -> list[Record]:
        spec = table_spec(table)
        spec.require_index(field)
        expression = spec.index_expression(field)
        if value is None:
            where, params = f"{expression} IS NULL", ()
        else:
            where, params = f"{expression} = ?", (_sql_value(value),)
        where += _live_clause(include_deleted, spec)
        async with self._reading() as conn:
            return _fetch_where(conn, spec, where, params)

    async def find_between(
        self,
        table: TableRef,
        field: str,
        start: Any,
        end: Any,
        include_deleted: bool = False,
    ) -> list[Record]:
        spec = table_spec(table)
        spec.require_index(field)
        expression = spec.index_expression(field)
        where = f"{expression} BETWEEN ? AND ?" + _live_clause(include_deleted, spec)
        params = (_sql_value(start), _sql_value(end))
        async with self._reading() as conn:
            return _fetch_where(conn, spec, where, params, order_by=f"{expression}, id")

    async def count(self, table: TableRef, include_deleted: bool = True) -> int:
        spec = table_spec(table)
        where = "1 = 1" + _live_clause(include_deleted, spec)
        async with self._reading() as conn:
            with _engine_errors(f"count {spec.name}"):
                row = conn.execute(f"SELECT COUNT(*) FROM {spec.name} WHERE {where}").fetchone()
        return row[0]

    # -------------------------------------------------------------------------
    # Writes - each runs in its own single-table transaction
    # -------------------------------------------------------------------------

    async def add(self, table: TableRef, record: RecordInput) -> Record:
        async with self.transaction([table]) as tx:
            return await tx.add(table, record)

    async def update(
        self,
        table: TableRef,
        record_id: str,
        changes: dict[str, Any],
    ) -> Record:
        async with self.transaction([table]) as tx:
            return await tx.update(table, record_id, changes)

    async def remove(self, table: TableRef, record_id: str) -> Record:
        async with self.transaction([table]) as tx:
            return await tx.remove(table, record_id)

    async def bulk_upsert(self, table: TableRef, records: Iterable[RecordInput]) -> int:
        async with self.transaction([table]) as tx:
            return await tx.bulk_upsert(table, records)

    async def clear(self, table: TableRef) -> None:
        async with self.transaction([table]) as tx:
            await tx.clear(table)

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def get_setting(self, key: str, default: Any = None) -> Any:
        async with self._reading() as conn:
            return _read_setting(conn, key, default)

    async def set_setting(self, key: str, value: Any) -> None:
        async with self._settings_transaction() as tx:
            await tx.set_setting(key, value)

    async def delete_setting(self, key: str) -> None:
        async with self._settings_transaction() as tx:
            await tx.delete_setting(key)

    async def clear_settings(self) -> None:
        async with self._settings_transaction() as tx:
            await tx.clear_settings()

    def _settings_transaction(self):
        return self.transaction([])
