"""
Storage Services Package

Provides the abstract record store interface and its SQLite implementation,
the table registry, and versioned schema migrations.
"""

from privyledger.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
    StoreTransaction,
)
from privyledger.services.storage.tables import (
    TABLES,
    Table,
    TableSpec,
    table_spec,
)
from privyledger.services.storage.migrations import MIGRATIONS, run_migrations
from privyledger.services.storage.sqlite_store import (
    SQLiteRecordStore,
    SQLiteTransaction,
)

__all__ = [
    # Interfaces
    "RecordStoreInterface",
    "StoreTransaction",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Tables and schema
    "MIGRATIONS",
    "TABLES",
    "Table",
    "TableSpec",
    "run_migrations",
    "table_spec",
    # SQLite implementation
    "SQLiteRecordStore",
    "SQLiteTransaction",
]
