"""
Abstract Record Store Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the backup codec and ledger services decoupled from SQLite
2. Swap the engine later without changing business logic
3. Substitute failing stores in tests to prove rollback behaviour

The store is an explicit handle: build it once at startup, open() it,
pass it to the services that need it, close() it at shutdown. There is no
module-level store.

Atomicity: transaction()/with_transaction() are the ONLY cross-table
atomicity primitive. Every other write is atomic for its own rows.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import (
    Any,
    AsyncContextManager,
    Awaitable,
    Callable,
    Iterable,
    Optional,
    TypeVar,
    Union,
)

from privyledger.models.records import Record
from privyledger.services.storage.tables import Table

T = TypeVar("T")

TableRef = Union[Table, str]
RecordInput = Union[Record, dict]


class StoreTransaction(ABC):
    """
    Handle passed to the body of a transaction.

    Only the tables listed when the transaction was opened may be touched.
    Settings are always reachable. The handle is dead once the transaction
    commits or rolls back.
    """

    @abstractmethod
    async def get(self, table: TableRef, record_id: str) -> Optional[Record]:
        pass

    @abstractmethod
    async def list_all(self, table: TableRef) -> list[Record]:
        pass

    @abstractmethod
    async def list_active(self, table: TableRef) -> list[Record]:
        pass

    @abstractmethod
    async def add(self, table: TableRef, record: RecordInput) -> Record:
        pass

    @abstractmethod
    async def update(self, table: TableRef, record_id: str, changes: dict[str, Any]) -> Record:
        pass

    @abstractmethod
    async def replace(self, table: TableRef, record: Record) -> Record:
        pass

    @abstractmethod
    async def remove(self, table: TableRef, record_id: str) -> Record:
        pass

    @abstractmethod
    async def bulk_upsert(self, table: TableRef, records: Iterable[RecordInput]) -> int:
        pass

    @abstractmethod
    async def clear(self, table: TableRef) -> None:
        pass

    @abstractmethod
    async def get_setting(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    async def set_setting(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    async def delete_setting(self, key: str) -> None:
        pass

    @abstractmethod
    async def clear_settings(self) -> None:
        pass


class RecordStoreInterface(ABC):
    """
    Abstract interface for the local record store.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def open(self) -> None:
        """
        Connect to the engine and run pending schema migrations.

        Raises:
            ConnectionError: If the engine cannot be opened
            StorageError: If a migration fails
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the engine connection. Safe to call twice."""
        pass

    async def __aenter__(self) -> "RecordStoreInterface":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get(self, table: TableRef, record_id: str) -> Optional[Record]:
        """
        Retrieve a record by id, tombstoned or not.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def filter(
        self,
        table: TableRef,
        predicate: Callable[[Record], bool],
    ) -> list[Record]:
        """
        Return every record (tombstones included) matching predicate.

        Callers exclude tombstones themselves when they want live data.
        Scans the whole table; prefer the indexed queries below.
        """
        pass

    @abstractmethod
    async def list_all(self, table: TableRef) -> list[Record]:
        """Every record in a table, tombstones included."""
        pass

    @abstractmethod
    async def list_active(self, table: TableRef) -> list[Record]:
        """Every record without a tombstone."""
        pass

    @abstractmethod
    async def find_by(
        self,
        table: TableRef,
        field: str,
        value: Any,
        include_deleted: bool = False,
    ) -> list[Record]:
        """
        Records whose indexed field equals value.

        Raises:
            ValueError: If field is not a declared index of the table
        """
        pass

    @abstractmethod
    async def find_between(
        self,
        table: TableRef,
        field: str,
        start: Union[date, str, int],
        end: Union[date, str, int],
        include_deleted: bool = False,
    ) -> list[Record]:
        """
        Records whose indexed field lies in [start, end], ordered by it.

        Raises:
            ValueError: If field is not a declared index of the table
        """
        pass

    @abstractmethod
    async def count(self, table: TableRef, include_deleted: bool = True) -> int:
        pass

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add(self, table: TableRef, record: RecordInput) -> Record:
        """
        Insert a new record, bumping updated_at.

        Raises:
            DuplicateError: If the id already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(
        self,
        table: TableRef,
        record_id: str,
        changes: dict[str, Any],
    ) -> Record:
        """
        Merge field changes into a stored record, bumping updated_at.

        Args:
            changes: python field names to new values

        Raises:
            NotFoundError: If the record doesn't exist
            ValueError: Unknown field, id change, or invalid merged record
        """
        pass

    @abstractmethod
    async def remove(self, table: TableRef, record_id: str) -> Record:
        """
        Soft delete: set deleted_at, keep the row.

        Raises:
            NotFoundError: If the record doesn't exist
        """
        pass

    @abstractmethod
    async def bulk_upsert(self, table: TableRef, records: Iterable[RecordInput]) -> int:
        """
        Insert-or-replace by id. Last entry wins on duplicate ids.

        Timestamps are stored exactly as given.

        Returns:
            Number of input entries written
        """
        pass

    @abstractmethod
    async def clear(self, table: TableRef) -> None:
        """Physically delete every row of a table."""
        pass

    # -------------------------------------------------------------------------
    # Key-value settings
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_setting(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    async def set_setting(self, key: str, value: Any) -> None:
        """Store a JSON-serialisable value under key."""
        pass

    @abstractmethod
    async def delete_setting(self, key: str) -> None:
        pass

    @abstractmethod
    async def clear_settings(self) -> None:
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    def transaction(self, tables: Iterable[TableRef]) -> AsyncContextManager[StoreTransaction]:
        """
        Open a transaction over the listed tables.

        Usage:
            async with store.transaction([Table.ACCOUNTS, Table.LOANS]) as tx:
                await tx.add(Table.ACCOUNTS, account)

        If the body raises, every effect on every listed table is rolled
        back and the exception propagates.
        """
        pass

    async def with_transaction(
        self,
        tables: Iterable[TableRef],
        fn: Callable[[StoreTransaction], Awaitable[T]],
    ) -> T:
        """Run fn(tx) inside transaction(tables) and return its result."""
        async with self.transaction(tables) as tx:
            return await fn(tx)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not open the storage engine."""
    pass
