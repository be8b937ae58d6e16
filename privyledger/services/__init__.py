"""Services package."""

from privyledger.services.crypto import (
    DecryptionError,
    decrypt,
    encrypt,
    hash_passphrase,
    verify_passphrase,
)
from privyledger.services.storage import (
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    SQLiteRecordStore,
    StorageError,
    StoreTransaction,
    Table,
)

__all__ = [
    # Crypto
    "DecryptionError",
    "decrypt",
    "encrypt",
    "hash_passphrase",
    "verify_passphrase",
    # Storage services
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "RecordStoreInterface",
    "SQLiteRecordStore",
    "StorageError",
    "StoreTransaction",
    "Table",
]
