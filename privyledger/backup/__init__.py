"""Backup export/import package."""

from privyledger.backup.codec import (
    SUPPORTED_VERSION,
    BackupCodec,
    BackupError,
    MalformedPayloadError,
    VersionMismatchError,
)

__all__ = [
    "SUPPORTED_VERSION",
    "BackupCodec",
    "BackupError",
    "MalformedPayloadError",
    "VersionMismatchError",
]
