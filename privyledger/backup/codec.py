"""
Backup Codec

Serializes the whole record store into a versioned BackupPayload and
restores a payload back into the store.

GUARANTEES:
- An import is rejected BEFORE any write if the version is unsupported
  or the payload is structurally invalid
- Accepted imports run as ONE transaction across every table present;
  any failure rolls the whole import back
- Imports merge (upsert by id) and never delete rows the payload does
  not mention; tables absent from the payload are untouched
- Importing the same payload twice leaves the same state as once

The codec only deals in plaintext. Encrypted exports are opened by the
backup workflow before they get here.
"""

import json
from collections.abc import Mapping
from typing import Any, Optional, Union
from uuid import UUID

from pydantic import ValidationError

from privyledger.audit import AuditLogger
from privyledger.models.backup import BackupPayload, ImportSummary
from privyledger.models.records import REQUIRE_STORED_FIELDS, utc_now
from privyledger.services.storage import TABLES, RecordStoreInterface, StoreTransaction

SUPPORTED_VERSION = 1


class BackupError(Exception):
    """Base exception for backup import/export."""
    pass


class VersionMismatchError(BackupError):
    """Payload was written by an unsupported export version."""

    def __init__(self, found: Any, supported: int = SUPPORTED_VERSION):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported export version {found!r} (this build reads version {supported})"
        )


class MalformedPayloadError(BackupError):
    """Payload could not be parsed or does not have the expected shape."""
    pass


def _summarize_validation(error: ValidationError, limit: int = 5) -> str:
    """Short, value-free description of pydantic validation failures."""
    problems = []
    for detail in error.errors()[:limit]:
        location = ".".join(str(part) for part in detail["loc"])
        problems.append(f"{location}: {detail['msg']}")
    more = error.error_count() - len(problems)
    if more > 0:
        problems.append(f"... and {more} more")
    return "; ".join(problems)


class BackupCodec:
    """
    Export/import/wipe over a RecordStoreInterface.

    Import, export and wipe are expected to be serialised by the caller
    (e.g. one restore at a time from the settings screen).
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger

    @property
    def supported_version(self) -> int:
        return SUPPORTED_VERSION

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    async def export_all(self, correlation_id: Optional[UUID] = None) -> BackupPayload:
        """
        Read every table in full, tombstones included.

        All tables are read inside one transaction, so the snapshot is
        consistent across tables. Record order is not meaningful.
        """
        async def read_all(tx: StoreTransaction) -> dict[str, list]:
            return {spec.name: await tx.list_all(spec.table) for spec in TABLES.values()}

        tables = await self._store.with_transaction(list(TABLES), read_all)
        payload = BackupPayload(
            version=SUPPORTED_VERSION,
            exported_at=utc_now(),
            **tables,
        )

        if self._audit_logger:
            counts = {name: len(records) for name, records in tables.items()}
            self._audit_logger.log_backup_exported(counts, correlation_id)
        return payload

    async def export_json(
        self,
        indent: Optional[int] = 2,
        correlation_id: Optional[UUID] = None,
    ) -> str:
        """Export as UTF-8 JSON text in the published wire format."""
        payload = await self.export_all(correlation_id)
        return json.dumps(payload.to_wire(), indent=indent, ensure_ascii=False)

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    def parse_payload(self, data: Union[BackupPayload, Mapping]) -> BackupPayload:
        """
        Validate a payload without touching the store.

        Order matters: the version gate runs before structural validation,
        so a future-version payload is reported as a version mismatch even
        if its shape has changed.

        Every record must carry its own id and timestamps; none are
        generated on import.

        Raises:
            VersionMismatchError: version != SUPPORTED_VERSION
            MalformedPayloadError: anything structurally wrong
        """
        if isinstance(data, BackupPayload):
            if data.version != SUPPORTED_VERSION:
                raise VersionMismatchError(data.version)
            return data

        if not isinstance(data, Mapping):
            raise MalformedPayloadError(
                f"Backup payload must be a JSON object, got {type(data).__name__}"
            )
        if "version" not in data:
            raise MalformedPayloadError("Backup payload is missing required field 'version'")

        version = data["version"]
        if isinstance(version, bool) or not isinstance(version, int):
            raise MalformedPayloadError(
                f"Backup payload 'version' must be an integer, got {type(version).__name__}"
            )
        if version != SUPPORTED_VERSION:
            raise VersionMismatchError(version)

        try:
            return BackupPayload.model_validate(
                dict(data),
                context={REQUIRE_STORED_FIELDS: True},
            )
        except ValidationError as e:
            raise MalformedPayloadError(
                f"Backup payload is invalid: {_summarize_validation(e)}"
            ) from e

    async def import_all(
        self,
        payload: Union[BackupPayload, Mapping],
        correlation_id: Optional[UUID] = None,
    ) -> ImportSummary:
        """
        Merge a plaintext payload into the store atomically.

        Returns:
            ImportSummary with the number of entries written per table

        Raises:
            VersionMismatchError / MalformedPayloadError: nothing written
            StorageError: the transaction failed and was rolled back
        """
        try:
            parsed = self.parse_payload(payload)
        except BackupError as e:
            self._reject(e, correlation_id)
            raise

        present = set(parsed.present_tables())
        tables = [spec.table for spec in TABLES.values() if spec.name in present]
        if not tables:
            return ImportSummary()

        async def apply(tx: StoreTransaction) -> dict[str, int]:
            counts = {}
            for table in tables:
                counts[table.value] = await tx.bulk_upsert(table, getattr(parsed, table.value))
            return counts

        try:
            counts = await self._store.with_transaction(tables, apply)
        except Exception as e:
            if self._audit_logger:
                self._audit_logger.log_import_failed(str(e), correlation_id)
            raise

        if self._audit_logger:
            self._audit_logger.log_backup_imported(counts, correlation_id)
        return ImportSummary(counts=counts)

    async def import_json(
        self,
        text: Union[str, bytes],
        correlation_id: Optional[UUID] = None,
    ) -> ImportSummary:
        """
        Parse plaintext export JSON and import it.

        Encrypted exports are refused here; decrypt them first.
        """
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
            error = MalformedPayloadError(f"Backup is not valid JSON: {e}")
            self._reject(error, correlation_id)
            raise error from e

        if isinstance(data, Mapping) and "encrypted" in data and "exportedAt" not in data:
            error = MalformedPayloadError(
                "Backup is encrypted; decrypt it with the passphrase before importing"
            )
            self._reject(error, correlation_id)
            raise error

        return await self.import_all(data, correlation_id)

    def _reject(self, error: BackupError, correlation_id: Optional[UUID]) -> None:
        if not self._audit_logger:
            return
        reason = "version_mismatch" if isinstance(error, VersionMismatchError) else "malformed"
        self._audit_logger.log_import_rejected(reason, str(error), correlation_id)

    # -------------------------------------------------------------------------
    # Wipe
    # -------------------------------------------------------------------------

    async def wipe_all(self) -> None:
        """
        Delete every record in every table and all local settings.

        Irreversible. Runs as a single transaction, so a failed wipe
        leaves everything in place.
        """
        tables = list(TABLES)

        async def wipe(tx: StoreTransaction) -> None:
            for table in tables:
                await tx.clear(table)
            await tx.clear_settings()

        await self._store.with_transaction(tables, wipe)
        if self._audit_logger:
            self._audit_logger.log_data_wiped([table.value for table in tables])
