"""
Backup Workflow for PrivyLedger

This module ties the record store, the backup codec and the passphrase
envelope together into the flows the settings screen offers:
1. Encrypted export (export -> JSON -> encrypt -> wrapper)
2. Encrypted restore (wrapper -> decrypt -> validate -> import)
3. Passphrase management (store a verifier, check a passphrase)
4. Wipe everything

DESIGN DECISION: The workflow enforces the boundaries:
- A restore writes nothing unless decryption AND validation succeed
- Passphrases are never stored, only a verifier derived from them
- Every step is audited, without secrets

The passphrase is only ever held for the duration of a call.
"""

import json
from collections.abc import Mapping
from typing import Optional, Union
from uuid import UUID

from pydantic import ValidationError

from privyledger.audit import AuditLogger, create_correlation_id
from privyledger.backup import (
    SUPPORTED_VERSION,
    BackupCodec,
    BackupError,
    MalformedPayloadError,
    VersionMismatchError,
)
from privyledger.models.backup import EncryptedBackup, ImportSummary
from privyledger.services.crypto import (
    DecryptionError,
    decrypt,
    encrypt,
    hash_passphrase,
    verify_passphrase,
)
from privyledger.services.storage import RecordStoreInterface

PASSPHRASE_VERIFIER_KEY = "passphrase_verifier"


class BackupWorkflow:
    """
    Orchestrates encrypted backup, restore and wipe.

    Flow (restore):
    1. Parse the {"version", "encrypted"} wrapper
    2. Check the wrapper version
    3. Decrypt with the passphrase (ANY failure -> DecryptionError)
    4. Hand the plaintext to the codec, which validates before writing
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        codec: Optional[BackupCodec] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._codec = codec or BackupCodec(store, audit_logger)

    @property
    def codec(self) -> BackupCodec:
        return self._codec

    # -------------------------------------------------------------------------
    # Encrypted backups
    # -------------------------------------------------------------------------

    async def create_encrypted_backup(
        self,
        passphrase: str,
        correlation_id: Optional[UUID] = None,
    ) -> str:
        """
        Export everything and seal it under the passphrase.

        Returns:
            JSON text of the wrapper {"version": 1, "encrypted": "<envelope>"}
        """
        correlation_id = correlation_id or create_correlation_id()
        plaintext = await self._codec.export_json(correlation_id=correlation_id)
        envelope = encrypt(plaintext, passphrase)

        if self._audit_logger:
            self._audit_logger.log_encrypted_backup_created(len(envelope), correlation_id)
        return json.dumps({"version": SUPPORTED_VERSION, "encrypted": envelope}, indent=2)

    async def restore_encrypted_backup(
        self,
        text: Union[str, bytes],
        passphrase: str,
        correlation_id: Optional[UUID] = None,
    ) -> ImportSummary:
        """
        Open an encrypted backup and merge it into the store.

        Raises:
            MalformedPayloadError: wrapper (or the plaintext inside) is malformed
            VersionMismatchError: wrapper or payload version is unsupported
            DecryptionError: wrong passphrase or corrupted envelope
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            envelope = self._unwrap(text)
        except BackupError as e:
            if self._audit_logger:
                reason = "version_mismatch" if isinstance(e, VersionMismatchError) else "malformed"
                self._audit_logger.log_import_rejected(reason, str(e), correlation_id)
            raise

        try:
            plaintext = decrypt(envelope, passphrase)
        except DecryptionError:
            if self._audit_logger:
                self._audit_logger.log_decryption_failed(correlation_id)
            raise

        return await self._codec.import_json(plaintext, correlation_id)

    def _unwrap(self, text: Union[str, bytes]) -> str:
        try:
            wrapper = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
            raise MalformedPayloadError(f"Encrypted backup is not valid JSON: {e}") from e

        if not isinstance(wrapper, Mapping):
            raise MalformedPayloadError("Encrypted backup must be a JSON object")

        version = wrapper.get("version")
        if isinstance(version, bool) or not isinstance(version, int):
            raise MalformedPayloadError("Encrypted backup 'version' must be an integer")
        if version != SUPPORTED_VERSION:
            raise VersionMismatchError(version)

        try:
            return EncryptedBackup.model_validate(dict(wrapper)).encrypted
        except ValidationError as e:
            raise MalformedPayloadError(
                "Encrypted backup has no usable 'encrypted' envelope"
            ) from e

    # -------------------------------------------------------------------------
    # Passphrase
    # -------------------------------------------------------------------------

    async def set_passphrase(self, passphrase: str) -> None:
        """Store a verifier for the passphrase (never the passphrase itself)."""
        verifier = hash_passphrase(passphrase)
        await self._store.set_setting(PASSPHRASE_VERIFIER_KEY, verifier)
        if self._audit_logger:
            self._audit_logger.log_passphrase_set()

    async def has_passphrase(self) -> bool:
        return await self._store.get_setting(PASSPHRASE_VERIFIER_KEY) is not None

    async def check_passphrase(self, passphrase: str) -> bool:
        """True only if a verifier is stored and the passphrase matches it."""
        verifier = await self._store.get_setting(PASSPHRASE_VERIFIER_KEY)
        if verifier is None:
            return False
        accepted = verify_passphrase(passphrase, verifier)
        if self._audit_logger:
            self._audit_logger.log_passphrase_checked(accepted)
        return accepted

    # -------------------------------------------------------------------------
    # Wipe
    # -------------------------------------------------------------------------

    async def wipe_all(self) -> None:
        """Delete all local data, including the stored passphrase verifier."""
        await self._codec.wipe_all()
