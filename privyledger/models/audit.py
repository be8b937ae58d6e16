"""
Audit Models for PrivyLedger

Every significant store and backup action is logged for audit purposes.
This provides:
1. Traceability of imports, exports and wipes
2. Debugging information when things go wrong
3. Ability to reconstruct what happened to the local data

CRITICAL: Audit events NEVER carry passphrases, derived keys, envelopes
or decrypted plaintext. Only table names, record ids and counts.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from privyledger.models.records import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Record mutations
    RECORD_ADDED = "record_added"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"

    # Schema
    MIGRATION_APPLIED = "migration_applied"

    # Backup / restore
    BACKUP_EXPORTED = "backup_exported"
    BACKUP_IMPORTED = "backup_imported"
    IMPORT_REJECTED = "import_rejected"
    IMPORT_FAILED = "import_failed"
    DATA_WIPED = "data_wiped"

    # Encryption
    ENCRYPTED_BACKUP_CREATED = "encrypted_backup_created"
    DECRYPTION_FAILED = "decryption_failed"
    PASSPHRASE_SET = "passphrase_set"
    PASSPHRASE_CHECKED = "passphrase_checked"

    # System events
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Table name, or 'backup' / 'passphrase'"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Record id this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g. decrypt then import)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_added("accounts", account.id)
        event = AuditEventBuilder.backup_imported({"accounts": 3}, correlation_id)
    """

    @staticmethod
    def record_added(table: str, record_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_ADDED,
            entity_type=table,
            entity_id=record_id,
            description=f"Record added to {table}",
        )

    @staticmethod
    def record_updated(
        table: str,
        record_id: str,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            entity_type=table,
            entity_id=record_id,
            description=f"Record updated in {table}",
            details={"fields": sorted(fields)},
        )

    @staticmethod
    def record_deleted(table: str, record_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            entity_type=table,
            entity_id=record_id,
            description=f"Record soft-deleted in {table}",
        )

    @staticmethod
    def migration_applied(version: int, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_APPLIED,
            entity_type="schema",
            description=f"Schema migration {version} applied: {name}",
            details={"version": version, "name": name},
        )

    @staticmethod
    def backup_exported(
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_EXPORTED,
            entity_type="backup",
            correlation_id=correlation_id,
            description=f"Backup exported with {sum(counts.values())} records",
            details={"counts": counts},
            is_user_action=True,
        )

    @staticmethod
    def backup_imported(
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_IMPORTED,
            entity_type="backup",
            correlation_id=correlation_id,
            description=f"Backup imported with {sum(counts.values())} records",
            details={"counts": counts},
            is_user_action=True,
        )

    @staticmethod
    def import_rejected(
        reason: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="backup",
            correlation_id=correlation_id,
            description=f"Import rejected before any write: {reason}",
            error_code=reason,
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def import_failed(
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="backup",
            correlation_id=correlation_id,
            description="Import failed and was rolled back",
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def data_wiped(tables: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_WIPED,
            severity=AuditSeverity.WARNING,
            entity_type="backup",
            description="All local data wiped",
            details={"tables": tables},
            is_user_action=True,
        )

    @staticmethod
    def encrypted_backup_created(
        envelope_size: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENCRYPTED_BACKUP_CREATED,
            entity_type="backup",
            correlation_id=correlation_id,
            description="Encrypted backup created",
            details={"envelope_chars": envelope_size},
            is_user_action=True,
        )

    @staticmethod
    def decryption_failed(correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DECRYPTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="backup",
            correlation_id=correlation_id,
            description="Encrypted backup could not be decrypted",
            is_user_action=True,
        )

    @staticmethod
    def passphrase_set() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PASSPHRASE_SET,
            entity_type="passphrase",
            description="Passphrase verifier stored",
            is_user_action=True,
        )

    @staticmethod
    def passphrase_checked(accepted: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PASSPHRASE_CHECKED,
            severity=AuditSeverity.INFO if accepted else AuditSeverity.WARNING,
            entity_type="passphrase",
            description="Passphrase accepted" if accepted else "Passphrase rejected",
            details={"accepted": accepted},
            is_user_action=True,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
