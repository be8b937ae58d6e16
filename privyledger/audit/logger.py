"""
Audit Logger

DESIGN DECISION: Every significant action on the local data is logged.
This provides:
1. Traceability of imports, exports and wipes
2. Debugging capability
3. A record of rejected restores and passphrase checks

The audit logger:
- Writes structured (JSON) log lines through structlog
- Never persists events into the record store (a wipe must really wipe)
- Supports correlation IDs to trace related events
- NEVER receives secrets: builders only accept names, ids and counts
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from privyledger.config import get_settings
from privyledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog and the stdlib root logger it renders through."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging(get_settings().app.log_level)


class AuditLogger:
    """
    Central audit logging service.

    One instance is built at startup and handed to the store, the backup
    codec and the workflow.
    """

    def __init__(self, logger_name: str = "privyledger.audit"):
        self._logger = structlog.get_logger(logger_name)

    def log(self, event: AuditEvent) -> None:
        """Log an audit event at the level matching its severity."""
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    def log_record_added(self, table: str, record_id: str) -> None:
        self.log(AuditEventBuilder.record_added(table, record_id))

    def log_record_updated(self, table: str, record_id: str, fields: list[str]) -> None:
        self.log(AuditEventBuilder.record_updated(table, record_id, fields))

    def log_record_deleted(self, table: str, record_id: str) -> None:
        self.log(AuditEventBuilder.record_deleted(table, record_id))

    def log_migration_applied(self, version: int, name: str) -> None:
        self.log(AuditEventBuilder.migration_applied(version, name))

    def log_backup_exported(
        self,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.backup_exported(counts, correlation_id))

    def log_backup_imported(
        self,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.backup_imported(counts, correlation_id))

    def log_import_rejected(
        self,
        reason: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an import refused before any write (version or shape)."""
        self.log(AuditEventBuilder.import_rejected(reason, error_message, correlation_id))

    def log_import_failed(
        self,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.import_failed(error_message, correlation_id))

    def log_data_wiped(self, tables: list[str]) -> None:
        self.log(AuditEventBuilder.data_wiped(tables))

    def log_encrypted_backup_created(
        self,
        envelope_size: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.encrypted_backup_created(envelope_size, correlation_id))

    def log_decryption_failed(self, correlation_id: Optional[UUID] = None) -> None:
        self.log(AuditEventBuilder.decryption_failed(correlation_id))

    def log_passphrase_set(self) -> None:
        self.log(AuditEventBuilder.passphrase_set())

    def log_passphrase_checked(self, accepted: bool) -> None:
        self.log(AuditEventBuilder.passphrase_checked(accepted))

    def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.storage_error(operation, error_message, correlation_id))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g. restoring a backup).
    Pass it through all subsequent operations.
    """
    return uuid4()
