"""
Backup Models for PrivyLedger

BackupPayload is the plaintext export format:

    {"version": 1, "exportedAt": "<ISO-8601>", "accounts": [...], ...}

EncryptedBackup is the wrapper written when the user protects an export
with a passphrase:

    {"version": 1, "encrypted": "<base64 envelope>"}

DESIGN DECISION: Backups are full history, not a live snapshot.
Tombstoned records are exported and re-imported like any other row.
"""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field

from privyledger.models.records import (
    WIRE_CONFIG,
    Account,
    Budget,
    CreditCard,
    FinancialGoal,
    Loan,
    RecurringRule,
    Subscription,
    Transaction,
    utc_now,
)


class BackupPayload(BaseModel):
    """
    Full export of every table.

    Table fields are keyed by their Table value (python name) and
    serialized under camelCase keys. A table absent from an imported
    payload is reported by present_tables() and left untouched.
    """
    model_config = WIRE_CONFIG

    version: int = Field(..., description="Export format version")
    exported_at: dt.datetime = Field(..., description="When the export was taken")

    accounts: list[Account] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    loans: list[Loan] = Field(default_factory=list)
    subscriptions: list[Subscription] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    goals: list[FinancialGoal] = Field(default_factory=list)
    recurring_rules: list[RecurringRule] = Field(default_factory=list)
    credit_cards: list[CreditCard] = Field(default_factory=list)

    def present_tables(self) -> list[str]:
        """Names of table fields explicitly present in the payload."""
        return [
            name for name in self.model_fields_set
            if name not in ("version", "exported_at")
        ]

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EncryptedBackup(BaseModel):
    """Passphrase-protected export wrapper."""
    model_config = ConfigDict(extra="ignore")

    version: int
    encrypted: str = Field(..., min_length=1, description="base64 envelope")


class ImportSummary(BaseModel):
    """What an import wrote, per table."""

    imported_at: dt.datetime = Field(default_factory=utc_now)
    counts: dict[str, int] = Field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())
