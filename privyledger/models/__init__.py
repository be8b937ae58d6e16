"""
Data Models Package

This package contains all Pydantic models used in PrivyLedger.
All data flowing into the store or out through backups conforms to these
schemas.
"""

from privyledger.models.records import (
    Account,
    AccountType,
    BillingCycle,
    Budget,
    BudgetPeriod,
    CardNetwork,
    CardStatus,
    CreditCard,
    CreditCardTransaction,
    FinancialGoal,
    GoalCategory,
    Loan,
    LoanDirection,
    LoanPayment,
    LoanStatus,
    PaymentMethod,
    Record,
    RecurringFrequency,
    RecurringRule,
    Subscription,
    Transaction,
    TransactionType,
    new_id,
    utc_now,
)
from privyledger.models.backup import (
    BackupPayload,
    EncryptedBackup,
    ImportSummary,
)
from privyledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "Account",
    "AccountType",
    "BillingCycle",
    "Budget",
    "BudgetPeriod",
    "CardNetwork",
    "CardStatus",
    "CreditCard",
    "CreditCardTransaction",
    "FinancialGoal",
    "GoalCategory",
    "Loan",
    "LoanDirection",
    "LoanPayment",
    "LoanStatus",
    "PaymentMethod",
    "Record",
    "RecurringFrequency",
    "RecurringRule",
    "Subscription",
    "Transaction",
    "TransactionType",
    "new_id",
    "utc_now",
    # Backup models
    "BackupPayload",
    "EncryptedBackup",
    "ImportSummary",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
