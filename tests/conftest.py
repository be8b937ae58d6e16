"""
Shared fixtures.

Stores are in-memory SQLite databases unless a test needs a file on disk
(tmp_path). No test touches the user's real database.
"""

import datetime as dt

import pytest

from privyledger.audit import AuditLogger
from privyledger.config import StorageSettings
from privyledger.models import (
    Account,
    AccountType,
    CreditCard,
    Loan,
    LoanDirection,
    Transaction,
    TransactionType,
)
from privyledger.services.storage import SQLiteRecordStore


class RecordingAuditLogger(AuditLogger):
    """AuditLogger that also keeps every event for assertions."""

    def __init__(self):
        super().__init__()
        self.events = []

    def log(self, event):
        self.events.append(event)
        super().log(event)

    @property
    def event_types(self):
        return [event.event_type for event in self.events]


@pytest.fixture
def audit_logger():
    return RecordingAuditLogger()


@pytest.fixture
def storage_settings():
    return StorageSettings(db_path=":memory:", connect_retries=1)


@pytest.fixture
async def store(storage_settings, audit_logger):
    store = SQLiteRecordStore(":memory:", audit_logger=audit_logger, settings=storage_settings)
    await store.open()
    yield store
    await store.close()


def make_account(**overrides) -> Account:
    fields = {"name": "Current", "type": AccountType.CHECKING}
    fields.update(overrides)
    return Account(**fields)


def make_transaction(account_id: str, **overrides) -> Transaction:
    fields = {
        "account_id": account_id,
        "type": TransactionType.EXPENSE,
        "amount_minor_units": 1250,
        "category": "groceries",
        "date": dt.date(2024, 3, 1),
    }
    fields.update(overrides)
    return Transaction(**fields)


def make_loan(**overrides) -> Loan:
    fields = {
        "direction": LoanDirection.LENT,
        "counterparty": "Sam",
        "principal_minor_units": 10000,
        "remaining_minor_units": 10000,
        "start_date": dt.date(2024, 1, 1),
    }
    fields.update(overrides)
    return Loan(**fields)


def make_card(**overrides) -> CreditCard:
    fields = {"name": "Everyday", "last4": "4242"}
    fields.update(overrides)
    return CreditCard(**fields)


@pytest.fixture
def factories():
    """Record builders with sensible defaults; pass overrides as kwargs."""
    class Factories:
        account = staticmethod(make_account)
        transaction = staticmethod(make_transaction)
        loan = staticmethod(make_loan)
        card = staticmethod(make_card)
    return Factories
