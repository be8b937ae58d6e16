"""
Tests for PrivyLedger models

Test strategy:
1. Unit tests for individual models (records, backups, audit events)
2. Integration tests for store, codec and workflow live in their own modules
3. No network, no real user database (in-memory SQLite only)
"""

import datetime as dt
from uuid import uuid4

import pytest
from pydantic import ValidationError

from privyledger.models import (
    Account,
    AccountType,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    BackupPayload,
    CardStatus,
    CreditCard,
    CreditCardTransaction,
    EncryptedBackup,
    FinancialGoal,
    GoalCategory,
    ImportSummary,
    Loan,
    LoanDirection,
    LoanPayment,
    LoanStatus,
    RecurringRule,
    Transaction,
    TransactionType,
)
from privyledger.models.records import REQUIRE_STORED_FIELDS


class TestRecordModels:
    """Tests for the base record fields shared by every entity."""

    def test_record_defaults(self):
        """Test id and timestamps are filled in."""
        account = Account(name="Current", type=AccountType.CHECKING)
        assert account.id
        assert account.created_at.tzinfo is not None
        assert account.updated_at.tzinfo is not None
        assert account.deleted_at is None
        assert account.is_deleted is False

    def test_ids_are_unique(self):
        """Test two new records never share an id."""
        first = Account(name="A", type=AccountType.CASH)
        second = Account(name="B", type=AccountType.CASH)
        assert first.id != second.id

    def test_naive_timestamps_are_treated_as_utc(self):
        """Test that naive datetimes come back as aware UTC."""
        account = Account(
            name="Savings",
            type=AccountType.SAVINGS,
            created_at=dt.datetime(2024, 1, 1, 12, 0),
        )
        assert account.created_at == dt.datetime(2024, 1, 1, 12, 0, tzinfo=dt.timezone.utc)

    def test_is_deleted_follows_tombstone(self):
        """Test is_deleted reflects deleted_at."""
        account = Account(
            name="Old",
            type=AccountType.CASH,
            deleted_at=dt.datetime(2024, 2, 1, tzinfo=dt.timezone.utc),
        )
        assert account.is_deleted is True

    def test_wire_format_uses_camel_case(self):
        """Test serialization to the published camelCase format."""
        account = Account(name="Current", type=AccountType.CHECKING, is_archived=True)
        wire = account.to_wire()
        assert wire["isArchived"] is True
        assert "createdAt" in wire
        assert "updatedAt" in wire
        assert "is_archived" not in wire

    def test_wire_format_omits_unset_optionals(self):
        """Test None optionals are left out of the wire form."""
        wire = Account(name="Current", type=AccountType.CHECKING).to_wire()
        assert "deletedAt" not in wire
        assert "notes" not in wire

    def test_accepts_wire_names_and_python_names(self):
        """Test both camelCase and snake_case construction."""
        from_wire = Account.model_validate({"name": "A", "type": "cash", "isArchived": True})
        from_python = Account.model_validate({"name": "A", "type": "cash", "is_archived": True})
        assert from_wire.is_archived is True
        assert from_python.is_archived is True

    def test_unknown_fields_are_ignored(self):
        """Test fields from newer builds do not break parsing."""
        account = Account.model_validate({"name": "A", "type": "cash", "someFutureField": 1})
        assert not hasattr(account, "someFutureField")

    def test_strips_whitespace(self):
        """Test that whitespace is stripped from names."""
        account = Account(name="  Current  ", type=AccountType.CHECKING)
        assert account.name == "Current"

    @pytest.mark.parametrize("record_id", [" a1", "a1 ", "\ta1"])
    def test_padded_id_rejected(self, record_id):
        """Test an id with surrounding whitespace is refused, not rewritten."""
        with pytest.raises(ValidationError, match="whitespace"):
            Account(id=record_id, name="A", type=AccountType.CASH)

    def test_padded_child_id_rejected(self):
        """Test embedded child ids get the same check."""
        with pytest.raises(ValidationError, match="whitespace"):
            LoanPayment(id=" p1", amount=100, date=dt.date(2024, 1, 1))

    def test_stored_fields_required_in_context(self):
        """Test id and timestamps are mandatory when the context asks for them."""
        context = {REQUIRE_STORED_FIELDS: True}
        with pytest.raises(ValidationError, match="id, createdAt, updatedAt"):
            Account.model_validate({"name": "A", "type": "cash"}, context=context)
        with pytest.raises(ValidationError, match="updatedAt"):
            Account.model_validate(
                {"id": "a1", "createdAt": "2024-01-01T00:00:00Z", "name": "A", "type": "cash"},
                context=context,
            )

    def test_stored_fields_required_in_children(self):
        """Test embedded children must carry their ids in the same context."""
        context = {REQUIRE_STORED_FIELDS: True}
        loan = {
            "id": "l1",
            "createdAt": "2024-01-01T00:00:00Z",
            "updatedAt": "2024-01-01T00:00:00Z",
            "direction": "lent",
            "counterparty": "Sam",
            "principalMinorUnits": 100,
            "remainingMinorUnits": 100,
            "startDate": "2024-01-01",
            "payments": [{"amount": 10, "date": "2024-01-02"}],
        }
        with pytest.raises(ValidationError, match="payments.0"):
            Loan.model_validate(loan, context=context)

    def test_stored_fields_generated_without_context(self):
        """Test normal construction still fills in id and timestamps."""
        account = Account.model_validate({"name": "A", "type": "cash"})
        assert account.id

    def test_empty_name_rejected(self):
        """Test that a blank account name is rejected."""
        with pytest.raises(ValidationError):
            Account(name="   ", type=AccountType.CHECKING)

    def test_invalid_enum_rejected(self):
        """Test that an unknown account type is rejected."""
        with pytest.raises(ValidationError):
            Account(name="A", type="piggy_bank")


class TestEntityModels:
    """Tests for individual entity kinds."""

    def test_transaction_date_from_wire(self):
        """Test YYYY-MM-DD dates parse and serialize unchanged."""
        txn = Transaction.model_validate({
            "accountId": "acc-1",
            "type": "expense",
            "amountMinorUnits": 499,
            "category": "coffee",
            "date": "2024-03-01",
            "tags": ["work"],
        })
        assert txn.date == dt.date(2024, 3, 1)
        assert txn.type == TransactionType.EXPENSE
        assert txn.to_wire()["date"] == "2024-03-01"
        assert txn.to_wire()["amountMinorUnits"] == 499

    def test_amount_must_be_integer_minor_units(self):
        """Test that fractional amounts are rejected."""
        with pytest.raises(ValidationError):
            Transaction(
                account_id="acc-1",
                type=TransactionType.EXPENSE,
                amount_minor_units=12.5,
                category="misc",
                date=dt.date(2024, 3, 1),
            )

    def test_loan_blank_due_date_is_none(self):
        """Test an empty due date string means no due date."""
        loan = Loan.model_validate({
            "direction": "borrowed",
            "counterparty": "Bank",
            "principalMinorUnits": 100000,
            "remainingMinorUnits": 100000,
            "startDate": "2024-01-01",
            "dueDate": "",
        })
        assert loan.due_date is None
        assert loan.status == LoanStatus.ACTIVE
        assert loan.direction == LoanDirection.BORROWED

    def test_loan_rejects_duplicate_payment_ids(self):
        """Test child ids must be unique within their parent."""
        with pytest.raises(ValidationError, match="Duplicate loan payment id"):
            Loan(
                direction=LoanDirection.LENT,
                counterparty="Sam",
                principal_minor_units=1000,
                remaining_minor_units=500,
                start_date=dt.date(2024, 1, 1),
                payments=[
                    LoanPayment(id="p1", amount=250, date=dt.date(2024, 2, 1)),
                    LoanPayment(id="p1", amount=250, date=dt.date(2024, 3, 1)),
                ],
            )

    def test_same_child_id_allowed_in_different_parents(self):
        """Test child ids only need to be unique per parent."""
        payment = {"id": "p1", "amount": 100, "date": "2024-02-01"}
        base = {
            "direction": "lent",
            "counterparty": "Sam",
            "principalMinorUnits": 1000,
            "remainingMinorUnits": 900,
            "startDate": "2024-01-01",
        }
        first = Loan.model_validate({**base, "payments": [payment]})
        second = Loan.model_validate({**base, "payments": [payment]})
        assert first.payments[0].id == second.payments[0].id

    def test_card_rejects_duplicate_transaction_ids(self):
        """Test card transactions must have unique ids."""
        txn = CreditCardTransaction(
            id="t1",
            merchant="Shop",
            category="misc",
            amount_minor_units=100,
            date=dt.date(2024, 2, 1),
        )
        with pytest.raises(ValidationError, match="Duplicate card transaction id"):
            CreditCard(name="Card", transactions=[txn, txn])

    def test_card_defaults(self):
        """Test credit card defaults."""
        card = CreditCard(name="Card")
        assert card.status == CardStatus.ACTIVE
        assert card.balance_minor_units == 0
        assert card.transactions == []

    def test_card_last4_length(self):
        """Test last4 holds at most four characters."""
        with pytest.raises(ValidationError):
            CreditCard(name="Card", last4="12345")

    def test_goal_blank_target_date(self):
        """Test an empty target date means no target date."""
        goal = FinancialGoal.model_validate({
            "name": "Rainy day",
            "targetMinorUnits": 500000,
            "category": "emergency_fund",
            "targetDate": " ",
        })
        assert goal.target_date is None
        assert goal.category == GoalCategory.EMERGENCY_FUND

    def test_recurring_rule_wire_names(self):
        """Test template fields serialize under camelCase."""
        rule = RecurringRule(
            template_account_id="acc-1",
            template_type=TransactionType.EXPENSE,
            template_amount_minor_units=1599,
            template_category="streaming",
            frequency="monthly",
            start_date=dt.date(2024, 1, 1),
        )
        wire = rule.to_wire()
        assert wire["templateAccountId"] == "acc-1"
        assert wire["frequency"] == "monthly"


class TestBackupModels:
    """Tests for backup payload models."""

    def test_present_tables_only_lists_explicit_keys(self):
        """Test that omitted tables are not reported as present."""
        payload = BackupPayload.model_validate({
            "version": 1,
            "exportedAt": "2024-03-01T10:00:00Z",
            "accounts": [],
            "creditCards": [],
        })
        assert sorted(payload.present_tables()) == ["accounts", "credit_cards"]

    def test_wire_keys(self):
        """Test table keys use the published camelCase names."""
        payload = BackupPayload(version=1, exported_at=dt.datetime.now(dt.timezone.utc))
        wire = payload.to_wire()
        assert wire["version"] == 1
        assert "exportedAt" in wire
        assert "recurringRules" in wire
        assert "creditCards" in wire

    def test_encrypted_backup_requires_envelope(self):
        """Test the encrypted wrapper needs a non-empty envelope."""
        with pytest.raises(ValidationError):
            EncryptedBackup(version=1, encrypted="")

    def test_import_summary_total(self):
        """Test total sums the per-table counts."""
        summary = ImportSummary(counts={"accounts": 2, "loans": 3})
        assert summary.total == 5
        assert ImportSummary().total == 0


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.RECORD_ADDED,
            description="Record added",
        )
        assert event.event_type == AuditEventType.RECORD_ADDED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.BACKUP_IMPORTED,
            description="Backup imported",
            details={"counts": {"accounts": 1}},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "backup_imported"
        assert log_dict["details"]["counts"] == {"accounts": 1}

    def test_record_updated_sorts_fields(self):
        """Test AuditEventBuilder.record_updated."""
        event = AuditEventBuilder.record_updated("accounts", "acc-1", ["notes", "name"])
        assert event.entity_type == "accounts"
        assert event.entity_id == "acc-1"
        assert event.details["fields"] == ["name", "notes"]

    def test_import_rejected_is_warning(self):
        """Test AuditEventBuilder.import_rejected."""
        correlation_id = uuid4()
        event = AuditEventBuilder.import_rejected(
            reason="version_mismatch",
            error_message="Unsupported export version 2",
            correlation_id=correlation_id,
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.error_code == "version_mismatch"
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_passphrase_checked_severity(self):
        """Test a rejected passphrase is logged as a warning."""
        accepted = AuditEventBuilder.passphrase_checked(True)
        rejected = AuditEventBuilder.passphrase_checked(False)
        assert accepted.severity == AuditSeverity.INFO
        assert rejected.severity == AuditSeverity.WARNING
        assert rejected.details == {"accepted": False}

    def test_backup_exported_counts(self):
        """Test the description carries the total record count."""
        event = AuditEventBuilder.backup_exported({"accounts": 2, "loans": 1})
        assert "3 records" in event.description


class TestEnums:
    """Tests for enum wire values."""

    def test_loan_status_values(self):
        """Test loan status string values."""
        expected = ["active", "partially_paid", "settled", "overdue"]
        for value in expected:
            assert LoanStatus(value) is not None

    def test_account_type_values(self):
        """Test account type string values."""
        assert AccountType.CHECKING.value == "checking"
        assert AccountType.INVESTMENT.value == "investment"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
