"""
Ledger Record Models for PrivyLedger

Every persisted entity is a Record: a unique id, creation and update
timestamps, and an optional soft-delete tombstone (deleted_at).

These models define both the in-memory shape (snake_case attributes) and
the wire shape used by backups (camelCase JSON keys). The wire shape is a
published format: exports produced here must import elsewhere and vice
versa, so field names and value encodings must not drift.

DESIGN DECISION: Money is always held in integer minor units (pence/cents).
Floats never touch an amount.

DESIGN DECISION: Embedded children (loan payments, card transactions) live
inside their parent record. Every child mutation rewrites the whole parent.
"""

import datetime as dt
from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate a new record id (UUID4 text)."""
    return str(uuid4())


def utc_now() -> dt.datetime:
    """Current time as an aware UTC datetime."""
    return dt.datetime.now(dt.timezone.utc)


def _as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    # Naive timestamps are taken to be UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


def _blank_to_none(value):
    # HTML date inputs submit "" for an unset optional date
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _reject_padded_id(value):
    # Runs before str_strip_whitespace, which would otherwise rename the record
    if isinstance(value, str) and value != value.strip():
        raise ValueError("id must not have leading or trailing whitespace")
    return value


RecordId = Annotated[str, BeforeValidator(_reject_padded_id)]

# Validation context flag: records must arrive with their id and timestamps
# instead of having them generated. Set when validating a backup payload.
REQUIRE_STORED_FIELDS = "require_stored_fields"


def _require_stored_fields(data, info: ValidationInfo, fields: tuple[str, ...]):
    if not (info.context and info.context.get(REQUIRE_STORED_FIELDS)):
        return data
    if not isinstance(data, Mapping):
        return data
    missing = [
        to_camel(name) for name in fields
        if name not in data and to_camel(name) not in data
    ]
    if missing:
        raise ValueError(f"Missing required field(s): {', '.join(missing)}")
    return data


WIRE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    str_strip_whitespace=True,
    extra="ignore",
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CASH = "cash"
    CREDIT = "credit"
    INVESTMENT = "investment"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class PaymentMethod(str, Enum):
    CARD = "card"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    DIRECT_DEBIT = "direct_debit"
    OTHER = "other"


class LoanDirection(str, Enum):
    LENT = "lent"
    BORROWED = "borrowed"


class LoanStatus(str, Enum):
    ACTIVE = "active"
    PARTIALLY_PAID = "partially_paid"
    SETTLED = "settled"
    OVERDUE = "overdue"


class BillingCycle(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class BudgetPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class GoalCategory(str, Enum):
    EMERGENCY_FUND = "emergency_fund"
    INVESTMENT = "investment"
    PURCHASE = "purchase"
    DEBT_PAYOFF = "debt_payoff"
    CUSTOM = "custom"


class RecurringFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class CardNetwork(str, Enum):
    VISA = "visa"
    MASTERCARD = "mastercard"
    AMEX = "amex"
    OTHER = "other"


class CardStatus(str, Enum):
    ACTIVE = "active"
    OVERDUE = "overdue"
    CLOSED = "closed"


# =============================================================================
# BASE RECORD
# =============================================================================

class Record(BaseModel):
    """
    Base for every stored entity.

    updated_at is bumped by the store on add/update/remove and never moves
    backwards. deleted_at marks a tombstone: the record is logically deleted
    but still returned by id lookups and included in backups.
    """
    model_config = WIRE_CONFIG

    id: RecordId = Field(
        default_factory=new_id,
        min_length=1,
        description="Unique record id within its table"
    )
    created_at: dt.datetime = Field(
        default_factory=utc_now,
        description="When the record was first created"
    )
    updated_at: dt.datetime = Field(
        default_factory=utc_now,
        description="Last mutation timestamp"
    )
    deleted_at: Optional[dt.datetime] = Field(
        default=None,
        description="Soft-delete tombstone; None means live"
    )

    @model_validator(mode='before')
    @classmethod
    def require_stored_fields(cls, data, info: ValidationInfo):
        return _require_stored_fields(data, info, ("id", "created_at", "updated_at"))

    @field_validator('created_at', 'updated_at', 'deleted_at')
    @classmethod
    def ensure_utc(cls, v: Optional[dt.datetime]) -> Optional[dt.datetime]:
        return _as_utc(v)

    @property
    def is_deleted(self) -> bool:
        """True when the record carries a tombstone."""
        return self.deleted_at is not None

    def to_wire(self) -> dict:
        """JSON-compatible dict in the published camelCase format."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _check_unique_child_ids(children: list, kind: str) -> None:
    seen = set()
    for child in children:
        if child.id in seen:
            raise ValueError(f"Duplicate {kind} id within parent: {child.id}")
        seen.add(child.id)


# =============================================================================
# ENTITIES
# =============================================================================

class Account(Record):
    name: str = Field(..., min_length=1, max_length=200)
    type: AccountType
    currency: str = Field(default="GBP", description="ISO 4217 code")
    color: str = "#38bdf8"
    is_archived: bool = False
    notes: Optional[str] = None


class Transaction(Record):
    """A single income, expense or transfer on an account."""
    account_id: str
    type: TransactionType
    amount_minor_units: int = Field(..., description="Amount in pence/cents")
    currency: str = "GBP"
    category: str
    subcategory: Optional[str] = None
    merchant: Optional[str] = None
    notes: Optional[str] = None
    date: dt.date
    payment_method: Optional[PaymentMethod] = None
    tags: list[str] = Field(default_factory=list)
    is_recurring: bool = False
    recurring_id: Optional[str] = Field(
        default=None,
        description="RecurringRule that generated this transaction"
    )


class LoanPayment(BaseModel):
    """A repayment embedded in its Loan. Ids are unique per loan only."""
    model_config = WIRE_CONFIG

    id: RecordId = Field(default_factory=new_id, min_length=1)
    amount: int = Field(..., description="Amount in minor units")
    date: dt.date
    notes: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def require_stored_fields(cls, data, info: ValidationInfo):
        return _require_stored_fields(data, info, ("id",))


class Loan(Record):
    """
    Money lent to or borrowed from a counterparty.

    Payments are embedded; adding one rewrites the whole loan.
    """
    direction: LoanDirection
    counterparty: str = Field(..., min_length=1)
    principal_minor_units: int
    currency: str = "GBP"
    remaining_minor_units: int
    interest_rate: Optional[float] = Field(
        default=None,
        description="Annual interest rate in percent"
    )
    start_date: dt.date
    due_date: Optional[dt.date] = None
    status: LoanStatus = LoanStatus.ACTIVE
    notes: Optional[str] = None
    payments: list[LoanPayment] = Field(default_factory=list)

    @field_validator('due_date', mode='before')
    @classmethod
    def blank_due_date(cls, v):
        return _blank_to_none(v)

    @model_validator(mode='after')
    def validate_payments(self) -> 'Loan':
        _check_unique_child_ids(self.payments, "loan payment")
        return self


class Subscription(Record):
    name: str = Field(..., min_length=1)
    amount_minor_units: int
    currency: str = "GBP"
    billing_cycle: BillingCycle
    next_billing_date: dt.date
    category: str
    account_id: Optional[str] = None
    url: Optional[str] = None
    is_active: bool = True
    notes: Optional[str] = None


class Budget(Record):
    name: str = Field(..., min_length=1)
    category: str
    amount_minor_units: int
    period: BudgetPeriod
    is_active: bool = True


class FinancialGoal(Record):
    name: str = Field(..., min_length=1)
    target_minor_units: int
    current_minor_units: int = 0
    currency: str = "GBP"
    target_date: Optional[dt.date] = None
    category: GoalCategory
    notes: Optional[str] = None
    is_achieved: bool = False

    @field_validator('target_date', mode='before')
    @classmethod
    def blank_target_date(cls, v):
        return _blank_to_none(v)


class RecurringRule(Record):
    """
    Template from which recurring transactions are projected.

    Projection itself happens outside the store; it only reads these
    rules and writes transactions back.
    """
    template_account_id: str
    template_type: TransactionType
    template_amount_minor_units: int
    template_currency: str = "GBP"
    template_category: str
    template_merchant: Optional[str] = None
    template_notes: Optional[str] = None
    frequency: RecurringFrequency
    start_date: dt.date
    end_date: Optional[dt.date] = None
    last_generated_date: Optional[dt.date] = None
    is_active: bool = True


class CreditCardTransaction(BaseModel):
    """A purchase embedded in its CreditCard. Ids are unique per card only."""
    model_config = WIRE_CONFIG

    id: RecordId = Field(default_factory=new_id, min_length=1)
    merchant: str
    category: str
    amount_minor_units: int
    currency: str = "GBP"
    date: dt.date
    notes: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=utc_now)
    updated_at: dt.datetime = Field(default_factory=utc_now)

    @model_validator(mode='before')
    @classmethod
    def require_stored_fields(cls, data, info: ValidationInfo):
        return _require_stored_fields(data, info, ("id", "created_at", "updated_at"))

    @field_validator('created_at', 'updated_at')
    @classmethod
    def ensure_utc(cls, v: dt.datetime) -> dt.datetime:
        return _as_utc(v)


class CreditCard(Record):
    name: str = Field(..., min_length=1)
    last4: str = Field(default="", max_length=4)
    expiry: str = Field(default="", description="MM/YY as printed on the card")
    network: CardNetwork = CardNetwork.VISA
    limit_minor_units: int = 0
    balance_minor_units: int = 0
    min_payment_minor_units: int = 0
    due_date: Optional[dt.date] = None
    apr: float = 0.0
    cashback_minor_units: int = 0
    status: CardStatus = CardStatus.ACTIVE
    color: str = "#38bdf8"
    currency: str = "GBP"
    notes: Optional[str] = None
    transactions: list[CreditCardTransaction] = Field(default_factory=list)

    @field_validator('due_date', mode='before')
    @classmethod
    def blank_due_date(cls, v):
        return _blank_to_none(v)

    @model_validator(mode='after')
    def validate_transactions(self) -> 'CreditCard':
        _check_unique_child_ids(self.transactions, "card transaction")
        return self
