"""
Table Registry

Each logical table stores one Record kind. Rows are JSON documents in the
wire format, keyed by id, with secondary indexes declared here and built as
SQLite expression indexes over json_extract().

DESIGN DECISION: Queries go through named, indexed lookups (find_by,
find_between) on the fields declared below. Arbitrary predicates are still
available through filter(), but they scan the whole table.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

from privyledger.models.records import (
    Account,
    Budget,
    CreditCard,
    FinancialGoal,
    Loan,
    Record,
    RecurringRule,
    Subscription,
    Transaction,
)


class Table(str, Enum):
    """Every table in the record store."""
    ACCOUNTS = "accounts"
    TRANSACTIONS = "transactions"
    LOANS = "loans"
    SUBSCRIPTIONS = "subscriptions"
    BUDGETS = "budgets"
    GOALS = "goals"
    RECURRING_RULES = "recurring_rules"
    CREDIT_CARDS = "credit_cards"


@dataclass(frozen=True)
class TableSpec:
    """Model class and secondary indexes for one table."""

    table: Table
    model: type[Record]
    indexes: tuple[str, ...]

    @property
    def name(self) -> str:
        return self.table.value

    def json_path(self, field: str) -> str:
        field_info = self.model.model_fields.get(field)
        if field_info is None:
            raise ValueError(f"{self.model.__name__} has no field {field!r}")
        return f"$.{field_info.alias or field}"

    def index_expression(self, field: str) -> str:
        """SQL expression matching the expression index on a field."""
        return f"json_extract(data, '{self.json_path(field)}')"

    def require_index(self, field: str) -> None:
        if field not in self.indexes:
            raise ValueError(
                f"{field!r} is not an indexed field of {self.name}; "
                f"indexed fields: {', '.join(self.indexes)}"
            )


TABLES: dict[Table, TableSpec] = {
    spec.table: spec
    for spec in (
        TableSpec(
            Table.ACCOUNTS, Account,
            ("type", "is_archived"),
        ),
        TableSpec(
            Table.TRANSACTIONS, Transaction,
            ("account_id", "type", "category", "date", "is_recurring", "recurring_id"),
        ),
        TableSpec(
            Table.LOANS, Loan,
            ("direction", "status", "due_date", "counterparty"),
        ),
        TableSpec(
            Table.SUBSCRIPTIONS, Subscription,
            ("is_active", "next_billing_date", "category"),
        ),
        TableSpec(
            Table.BUDGETS, Budget,
            ("category", "is_active"),
        ),
        TableSpec(
            Table.GOALS, FinancialGoal,
            ("category", "is_achieved"),
        ),
        TableSpec(
            Table.RECURRING_RULES, RecurringRule,
            ("is_active",),
        ),
        TableSpec(
            Table.CREDIT_CARDS, CreditCard,
            ("status", "due_date", "network"),
        ),
    )
}


def table_spec(table: Union[Table, str]) -> TableSpec:
    """Resolve a Table (or its string value) to its spec; ValueError if unknown."""
    return TABLES[Table(table)]


def index_statements(spec: TableSpec) -> list[str]:
    """CREATE INDEX statements for a table's declared indexes and tombstone."""
    statements = [
        f"CREATE INDEX IF NOT EXISTS idx_{spec.name}_{field} "
        f"ON {spec.name} ({spec.index_expression(field)})"
        for field in spec.indexes + ("deleted_at",)
    ]
    return statements
