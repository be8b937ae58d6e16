"""
Ledger Child Mutations

Loan payments and credit-card transactions are stored embedded in their
parent record, not in tables of their own. Every mutation here reads the
parent, edits the child list and the derived totals, and writes the whole
parent back inside a single-table transaction.

GUARANTEES:
- The child list and the totals derived from it change together or not at all
- Soft-deleted parents are treated as missing
- Amounts are integer minor units throughout
"""

import datetime as dt
from typing import Optional

from privyledger.models.records import (
    CardStatus,
    CreditCard,
    CreditCardTransaction,
    Loan,
    LoanPayment,
    LoanStatus,
)
from privyledger.services.storage import (
    NotFoundError,
    RecordStoreInterface,
    StoreTransaction,
    Table,
)


def _loan_status_after_payment(loan: Loan, remaining: int) -> LoanStatus:
    if remaining == 0:
        return LoanStatus.SETTLED
    if remaining < loan.principal_minor_units:
        return LoanStatus.PARTIALLY_PAID
    return LoanStatus.ACTIVE


def _require_positive(amount: int, what: str) -> None:
    if amount <= 0:
        raise ValueError(f"{what} must be a positive amount of minor units, got {amount}")


class LedgerService:
    """
    Child-list actions for loans and credit cards.

    Usage:
        ledger = LedgerService(store)
        loan = await ledger.add_loan_payment(loan.id, 2500, dt.date.today())
    """

    def __init__(self, store: RecordStoreInterface):
        self._store = store

    async def _live_parent(self, tx: StoreTransaction, table: Table, record_id: str):
        record = await tx.get(table, record_id)
        if record is None or record.is_deleted:
            raise NotFoundError(f"{table.value} record not found: {record_id}")
        return record

    # -------------------------------------------------------------------------
    # Loans
    # -------------------------------------------------------------------------

    async def add_loan_payment(
        self,
        loan_id: str,
        amount: int,
        date: dt.date,
        notes: Optional[str] = None,
    ) -> Loan:
        """
        Append a repayment and recompute what is still owed.

        remaining never goes below zero; status becomes settled at zero,
        partially_paid below the principal, and active otherwise.
        """
        _require_positive(amount, "Loan payment")
        async with self._store.transaction([Table.LOANS]) as tx:
            loan: Loan = await self._live_parent(tx, Table.LOANS, loan_id)
            payment = LoanPayment(amount=amount, date=date, notes=notes)
            remaining = max(0, loan.remaining_minor_units - amount)
            updated = loan.model_copy(update={
                "payments": [*loan.payments, payment],
                "remaining_minor_units": remaining,
                "status": _loan_status_after_payment(loan, remaining),
            })
            return await tx.replace(Table.LOANS, updated)

    # -------------------------------------------------------------------------
    # Credit cards
    # -------------------------------------------------------------------------

    async def add_card_transaction(
        self,
        card_id: str,
        merchant: str,
        category: str,
        amount_minor_units: int,
        date: dt.date,
        currency: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CreditCard:
        """Append a card transaction; the balance grows by its amount."""
        async with self._store.transaction([Table.CREDIT_CARDS]) as tx:
            card: CreditCard = await self._live_parent(tx, Table.CREDIT_CARDS, card_id)
            txn = CreditCardTransaction(
                merchant=merchant,
                category=category,
                amount_minor_units=amount_minor_units,
                currency=currency or card.currency,
                date=date,
                notes=notes,
            )
            updated = card.model_copy(update={
                "transactions": [*card.transactions, txn],
                "balance_minor_units": card.balance_minor_units + amount_minor_units,
            })
            return await tx.replace(Table.CREDIT_CARDS, updated)

    async def remove_card_transaction(self, card_id: str, txn_id: str) -> CreditCard:
        """Drop a card transaction and take its amount off the balance (floored at 0)."""
        async with self._store.transaction([Table.CREDIT_CARDS]) as tx:
            card: CreditCard = await self._live_parent(tx, Table.CREDIT_CARDS, card_id)
            txn = next((t for t in card.transactions if t.id == txn_id), None)
            if txn is None:
                raise NotFoundError(f"Card {card_id} has no transaction {txn_id}")
            updated = card.model_copy(update={
                "transactions": [t for t in card.transactions if t.id != txn_id],
                "balance_minor_units": max(0, card.balance_minor_units - txn.amount_minor_units),
            })
            return await tx.replace(Table.CREDIT_CARDS, updated)

    async def record_card_payment(self, card_id: str, amount_minor_units: int) -> CreditCard:
        """
        Pay down a card balance (floored at 0).

        A payment clears an overdue flag, and a card paid off in full is
        active again.
        """
        _require_positive(amount_minor_units, "Card payment")
        async with self._store.transaction([Table.CREDIT_CARDS]) as tx:
            card: CreditCard = await self._live_parent(tx, Table.CREDIT_CARDS, card_id)
            balance = max(0, card.balance_minor_units - amount_minor_units)
            status = card.status
            if balance == 0 or status == CardStatus.OVERDUE:
                status = CardStatus.ACTIVE
            updated = card.model_copy(update={
                "balance_minor_units": balance,
                "status": status,
            })
            return await tx.replace(Table.CREDIT_CARDS, updated)
