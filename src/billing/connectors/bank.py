"""Normalized bank transaction and its reconciliation into MoneyTransaction rows."""
import json
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from sqlmodel import Session

from billing.connectors.reconcile import ReconcileStats, upsert_by_key
from billing.models.finance import MoneyTransaction, TransactionType

CENT = Decimal("0.01")

# A stored transaction counts as changed only when one of these differs
COMPARE_FIELDS = ("amount", "description", "counterparty")


class BankTransaction(BaseModel):
    """One upstream transaction, already mapped out of the bank's wire format."""

    external_id: Optional[str] = None
    transacted_on: date
    amount: Decimal  # absolute value; direction carries the sign
    currency: str = "EUR"
    direction: Literal["credit", "debit"] = "credit"
    counterparty: Optional[str] = None
    description: Optional[str] = None
    reference: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("amount")
    @classmethod
    def _two_places(cls, v: Decimal) -> Decimal:
        return abs(v).quantize(CENT)

    def local_values(self) -> Dict[str, Any]:
        return {
            "transaction_type": (
                TransactionType.INCOME.value
                if self.direction == "credit"
                else TransactionType.EXPENSE.value
            ),
            "amount": self.amount,
            "currency": self.currency,
            "transacted_on": self.transacted_on,
            "description": self.description,
            "counterparty": self.counterparty,
            "reference": self.reference,
            "raw_data": json.dumps(self.raw, sort_keys=True, default=str),
        }


def import_transactions(
    session: Session,
    source: str,
    transactions: Iterable[BankTransaction],
) -> ReconcileStats:
    """Upsert by (source, external_id). Transactions without an id are skipped uncounted."""
    stats = ReconcileStats()
    for txn in transactions:
        if not txn.external_id:
            continue
        result, _ = upsert_by_key(
            session,
            MoneyTransaction,
            key={"source": source, "external_id": txn.external_id},
            values=txn.local_values(),
            compare=COMPARE_FIELDS,
        )
        stats.record(result)
    return stats
