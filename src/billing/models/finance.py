"""Local records written by connectors: bank transactions and exchange rates."""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from billing.audit.tracking import Auditable


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class MoneyTransaction(SQLModel, Auditable, table=True):
    """A bank movement. (source, external_id) is the natural key for imported rows."""

    __table_args__ = (UniqueConstraint("source", "external_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    source: str = Field(index=True)  # connector name, or "user" for manual entries
    external_id: Optional[str] = Field(default=None, index=True)
    transaction_type: str = TransactionType.INCOME.value
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    currency: str = "EUR"
    transacted_on: date = Field(index=True)
    description: Optional[str] = None
    counterparty: Optional[str] = None
    reference: Optional[str] = None
    raw_data: Optional[str] = None  # JSON of the upstream record

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ExchangeRate(SQLModel, Auditable, table=True):
    """
    `amount` units of quote_currency cost `rate` units of base_currency on rate_date.
    Natural key: (base_currency, quote_currency, rate_date).
    """

    __table_args__ = (UniqueConstraint("base_currency", "quote_currency", "rate_date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    base_currency: str = Field(index=True)
    quote_currency: str = Field(index=True)
    rate: Decimal = Field(max_digits=18, decimal_places=6)
    amount: int = 1
    rate_date: date = Field(index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
