"""Tests for the Fio banka client and its column mapping."""
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

from billing.connectors.fio.client import FioClient, normalize_transaction, parse_statement


def _row(**columns):
    return {name: ({"value": value} if value is not None else None) for name, value in columns.items()}


INCOMING = _row(
    column0="2025-01-15+0100",
    column1=1500.0,
    column2="2900000001",
    column5="20250001",
    column10="Acme Corporation",
    column14="CZK",
    column22=26001,
    column25="Invoice 2025-001",
)
OUTGOING = _row(column0="2025-01-16+0100", column1=-250.5, column14="EUR", column22=26002)

STATEMENT = {"accountStatement": {"transactionList": {"transaction": [INCOMING, OUTGOING]}}}


class TestNormalizeTransaction:
    def test_incoming(self):
        txn = normalize_transaction(INCOMING)
        assert txn.external_id == "26001"
        assert txn.transacted_on == date(2025, 1, 15)
        assert txn.amount == Decimal("1500.00")
        assert txn.direction == "credit"
        assert txn.currency == "CZK"
        assert txn.counterparty == "Acme Corporation - 2900000001"
        assert txn.reference == "20250001"
        assert txn.description == "Invoice 2025-001"

    def test_outgoing(self):
        txn = normalize_transaction(OUTGOING)
        assert txn.amount == Decimal("250.50")
        assert txn.direction == "debit"
        assert txn.counterparty is None
        assert txn.local_values()["transaction_type"] == "expense"

    def test_missing_columns(self):
        txn = normalize_transaction(_row(column1="garbage"))
        assert txn.external_id is None
        assert txn.amount == Decimal("0.00")
        assert txn.currency == "CZK"
        assert txn.transacted_on == date.today()


class TestParseStatement:
    def test_rows(self):
        assert [t.external_id for t in parse_statement(STATEMENT)] == ["26001", "26002"]

    def test_empty(self):
        assert parse_statement({"accountStatement": {"transactionList": None}}) == []
        assert parse_statement(None) == []


class TestFioClient:
    def test_url_contains_period(self):
        session = MagicMock()
        session.get.return_value.ok = True
        session.get.return_value.json.return_value = STATEMENT
        client = FioClient(api_token="tok", base_url="https://fio.test/rest/", session=session)

        txns = client.transactions(date(2025, 1, 1), date(2025, 1, 31))

        assert len(txns) == 2
        url = session.get.call_args[0][0]
        assert url == "https://fio.test/rest/periods/tok/2025-01-01/2025-01-31/transactions.json"
