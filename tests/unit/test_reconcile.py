"""Tests for the fetch-reconcile helpers."""
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlmodel import Session

from billing.connectors.bank import BankTransaction, import_transactions
from billing.connectors.reconcile import (
    ReconcileStats,
    UpsertResult,
    parse_positive_int,
    parse_since_date,
    upsert_by_key,
)
from billing.models.finance import ExchangeRate

TODAY = date(2025, 1, 31)


class TestParseSinceDate:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2025-01-10", date(2025, 1, 10)),
            (" 2025-01-10 ", date(2025, 1, 10)),
            (date(2025, 1, 5), date(2025, 1, 5)),
            (datetime(2025, 1, 5, 12, 0), date(2025, 1, 5)),
            (None, date(2025, 1, 1)),
            ("", date(2025, 1, 1)),
            ("not-a-date", date(2025, 1, 1)),
        ],
    )
    def test_values(self, value, expected):
        assert parse_since_date(value, today=TODAY) == expected

    def test_custom_lookback(self):
        assert parse_since_date(None, lookback_days=7, today=TODAY) == date(2025, 1, 24)


@pytest.mark.parametrize(
    "value, expected",
    [("50", 50), (10, 10), ("0", 100), ("-5", 100), ("abc", 100), (None, 100)],
)
def test_parse_positive_int(value, expected):
    assert parse_positive_int(value, 100) == expected


class TestUpsertByKey:
    KEY = {"base_currency": "CZK", "quote_currency": "EUR", "rate_date": date(2025, 1, 15)}

    def test_create_skip_update(self, test_session: Session):
        result, rate = upsert_by_key(test_session, ExchangeRate, self.KEY, {"rate": Decimal("25.1"), "amount": 1})
        assert result is UpsertResult.CREATED
        assert rate.id is not None

        result, _ = upsert_by_key(test_session, ExchangeRate, self.KEY, {"rate": Decimal("25.1"), "amount": 1})
        assert result is UpsertResult.SKIPPED

        result, rate = upsert_by_key(test_session, ExchangeRate, self.KEY, {"rate": Decimal("25.3"), "amount": 1})
        assert result is UpsertResult.UPDATED
        assert rate.rate == Decimal("25.3")

    def test_compare_limits_change_detection(self, test_session: Session):
        upsert_by_key(test_session, ExchangeRate, self.KEY, {"rate": Decimal("25.1"), "amount": 1})
        result, rate = upsert_by_key(
            test_session, ExchangeRate, self.KEY,
            {"rate": Decimal("25.1"), "amount": 100},
            compare=("rate",),
        )
        assert result is UpsertResult.SKIPPED
        assert rate.amount == 1


class TestReconcileStats:
    def test_record_and_merge(self):
        stats = ReconcileStats()
        for result in (UpsertResult.CREATED, UpsertResult.UPDATED, UpsertResult.SKIPPED):
            stats.record(result)
        other = ReconcileStats(records_processed=1, records_created=1)
        stats.merge(other)
        assert stats.as_counts() == {"records_processed": 4, "records_created": 2, "records_updated": 1}


class TestImportTransactions:
    def test_dedup_by_source_and_external_id(self, test_session: Session):
        txns = [
            BankTransaction(external_id="A", transacted_on=date(2025, 1, 15), amount=Decimal("10")),
            BankTransaction(external_id="B", transacted_on=date(2025, 1, 15), amount=Decimal("-5.005")),
            BankTransaction(transacted_on=date(2025, 1, 15), amount=Decimal("1")),
        ]
        first = import_transactions(test_session, "fio_bank", txns)
        second = import_transactions(test_session, "fio_bank", txns)
        other_source = import_transactions(test_session, "example", txns[:1])

        assert first.as_counts() == {"records_processed": 2, "records_created": 2, "records_updated": 0}
        assert second.as_counts() == {"records_processed": 2, "records_created": 0, "records_updated": 0}
        assert other_source.records_created == 1

    def test_amount_is_absolute_and_two_places(self):
        txn = BankTransaction(transacted_on=date(2025, 1, 15), amount=Decimal("-5.005"), direction="debit")
        assert txn.amount == Decimal("5.00")
        assert txn.local_values()["transaction_type"] == "expense"
