"""Integration tests for automatic audit entries and the AuditLog read side."""
from datetime import date
from decimal import Decimal

from sqlmodel import Session, select

from billing.audit.context import audit_context
from billing.audit.log import AuditLog
from billing.models.audit import AuditLogEntry
from billing.models.connector import ConnectorConfiguration
from billing.models.finance import ExchangeRate, MoneyTransaction


def _txn(**overrides) -> MoneyTransaction:
    values = dict(
        source="user",
        amount=Decimal("100.00"),
        transacted_on=date(2025, 1, 15),
        description="Invoice payment",
    )
    values.update(overrides)
    return MoneyTransaction(**values)


def _entries(engine):
    with Session(engine) as s:
        return s.exec(select(AuditLogEntry).order_by(AuditLogEntry.id)).all()


class TestTracking:
    def test_create_outside_run_is_user(self, engine):
        with Session(engine) as s:
            txn = _txn()
            s.add(txn)
            s.commit()
            s.refresh(txn)

        [entry] = _entries(engine)
        assert entry.action == "create"
        assert entry.source == "user"
        assert entry.sync_run_id is None
        assert entry.target_type == "MoneyTransaction"
        assert entry.target_id == txn.id
        assert entry.changes is None

    def test_update_records_field_diff(self, engine):
        with Session(engine) as s:
            txn = _txn()
            s.add(txn)
            s.commit()
            with audit_context(source="fio_bank", sync_run_id=7):
                txn.amount = Decimal("120.50")
                txn.description = "Invoice payment #2"
                s.add(txn)
                s.commit()

        update = _entries(engine)[-1]
        assert update.action == "update"
        assert update.source == "fio_bank"
        assert update.sync_run_id == 7
        assert update.changes == {
            "amount": {"from": "100.00", "to": "120.50"},
            "description": {"from": "Invoice payment", "to": "Invoice payment #2"},
        }

    def test_setting_same_value_writes_no_update(self, engine):
        with Session(engine) as s:
            txn = _txn()
            s.add(txn)
            s.commit()
            txn.description = "Invoice payment"
            s.add(txn)
            s.commit()

        assert [e.action for e in _entries(engine)] == ["create"]

    def test_update_after_commit_reports_committed_value(self, engine):
        # Commit expires every attribute; the old value must still be loaded
        with Session(engine) as s:
            txn = _txn()
            s.add(txn)
            s.commit()
            txn.amount = Decimal("120.50")
            s.commit()
            txn.amount = Decimal("120.50")
            s.commit()

        entries = _entries(engine)
        assert [e.action for e in entries] == ["create", "update"]
        assert entries[1].changes == {"amount": {"from": "100.00", "to": "120.50"}}

    def test_destroy_keeps_final_state(self, engine):
        with Session(engine) as s:
            txn = _txn(counterparty="Acme Corporation")
            s.add(txn)
            s.commit()
            s.refresh(txn)
            s.delete(txn)
            s.commit()

        destroy = _entries(engine)[-1]
        assert destroy.action == "destroy"
        assert destroy.changes["final_state"]["counterparty"] == "Acme Corporation"
        assert "id" not in destroy.changes["final_state"]

    def test_rollback_discards_audit_rows(self, engine):
        with Session(engine) as s:
            s.add(_txn())
            s.flush()
            s.rollback()

        assert _entries(engine) == []

    def test_untracked_models_not_audited(self, engine):
        with Session(engine) as s:
            s.add(ConnectorConfiguration(connector_name="example", enabled=True))
            s.commit()

        assert _entries(engine) == []


class TestAuditLog:
    def _seed(self, engine):
        with Session(engine) as s:
            with audit_context(source="cnb_exchange_rate", sync_run_id=1):
                rate = ExchangeRate(
                    base_currency="CZK", quote_currency="EUR",
                    rate=Decimal("25.125"), rate_date=date(2025, 1, 15),
                )
                s.add(rate)
                s.commit()
            with audit_context(source="cnb_exchange_rate", sync_run_id=2):
                rate.rate = Decimal("25.200")
                s.add(rate)
                s.commit()
            s.add(_txn())
            s.commit()
            s.refresh(rate)
            return rate.id

    def test_history_for_record_is_chronological(self, engine):
        rate_id = self._seed(engine)
        history = AuditLog(engine).history_for("ExchangeRate", rate_id)

        assert [h["action"] for h in history] == ["create", "update"]
        assert history[1]["description"] == f"Updated ExchangeRate #{rate_id} (rate)"

        with Session(engine) as s:
            entry = s.exec(select(AuditLogEntry).order_by(AuditLogEntry.id)).first()
        assert AuditLog.describe(entry) == f"Created ExchangeRate #{rate_id}"

    def test_stats_for_source(self, engine):
        self._seed(engine)
        stats = AuditLog(engine).stats_for("cnb_exchange_rate")

        assert stats["total_changes"] == 2
        assert stats["creates"] == 1
        assert stats["updates"] == 1
        assert stats["destroys"] == 0
        assert stats["affected_records"] == 1
        assert stats["affected_types"] == ["ExchangeRate"]
        assert stats["changes_today"] == 2
        assert stats["last_change"]["action"] == "update"

    def test_recent_grouped_by_run_newest_first(self, engine):
        self._seed(engine)
        grouped = AuditLog(engine).recent_grouped_by_run()

        assert list(grouped) == [2, 1]
        assert [e["action"] for e in grouped[1]] == ["create"]

    def test_created_by(self, engine):
        rate_id = self._seed(engine)
        log = AuditLog(engine)

        assert log.created_by("ExchangeRate", rate_id) == "cnb_exchange_rate"
        assert log.created_by_connector("ExchangeRate", rate_id) is True
        assert log.created_by_connector("MoneyTransaction", 1) is False
        assert log.created_by("MoneyTransaction", 999) is None
