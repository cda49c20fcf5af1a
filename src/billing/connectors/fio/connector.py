"""Fio banka connector: imports account transactions as MoneyTransaction rows."""
from datetime import date
from typing import List

from billing.connectors.bank import import_transactions
from billing.connectors.base import Connector, FieldSpec, SyncContext, SyncOutcome
from billing.connectors.fio.client import FioClient
from billing.connectors.reconcile import parse_since_date


class FioBankConnector(Connector):
    @classmethod
    def name(cls) -> str:
        return "fio_bank"

    @classmethod
    def version(cls) -> str:
        return "1.0.0"

    @classmethod
    def description(cls) -> str:
        return "Fio bank integration - syncs account transactions"

    @classmethod
    def credential_fields(cls) -> List[FieldSpec]:
        return [
            FieldSpec(
                name="api_token",
                label="API Token",
                type="password",
                required=True,
                description="Your Fio bank API token",
            )
        ]

    @classmethod
    def setting_fields(cls) -> List[FieldSpec]:
        return [
            FieldSpec(
                name="sync_from_date",
                label="Sync from date",
                type="date",
                placeholder="YYYY-MM-DD",
                description="Only import transactions after this date (defaults to 30 days ago)",
            )
        ]

    def build_client(self, ctx: SyncContext) -> FioClient:
        return FioClient(api_token=ctx.credentials["api_token"])

    def sync(self, ctx: SyncContext) -> SyncOutcome:
        if not ctx.credentials.get("api_token"):
            return SyncOutcome(success=False, error="API token is required")

        from_date = parse_since_date(ctx.settings.get("sync_from_date"))
        to_date = date.today()
        transactions = self.build_client(ctx).transactions(from_date, to_date)
        ctx.logger.info("Fetched %d Fio transactions", len(transactions))

        with ctx.session() as s:
            stats = import_transactions(s, self.name(), transactions)
            s.commit()

        return SyncOutcome(
            **stats.as_counts(),
            extra={"date_range": {"from": from_date.isoformat(), "to": to_date.isoformat()}},
        )
