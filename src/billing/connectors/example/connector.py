"""
Example bank connector: a working reference for writing new connectors.

Demonstrates credential and setting schemas, building a client from
credentials, a settings-driven fetch window, and dedup by external id.
"""
from datetime import date
from typing import Any, Dict, List

from billing.connectors.bank import BankTransaction, import_transactions
from billing.connectors.base import Connector, FieldSpec, SyncContext, SyncOutcome
from billing.connectors.example.client import MIN_API_KEY_LENGTH, MockBankClient
from billing.connectors.reconcile import parse_positive_int, parse_since_date

DEFAULT_IMPORT_LIMIT = 100
DEFAULT_CURRENCY = "EUR"


class ExampleBankConnector(Connector):
    @classmethod
    def name(cls) -> str:
        return "example"

    @classmethod
    def version(cls) -> str:
        return "2.0.0"

    @classmethod
    def description(cls) -> str:
        return "Example bank integration - demonstrates the connector interface with mock bank data"

    @classmethod
    def credential_fields(cls) -> List[FieldSpec]:
        return [
            FieldSpec(
                name="api_key",
                label="API Key",
                type="password",
                required=True,
                description=f"Your bank API key (minimum {MIN_API_KEY_LENGTH} characters)",
            ),
            FieldSpec(
                name="account_id",
                label="Account ID",
                type="text",
                required=False,
                description="Specific account to sync (optional, uses default if empty)",
            ),
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
            ),
            FieldSpec(
                name="import_limit",
                label="Import limit",
                type="number",
                description=f"Maximum transactions to import per sync (default: {DEFAULT_IMPORT_LIMIT})",
            ),
            FieldSpec(
                name="default_currency",
                label="Default currency",
                type="text",
                description=f"Currency code for transactions (default: {DEFAULT_CURRENCY})",
            ),
        ]

    def build_client(self, ctx: SyncContext) -> MockBankClient:
        return MockBankClient(
            api_key=ctx.credentials.get("api_key") or "",
            account_id=ctx.credentials.get("account_id"),
        )

    def sync(self, ctx: SyncContext) -> SyncOutcome:
        client = self.build_client(ctx)
        if not client.valid_credentials():
            return SyncOutcome(
                success=False,
                error=f"Invalid API credentials - key must be at least {MIN_API_KEY_LENGTH} characters",
            )

        from_date = parse_since_date(ctx.settings.get("sync_from_date"))
        to_date = date.today()
        limit = parse_positive_int(ctx.settings.get("import_limit"), DEFAULT_IMPORT_LIMIT)
        currency = ctx.settings.get("default_currency") or DEFAULT_CURRENCY

        raw = client.transactions(from_date=from_date, to_date=to_date, limit=limit)
        ctx.logger.info("Fetched %d transactions from %s to %s", len(raw), from_date, to_date)

        with ctx.session() as s:
            stats = import_transactions(
                s, self.name(), (self._normalize(t, currency) for t in raw)
            )
            s.commit()

        return SyncOutcome(
            **stats.as_counts(),
            extra={
                "date_range": {"from": from_date.isoformat(), "to": to_date.isoformat()},
                "account_info": client.account_info(),
            },
        )

    @staticmethod
    def _normalize(txn: Dict[str, Any], currency: str) -> BankTransaction:
        return BankTransaction(
            external_id=txn["id"],
            transacted_on=txn["date"],
            amount=txn["amount"],
            currency=txn.get("currency") or currency,
            direction="credit" if txn.get("type") == "credit" else "debit",
            counterparty=txn.get("counterparty"),
            description=txn.get("description"),
            reference=txn.get("reference"),
            raw=txn,
        )
