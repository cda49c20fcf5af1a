"""
CNB exchange-rate connector.

Syncs reference data rather than money: one ExchangeRate row per
(CZK, currency, date), used to convert invoice amounts. Natural key is
the currency pair plus the date, so re-fetching a day only updates rates
the bank has revised.
"""
from datetime import date, timedelta
from typing import List

from billing.connectors.base import Connector, FieldSpec, SyncContext, SyncOutcome
from billing.connectors.cnb.client import CnbClient
from billing.connectors.reconcile import ReconcileStats, parse_positive_int, upsert_by_key
from billing.models.finance import ExchangeRate


class CnbExchangeRateConnector(Connector):
    @classmethod
    def name(cls) -> str:
        return "cnb_exchange_rate"

    @classmethod
    def version(cls) -> str:
        return "1.0.0"

    @classmethod
    def description(cls) -> str:
        return "Czech National Bank exchange rates - fetches daily rates for invoice currency conversion"

    @classmethod
    def setting_fields(cls) -> List[FieldSpec]:
        return [
            FieldSpec(
                name="backfill_days",
                label="Backfill days",
                type="number",
                description="Number of days to backfill when syncing (default: 0, only today)",
            )
        ]

    def build_client(self, ctx: SyncContext) -> CnbClient:
        return CnbClient()

    def sync(self, ctx: SyncContext) -> SyncOutcome:
        dates = dates_to_fetch(ctx.settings.get("backfill_days"))
        client = self.build_client(ctx)
        stats = ReconcileStats()

        for day in dates:
            quotes = client.fetch(day)
            with ctx.session() as s:
                for quote in quotes:
                    result, _ = upsert_by_key(
                        s,
                        ExchangeRate,
                        key={
                            "base_currency": quote.base_currency,
                            "quote_currency": quote.quote_currency,
                            "rate_date": quote.rate_date,
                        },
                        values={"rate": quote.rate, "amount": quote.amount},
                    )
                    stats.record(result)
                s.commit()
            ctx.logger.info("Stored %d CNB rates for %s", len(quotes), day)

        return SyncOutcome(
            **stats.as_counts(),
            extra={"dates_fetched": [d.isoformat() for d in dates]},
        )


def dates_to_fetch(backfill_setting, today=None) -> List[date]:
    """Today only, or the last N days through today (oldest first)."""
    today = today or date.today()
    backfill = parse_positive_int(backfill_setting, 0)
    return [today - timedelta(days=n) for n in range(backfill, -1, -1)]
