"""
Czech National Bank daily exchange-rate client.

    client = CnbClient()
    quotes = client.fetch(date(2025, 1, 15))
    # → [RateQuote(quote_currency="EUR", rate=Decimal("25.125"), amount=1, ...), ...]

Rates are CZK per `amount` units of the quoted currency. The API is free
and needs no credentials.
"""
from datetime import date
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel

from billing.config import get_settings
from billing.connectors.http import build_session, get_json, with_retries

BASE_CURRENCY = "CZK"


class RateQuote(BaseModel):
    base_currency: str = BASE_CURRENCY
    quote_currency: str
    rate: Decimal
    amount: int = 1
    rate_date: date


class CnbClient:
    def __init__(self, base_url: Optional[str] = None, session=None, sleep=None):
        settings = get_settings()
        self.base_url = base_url or settings.cnb_base_url
        self.timeout = settings.http_timeout_seconds
        self._session = session or build_session()
        self._sleep = sleep

    def fetch(self, on: date) -> List[RateQuote]:
        """Fetch one day's rates. Raises FetchError once retries are exhausted."""
        kwargs = {"sleep": self._sleep} if self._sleep else {}
        body = with_retries(
            lambda: get_json(
                self._session,
                self.base_url,
                params={"date": on.isoformat(), "lang": "EN"},
                timeout=self.timeout,
            ),
            description=f"CNB rates fetch for {on.isoformat()}",
            **kwargs,
        )
        return parse_rates(body, on)


def parse_rates(body: Any, on: date) -> List[RateQuote]:
    rates = (body or {}).get("rates") or []
    return [
        RateQuote(
            quote_currency=entry["currencyCode"],
            rate=Decimal(str(entry["rate"])),
            amount=int(entry.get("amount") or 1),
            rate_date=on,
        )
        for entry in rates
        if entry.get("currencyCode") and entry.get("rate") is not None
    ]
