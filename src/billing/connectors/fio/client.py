"""
Fio banka REST API client.

Fetches the account statement for a date range and maps Fio's numbered
columns onto BankTransaction. The API token is part of the URL path, so
it never appears in log messages here.
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from billing.config import get_settings
from billing.connectors.bank import BankTransaction
from billing.connectors.http import build_session, get_json, with_retries

DEFAULT_CURRENCY = "CZK"


class FioClient:
    def __init__(self, api_token: str, base_url: Optional[str] = None, session=None, sleep=None):
        settings = get_settings()
        self.api_token = api_token
        self.base_url = (base_url or settings.fio_base_url).rstrip("/")
        self.timeout = settings.http_timeout_seconds
        self._session = session or build_session()
        self._sleep = sleep

    def transactions(self, from_date: date, to_date: date) -> List[BankTransaction]:
        url = (
            f"{self.base_url}/periods/{self.api_token}/"
            f"{from_date.isoformat()}/{to_date.isoformat()}/transactions.json"
        )
        kwargs = {"sleep": self._sleep} if self._sleep else {}
        body = with_retries(
            lambda: get_json(self._session, url, timeout=self.timeout),
            description=f"Fio transactions fetch {from_date}..{to_date}",
            **kwargs,
        )
        return parse_statement(body)


def parse_statement(body: Any) -> List[BankTransaction]:
    if not isinstance(body, dict):
        return []
    rows = (
        ((body.get("accountStatement") or {}).get("transactionList") or {}).get("transaction")
        or []
    )
    return [normalize_transaction(row) for row in rows]


def _value(row: Dict[str, Any], column: str) -> Any:
    cell = row.get(column)
    return cell.get("value") if isinstance(cell, dict) else None


def normalize_transaction(row: Dict[str, Any]) -> BankTransaction:
    """Map one Fio transaction (column0..column25) onto BankTransaction."""
    raw_amount = _value(row, "column1")
    try:
        amount = Decimal(str(raw_amount))
    except (InvalidOperation, TypeError, ValueError):
        amount = Decimal("0")
    external_id = _value(row, "column22")
    reference = _value(row, "column5")

    return BankTransaction(
        external_id=str(external_id) if external_id is not None else None,
        transacted_on=_parse_date(_value(row, "column0")),
        amount=amount,
        currency=_value(row, "column14") or DEFAULT_CURRENCY,
        direction="credit" if amount >= 0 else "debit",
        counterparty=_counterparty(row),
        reference=str(reference) if reference is not None else None,
        description=_value(row, "column25"),
        raw=row,
    )


def _parse_date(value: Any) -> date:
    """Fio sends dates like "2025-01-15+0100"; anything unreadable becomes today."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value:
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            pass
    return date.today()


def _counterparty(row: Dict[str, Any]) -> Optional[str]:
    parts = [_value(row, "column10"), _value(row, "column2")]
    joined = " - ".join(str(p) for p in parts if p not in (None, ""))
    return joined or None
