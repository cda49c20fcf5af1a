"""
Mock bank API client used by the example connector.

Produces realistic-looking transactions without any network access. Output
is deterministic per day: the same date range always yields the same
transactions, so repeated syncs exercise the dedup path.
"""
import random
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

INCOME_COUNTERPARTIES = [
    "Acme Corporation",
    "TechStart Inc.",
    "Global Services Ltd.",
    "Digital Solutions",
    "Creative Agency",
    "Consulting Partners",
    "Software Systems",
    "Innovation Labs",
]
INCOME_DESCRIPTIONS = [
    "Invoice payment",
    "Consulting services",
    "Project milestone",
    "Monthly retainer",
    "Development work",
    "Design services",
    "Support contract",
    "License renewal",
]
EXPENSE_COUNTERPARTIES = [
    "Office Supplies Co",
    "Cloud Services Inc",
    "Domain Registrar",
    "Software License Ltd",
    "Coworking Space",
    "Internet Provider",
]
EXPENSE_DESCRIPTIONS = [
    "Office supplies",
    "Cloud hosting",
    "Domain renewal",
    "Software subscription",
    "Workspace rental",
    "Internet service",
]

MIN_API_KEY_LENGTH = 8


class MockBankClient:
    def __init__(self, api_key: str, account_id: Optional[str] = None):
        self.api_key = api_key or ""
        self.account_id = account_id or f"MOCK_{self.api_key[:8]}"

    def valid_credentials(self) -> bool:
        return len(self.api_key) >= MIN_API_KEY_LENGTH

    def account_info(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "account_name": "Business Account",
            "currency": "EUR",
            "iban": "CZ65 0800 0000 1920 0014 5399",
        }

    def transactions(
        self,
        from_date: date,
        to_date: Optional[date] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Newest first, at most `limit` entries."""
        to_date = to_date or date.today()
        generated: List[Dict[str, Any]] = []
        day = from_date
        while day <= to_date:
            rng = random.Random(day.toordinal())
            for index in range(rng.randint(0, 3)):
                generated.append(self._transaction(day, index, rng))
            day += timedelta(days=1)
        generated.sort(key=lambda t: (t["date"], t["id"]), reverse=True)
        return generated[:limit]

    def _transaction(self, day: date, index: int, rng: random.Random) -> Dict[str, Any]:
        txn_id = f"TXN_{day:%Y%m%d}_{index:03d}"
        if rng.random() < 0.7:
            return {
                "id": txn_id,
                "date": day,
                "amount": Decimal(str(round(rng.uniform(500.0, 5000.0), 2))),
                "currency": "EUR",
                "counterparty": rng.choice(INCOME_COUNTERPARTIES),
                "description": rng.choice(INCOME_DESCRIPTIONS),
                "reference": f"REF-{day:%Y%m}-{rng.randint(1000, 9999)}",
                "type": "credit",
            }
        return {
            "id": txn_id,
            "date": day,
            "amount": Decimal(str(round(rng.uniform(50.0, 500.0), 2))),
            "currency": "EUR",
            "counterparty": rng.choice(EXPENSE_COUNTERPARTIES),
            "description": rng.choice(EXPENSE_DESCRIPTIONS),
            "reference": f"EXP-{day:%Y%m}-{rng.randint(1000, 9999)}",
            "type": "debit",
        }
