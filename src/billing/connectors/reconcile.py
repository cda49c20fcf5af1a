"""
Fetch-reconcile building blocks shared by every connector.

The shape each sync() follows:
  1. Read settings to pick a fetch window (bad values fall back to defaults).
  2. Fetch external records through a client that retries with backoff.
  3. For each record, build its natural key.
  4. upsert_by_key(): create if absent, update changed fields if different,
     skip if identical. ReconcileStats tallies the outcomes.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple, Type

from sqlmodel import Session, SQLModel, select

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 30


class UpsertResult(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass
class ReconcileStats:
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0

    def record(self, result: UpsertResult) -> None:
        self.records_processed += 1
        if result is UpsertResult.CREATED:
            self.records_created += 1
        elif result is UpsertResult.UPDATED:
            self.records_updated += 1

    def merge(self, other: "ReconcileStats") -> None:
        self.records_processed += other.records_processed
        self.records_created += other.records_created
        self.records_updated += other.records_updated

    def as_counts(self) -> Dict[str, int]:
        return {
            "records_processed": self.records_processed,
            "records_created": self.records_created,
            "records_updated": self.records_updated,
        }


def parse_since_date(
    value: Any,
    *,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    today: Optional[date] = None,
) -> date:
    """Parse an ISO date setting; blank or malformed values give today - lookback_days."""
    today = today or date.today()
    fallback = today - timedelta(days=lookback_days)
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None or not str(value).strip():
        return fallback
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        logger.warning("Ignoring unparseable date setting %r; using %s", value, fallback)
        return fallback


def parse_positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def upsert_by_key(
    session: Session,
    model: Type[SQLModel],
    key: Dict[str, Any],
    values: Dict[str, Any],
    compare: Optional[Sequence[str]] = None,
) -> Tuple[UpsertResult, SQLModel]:
    """
    Match a local row by natural key and bring it in line with `values`.

    `compare` names the fields that decide whether the row changed (default:
    all of `values`). When any of them differs, every field in `values`
    whose value differs is written; untouched fields are left alone.
    """
    stmt = select(model)
    for column, expected in key.items():
        stmt = stmt.where(getattr(model, column) == expected)
    existing = session.exec(stmt).first()

    if existing is None:
        record = model(**key, **values)
        session.add(record)
        session.flush()
        return UpsertResult.CREATED, record

    fields = compare if compare is not None else list(values)
    if all(getattr(existing, f) == values[f] for f in fields):
        return UpsertResult.SKIPPED, existing

    for column, value in values.items():
        if getattr(existing, column) != value:
            setattr(existing, column, value)
    if hasattr(existing, "updated_at"):
        existing.updated_at = datetime.utcnow()
    session.add(existing)
    session.flush()
    return UpsertResult.UPDATED, existing
