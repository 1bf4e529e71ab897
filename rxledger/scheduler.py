"""
RefillScheduler – due-date classification derived from dispensing history.

Every function takes a single ``today`` so one request never classifies the
same record into two buckets. Comparisons are calendar-date only.
"""

from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from rxledger.config import DUE_SOON_DAYS, LOW_STOCK_THRESHOLD, UPCOMING_LIMIT
from rxledger.errors import ValidationError
from rxledger.models import PrescriptionRecord

DUE_TODAY = "today"
DUE_SOON = "soon"
BUCKETS = (DUE_TODAY, DUE_SOON)


def _sort_key(record: PrescriptionRecord):
    return (record.next_refill_date, record.id or 0)


def classify(record: PrescriptionRecord, today: date) -> Optional[str]:
    """Return DUE_TODAY, DUE_SOON or None for a single record."""
    next_refill = record.next_refill_date
    if next_refill <= today:
        return DUE_TODAY
    if next_refill <= today + timedelta(days=DUE_SOON_DAYS):
        return DUE_SOON
    return None


def due(records: Iterable[PrescriptionRecord], bucket: str, today: date) -> List[PrescriptionRecord]:
    if bucket not in BUCKETS:
        raise ValidationError(f"filter must be one of {', '.join(BUCKETS)}; got {bucket!r}")
    return sorted((r for r in records if classify(r, today) == bucket), key=_sort_key)


def upcoming(records: Iterable[PrescriptionRecord], today: date, limit: int = UPCOMING_LIMIT) -> List[PrescriptionRecord]:
    """The ``limit`` records with the earliest next refill date on or after today."""
    if limit < 0:
        raise ValidationError("limit must be non-negative")
    pending = sorted((r for r in records if r.next_refill_date >= today), key=_sort_key)
    return pending[:limit]


class RefillScheduler:

    def __init__(self, records, ledger):
        self.records = records
        self.ledger = ledger

    def due(self, bucket: str, today: Optional[date] = None) -> List[PrescriptionRecord]:
        return due(self.records.query_all(), bucket, today or date.today())

    def upcoming(self, limit: int = UPCOMING_LIMIT, today: Optional[date] = None) -> List[PrescriptionRecord]:
        return upcoming(self.records.query_all(), today or date.today(), limit)

    def dashboard_stats(self, today: Optional[date] = None) -> Dict[str, int]:
        today = today or date.today()
        counts = {DUE_TODAY: 0, DUE_SOON: 0}
        for record in self.records.query_all():
            bucket = classify(record, today)
            if bucket:
                counts[bucket] += 1
        return {
            "dueToday": counts[DUE_TODAY],
            "dueSoon": counts[DUE_SOON],
            "lowStock": self.ledger.count_below(LOW_STOCK_THRESHOLD),
        }
