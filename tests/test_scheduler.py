"""
Unit tests for refill classification, upcoming ordering and dashboard stats.
"""

from datetime import date, timedelta

import pytest

from rxledger.errors import ValidationError
from rxledger.models import FillRequest, PrescriptionRecord, Role, Session
from rxledger.scheduler import DUE_SOON, DUE_TODAY, classify, due, upcoming

TODAY = date(2024, 6, 15)
PHARMACIST = Session(username="pat.pharm", role=Role.PHARMACIST)


# ── Helpers ──────────────────────────────────────────────────────────

def _record(record_id, next_in_days, days_supply=30):
    """A record whose next refill falls ``next_in_days`` after TODAY."""
    filled = TODAY + timedelta(days=next_in_days - days_supply)
    return PrescriptionRecord(
        id=record_id, patient_id=1, medication_id=1, prescriber="Dr. X", sig="daily",
        quantity=30, days_supply=days_supply, refills_remaining=1,
        date_filled=filled, filled_by="tester",
    )


# ── Tests: classify ──────────────────────────────────────────────────

@pytest.mark.parametrize("offset,expected", [
    (-10, DUE_TODAY),
    (0, DUE_TODAY),
    (1, DUE_SOON),
    (7, DUE_SOON),
    (8, None),
])
def test_classify_boundaries(offset, expected):
    assert classify(_record(1, offset), TODAY) == expected


def test_record_due_today_never_listed_as_due_soon():
    records = [_record(1, 0)]
    assert [r.id for r in due(records, DUE_TODAY, TODAY)] == [1]
    assert due(records, DUE_SOON, TODAY) == []


def test_due_lists_sorted_by_next_refill_then_id():
    records = [_record(3, 5), _record(1, 2), _record(2, 2), _record(4, -1)]
    assert [r.id for r in due(records, DUE_SOON, TODAY)] == [1, 2, 3]
    assert [r.id for r in due(records, DUE_TODAY, TODAY)] == [4]


def test_due_rejects_unknown_filter():
    with pytest.raises(ValidationError, match="filter"):
        due([], "later", TODAY)


# ── Tests: upcoming ──────────────────────────────────────────────────

def test_upcoming_takes_smallest_n_on_or_after_today():
    records = [_record(1, 20), _record(2, -3), _record(3, 0), _record(4, 9), _record(5, 9), _record(6, 1)]
    assert [r.id for r in upcoming(records, TODAY, limit=4)] == [3, 6, 4, 5]


def test_upcoming_limit_zero_and_negative():
    assert upcoming([_record(1, 1)], TODAY, limit=0) == []
    with pytest.raises(ValidationError):
        upcoming([], TODAY, limit=-1)


# ── Tests: dashboard_stats via the service ───────────────────────────

def test_dashboard_stats_counts_buckets_and_low_stock(service, patient_id, medication_id):
    today = date.today()
    for filled_days_ago, days_supply in [(30, 30), (40, 30), (25, 30), (0, 30)]:
        service.fill_prescription(PHARMACIST, FillRequest(
            patient_id=patient_id, medication_id=medication_id, prescriber="Dr. House",
            sig="daily", quantity=100, days_supply=days_supply, refills_remaining=0,
            date_filled=today - timedelta(days=filled_days_ago),
        ))
    # 100 left on hand sits exactly at the threshold, which is not low
    stats = service.dashboard_stats()
    assert stats == {"dueToday": 2, "dueSoon": 1, "lowStock": 0}

    service.update_medication(PHARMACIST, medication_id, {"stock": 99})
    assert service.dashboard_stats()["lowStock"] == 1


def test_upcoming_refills_are_joined_with_names(service, patient_id, medication_id):
    service.fill_prescription(PHARMACIST, FillRequest(
        patient_id=patient_id, medication_id=medication_id, prescriber="Dr. House",
        sig="daily", quantity=10, days_supply=10, refills_remaining=0,
        date_filled=date.today(),
    ))
    [record] = service.upcoming_refills(limit=4)
    assert record.patient_name == "John Smith"
    assert record.drug_name == "Amoxicillin 500mg"
