"""
Unit tests for inventory and dispensing reports.
"""

from datetime import date
from decimal import Decimal

from rxledger.models import Medication, PrescriptionRecord
from rxledger.reports import (
    dispensing_rows, dispensing_summary, format_report, inventory_report, medications_frame,
)

TODAY = date(2026, 1, 1)


# ── Helpers ──────────────────────────────────────────────────────────

def _med(med_id, name, stock, price, expiration):
    return Medication(
        id=med_id, name=name, din=f"0{med_id}", ndc=None, description=None,
        stock=stock, price=Decimal(price), expiration=expiration,
    )


def _rx(patient_id, drug, quantity, filled):
    return PrescriptionRecord(
        patient_id=patient_id, medication_id=1, prescriber="Dr", sig="daily",
        quantity=quantity, days_supply=30, refills_remaining=0,
        date_filled=filled, filled_by="x", drug_name=drug,
    )


# ── Tests: inventory_report ──────────────────────────────────────────

def test_inventory_report_empty():
    report = inventory_report([], TODAY)
    assert report["total_skus"] == 0
    assert report["low_stock"] == []
    assert medications_frame([]).empty


def test_inventory_report_valuation_and_flags():
    meds = [
        _med(1, "Amoxicillin", 500, "12.99", date(2027, 12, 31)),
        _med(2, "Lisinopril", 30, "15.00", date(2026, 2, 1)),
        _med(3, "Metformin", 0, "8.25", date(2025, 11, 30)),
    ]
    report = inventory_report(meds, TODAY)
    assert report["total_skus"] == 3
    assert report["total_units"] == 530
    assert report["inventory_value"] == round(500 * 12.99 + 30 * 15.00, 2)
    assert [m["name"] for m in report["low_stock"]] == ["Metformin", "Lisinopril"]
    assert [m["name"] for m in report["expiring_soon"]] == ["Lisinopril"]
    assert report["expired"] == [
        {"id": 3, "din": "03", "name": "Metformin", "stock": 0, "expiration": "2025-11-30"},
    ]


# ── Tests: dispensing_summary ────────────────────────────────────────

def test_dispensing_summary_groups_by_drug():
    records = [
        _rx(1, "Amoxicillin", 30, date(2025, 1, 1)),
        _rx(2, "Amoxicillin", 20, date(2025, 3, 1)),
        _rx(1, "Amoxicillin", 10, date(2025, 2, 1)),
        _rx(3, "Lisinopril", 90, date(2025, 1, 15)),
    ]
    rows = dispensing_rows(dispensing_summary(records))
    assert rows == [
        {"drug_name": "Lisinopril", "fills": 1, "units_dispensed": 90, "patients": 1, "last_filled": "2025-01-15"},
        {"drug_name": "Amoxicillin", "fills": 3, "units_dispensed": 60, "patients": 2, "last_filled": "2025-03-01"},
    ]


def test_dispensing_summary_empty():
    assert dispensing_summary([]).empty
    assert dispensing_rows(dispensing_summary([])) == []


def test_format_report_mentions_sections():
    report = inventory_report([_med(1, "Amoxicillin", 5, "1.00", date(2027, 1, 1))], TODAY)
    text = format_report(report, dispensing_summary([]))
    assert "Low stock:" in text
    assert "Amoxicillin" in text
    assert "(no fills yet)" in text
