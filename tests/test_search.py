"""
Tests for patient search and history lookups.
"""

from datetime import date

import pytest

from rxledger.errors import DuplicateIdentifier, NotFound, ValidationError
from rxledger.models import FillRequest, MedicationIdentity, Role, Session

ADMIN = Session(username="ada.admin", role=Role.ADMIN)


# ── Helpers ──────────────────────────────────────────────────────────

def _patient(service, name, card):
    return service.add_patient(ADMIN, {
        "name": name, "birth_date": "1990-01-01", "phone": "555-0100", "health_card_num": card,
    })


def _fill(service, patient_id, medication_id, filled):
    return service.fill_prescription(ADMIN, FillRequest(
        patient_id=patient_id, medication_id=medication_id, prescriber="Dr. Who",
        sig="daily", quantity=5, days_supply=30, refills_remaining=0, date_filled=filled,
    ))


@pytest.fixture
def directory(service):
    ids = {
        "sarah": _patient(service, "Sarah Conner", "HC-1"),
        "arthur": _patient(service, "Arthur Dent", "HC-2"),
        "wayne": _patient(service, "Wayne Campbell", "HC-3"),
    }
    med = service.register_medication(
        ADMIN, MedicationIdentity(din="02444555", name="Escitalopram 10mg"), 150, "22.75", date(2027, 5, 20),
    )
    _fill(service, ids["arthur"], med, date(2024, 1, 1))
    return ids


# ── Tests: search ────────────────────────────────────────────────────

def test_empty_query_returns_full_directory(service, directory):
    assert len(service.search_patients("")) == 3
    assert len(service.search_patients("   ")) == 3


def test_name_match_is_case_insensitive_substring(service, directory):
    assert [p.name for p in service.search_patients("CONN")] == ["Sarah Conner"]
    assert [p.name for p in service.search_patients("a")] == ["Arthur Dent", "Sarah Conner", "Wayne Campbell"]


def test_match_through_dispensed_medication(service, directory):
    assert [p.name for p in service.search_patients("escitalo")] == ["Arthur Dent"]


def test_no_fuzzy_matching(service, directory):
    assert service.search_patients("Sara Connor") == []


# ── Tests: patient history / directory ───────────────────────────────

def test_history_is_newest_first(service, directory):
    med = service.list_medications()[0].id
    first = _fill(service, directory["wayne"], med, date(2024, 1, 1))
    third = _fill(service, directory["wayne"], med, date(2024, 3, 1))
    second = _fill(service, directory["wayne"], med, date(2024, 2, 1))
    assert [r.id for r in service.patient_history(directory["wayne"])] == [third, second, first]


def test_history_for_unknown_patient(service):
    with pytest.raises(NotFound):
        service.patient_history(404)


def test_duplicate_health_card_rejected(service, directory):
    with pytest.raises(DuplicateIdentifier):
        _patient(service, "Somebody Else", "HC-1")


def test_patient_requires_core_fields(service):
    with pytest.raises(ValidationError, match="health_card_num"):
        service.add_patient(ADMIN, {"name": "X", "birth_date": "1990-01-01", "phone": "1"})


@pytest.mark.parametrize("field, value", [
    ("name", 12345),
    ("phone", 4165550199),
    ("health_card_num", ["HC", 9]),
    ("email", {"home": "x@example.com"}),
])
def test_patient_fields_must_be_text(service, field, value):
    data = {"name": "Jane Roe", "birth_date": "1990-01-01", "phone": "555-0100", "health_card_num": "HC-9"}
    data[field] = value
    with pytest.raises(ValidationError, match=field):
        service.add_patient(ADMIN, data)
    assert service.search_patients("") == []
